"""Configuration, database, logging and shared primitives."""
