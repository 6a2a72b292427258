#!/usr/bin/env python3
"""Check registered routes in the FastAPI app"""
import sys
sys.path.insert(0, '.')

from device_warnings.main import app

print("Registered routes:")
print("=" * 80)
for route in app.routes:
    if hasattr(route, 'path'):
        methods = sorted(route.methods) if getattr(route, 'methods', None) else ['WS']
        print(f"{','.join(methods):12} {route.path:50} {route.name}")
