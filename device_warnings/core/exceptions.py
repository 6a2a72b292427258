"""Exception hierarchy for the warning engine."""


class WarningEngineError(Exception):
    """Base class for warning engine errors."""


class RuleConfigurationError(WarningEngineError):
    """A rule or its condition expression is malformed."""

    def __init__(self, message: str, expression: str = None):
        super().__init__(message)
        self.expression = expression


class InvalidMeasurementError(WarningEngineError):
    """A measured value cannot be compared by a rule."""


class EscalationConfigurationError(WarningEngineError):
    """The escalation delay sequence is not usable."""


class DeliveryError(WarningEngineError):
    """A delivery channel failed to send a notification."""


class WarningNotActiveError(WarningEngineError):
    """The warning is already resolved."""
