"""
Custom exceptions for the touch-wood gamification engine.
Provides specific exception types for better error handling and recovery.
"""


class TouchWoodException(Exception):
    """Base exception for the application"""
    pass


class RitualNotFoundException(TouchWoodException):
    """Raised when a ritual is not found"""
    def __init__(self, ritual_id: str):
        self.ritual_id = ritual_id
        super().__init__(f"Ritual with ID {ritual_id} not found")


class EventNotFoundException(TouchWoodException):
    """Raised when a seasonal event is not found"""
    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Seasonal event with ID {event_id} not found")


class RitualUnavailableException(TouchWoodException):
    """Raised when a special ritual cannot be used right now"""
    def __init__(self, ritual_id: str, reason: str):
        self.ritual_id = ritual_id
        self.reason = reason
        super().__init__(f"Ritual {ritual_id} is not available: {reason}")


class ValidationException(TouchWoodException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class StateCorruptedException(TouchWoodException):
    """Raised when a persisted state record cannot be decoded"""
    def __init__(self, key: str, details: str):
        self.key = key
        self.details = details
        super().__init__(f"State record '{key}' is unreadable: {details}")


class InvariantViolation(TouchWoodException):
    """Raised in strict mode when an engine invariant would be broken"""
    def __init__(self, message: str):
        super().__init__(f"Invariant violated: {message}")
