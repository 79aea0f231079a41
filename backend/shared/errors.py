"""
Error kinds raised by the alert and notification engine.

ValidationFailure is raised before any write. PersistenceFailure wraps
errors coming back from the Supabase client. GatewayFailure covers email
delivery problems and is never allowed to undo an in-app notification.
"""


class EngineError(Exception):
    """Base class for engine errors."""


class ValidationFailure(EngineError, ValueError):
    """Malformed input (criteria bounds, recipient addressing, stats window)."""


class PersistenceFailure(EngineError):
    """The backing store rejected or could not complete an operation."""

    def __init__(self, operation: str, cause: Exception | str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class GatewayFailure(EngineError):
    """An email could not be handed to the delivery provider."""


class DuplicateKey(PersistenceFailure):
    """An insert hit a unique index (another writer got there first)."""
