"""Exception hierarchy for the tranche engine.

Every rejection carries its kind so callers can branch on it:

- ``SequencingError``: an operation was called in the wrong state (programming error, do not retry).
- ``InsufficientResourceError``: the caller asked for something it does not have.
- ``UnauthorizedError``: the caller lacks the role required for the operation.
- ``ConfigurationError``: static configuration or arguments are out of range.

Policy rejections (deposit blocked by safety level or cap) are not exceptions; see ``DepositCheck``.
"""


class TrancheEngineError(Exception):
    """Base class for all engine errors."""


class SequencingError(TrancheEngineError, RuntimeError):
    """Operation is not valid in the current state."""


class EmergencyModeError(SequencingError):
    """Operation is blocked until emergency mode is cleared by an admin."""


class InsufficientResourceError(TrancheEngineError, ValueError):
    """Requested amount is zero or exceeds what is held."""


class UnauthorizedError(TrancheEngineError, PermissionError):
    """Caller does not hold the role required for the operation."""


class ConfigurationError(TrancheEngineError, ValueError):
    """Static configuration value is out of range."""
