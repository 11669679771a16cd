"""
Exception hierarchy for the nature quiz core.

Only load failures reach callers as exceptions. Funds and transition errors
are raised internally and turned into logged no-ops at the public API.
"""


class NatureQuizError(Exception):
    """Base exception for quiz core errors."""
    pass


class LoadError(NatureQuizError):
    """Raised when a question bank or profile document cannot be parsed."""
    pass


class BankLoadError(LoadError):
    """Raised when the question source is unreadable or malformed."""
    pass


class ProfileLoadError(LoadError):
    """Raised when a persisted profile document fails to decode."""
    pass


class InsufficientFundsError(NatureQuizError):
    """Raised when a debit exceeds the current coin balance."""
    pass


class InvalidTransitionError(NatureQuizError):
    """Raised when a session event arrives outside its valid state."""
    pass


class ConfigError(NatureQuizError):
    """Raised when the configuration file cannot be parsed."""
    pass
