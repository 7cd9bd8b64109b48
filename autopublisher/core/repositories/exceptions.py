"""
Repository exceptions.
"""


class RepositoryError(Exception):
    """Base exception for all repository errors."""
    pass


class TokenRepositoryError(RepositoryError):
    """Exception raised by token repository operations."""
    pass


class ValidationError(RepositoryError):
    """Raised when input validation fails."""
    pass
