"""Custom exceptions and error handling for the consent manager."""
from typing import Any, Dict, Iterable, List, Mapping


class ConsentManagerError(Exception):
    """Base exception for consent manager errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ConsentManagerError):
    """Raised when required input is missing or malformed."""
    pass


class NotFoundError(ConsentManagerError):
    """Raised when a consent id is unknown to the store."""
    pass


class AlreadyRevokedError(ConsentManagerError):
    """Raised when revoking a consent that is already revoked."""
    pass


class SignatureError(ConsentManagerError):
    """Raised when a proof token fails verification."""
    pass


def create_error_response(error: Exception) -> Dict[str, Any]:
    """
    Create a standardized error response body.

    Args:
        error: The exception that occurred

    Returns:
        Dictionary containing error details
    """
    return {
        "error": str(error),
        "code": type(error).__name__,
        "details": getattr(error, "details", {}),
    }


def require_fields(values: Mapping[str, Any], required_fields: Iterable[str]) -> None:
    """
    Validate that every required field is present and non-empty.

    Args:
        values: Mapping of field name to supplied value
        required_fields: Field names that must be present

    Raises:
        ValidationError: If any field is missing
    """
    required: List[str] = list(required_fields)
    missing = [field for field in required if not values.get(field)]
    if missing:
        raise ValidationError(
            f"{', '.join(required)} required",
            {"required": required, "missing": missing},
        )
