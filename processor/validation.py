"""Identifier and identity validators shared by the engines."""
import re
import uuid

from processor.errors import InvalidEmail, InvalidIdentifier, InvalidName

IDENTIFIER_PATTERN = re.compile(r'^[0-9a-f]{32}$')


def new_identifier() -> str:
    """Generate a store identifier (32 lower-case hex characters)."""
    return uuid.uuid4().hex


def validate_identifier(value, field: str = 'event') -> str:
    """
    Check that a value is a well-formed store identifier.

    Args:
        value: Candidate identifier
        field: Name used in the error message ("event" or "member")

    Returns:
        The identifier unchanged

    Raises:
        InvalidIdentifier: If the value is not a 32 character hex string
    """
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.match(value):
        raise InvalidIdentifier(field)
    return value


def validate_email(value) -> str:
    """
    Check that an email has exactly one '@' with non-empty parts on both sides.

    Returns:
        The email with surrounding whitespace removed

    Raises:
        InvalidEmail: If the value is not a usable email
    """
    if not isinstance(value, str):
        raise InvalidEmail()

    email = value.strip()
    if email.count('@') != 1:
        raise InvalidEmail()

    local, domain = email.split('@')
    if not local or not domain:
        raise InvalidEmail()

    return email


def validate_name(value) -> str:
    """Return the trimmed name, or raise InvalidName if nothing is left."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidName()
    return value.strip()


def normalize_email(email: str) -> str:
    """Key used for email uniqueness: case-insensitive."""
    return email.strip().lower()
