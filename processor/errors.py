"""Error kinds raised by the sync and attendance engines."""


class DomainError(Exception):
    """Base class for errors reported back to the caller verbatim."""

    message = "Request failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidIdentifier(DomainError):
    """Raised when an identifier does not match the store's id format."""

    def __init__(self, field: str = "event"):
        self.field = field
        super().__init__(f"Invalid {field} ID")


class InvalidName(DomainError):
    message = "Invalid name"


class InvalidEmail(DomainError):
    message = "Invalid email"


class EventNotFound(DomainError):
    message = "Event does not exist"


class PersonNotFound(DomainError):
    message = "Member does not exist"


class AlreadyCheckedIn(DomainError):
    message = "Member already checked in"


class NotCheckedIn(DomainError):
    message = "Member is not checked in to this event"


class EmailNameMismatch(DomainError):
    message = "A member with a different name is associated with this email"


class DuplicateEmail(DomainError):
    """Raised by the person store when an email is already claimed."""

    message = "A member with this email already exists"


class DuplicateExternalLink(DomainError):
    """Raised by the event store when another event holds the external link."""

    message = "An event with this external link already exists"


class InvalidEventTime(DomainError):
    message = "Invalid event time"


class InvalidSortOrder(DomainError):
    message = "Invalid sort order"


class FetchError(Exception):
    """Raised when the external feed could not be read. Safe to retry."""

    retryable = True


class StoreWriteError(Exception):
    """Raised when a store write fails."""

    def __init__(self, message: str, item_id: str = None):
        super().__init__(message)
        self.item_id = item_id
