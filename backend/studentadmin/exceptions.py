"""Domain exceptions shared by services, the access guard and the API.

Every error the core raises derives from `StudentAdminError`. Each class
carries the HTTP status and a short machine-readable `code` so the API
layer can translate them with a single exception handler.
"""

from typing import Optional


class StudentAdminError(Exception):
    """Base exception for all student administration errors."""
    status_code = 400
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationFailedError(StudentAdminError):
    """Username/password pair did not match a stored credential."""
    status_code = 401
    code = "authentication_failed"

    def __init__(self, message: str = "invalid credentials"):
        super().__init__(message)


class UnauthenticatedError(StudentAdminError):
    """No usable session token accompanied the request."""
    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "authentication required"):
        super().__init__(message)


class ForbiddenError(StudentAdminError):
    """The caller's roles do not grant the requested operation."""
    status_code = 403
    code = "forbidden"

    def __init__(self, operation: str):
        super().__init__(f"operation '{operation}' is not permitted for this identity")
        self.operation = operation


class InvalidTokenError(StudentAdminError):
    """A session token could not be accepted."""
    status_code = 401
    code = "invalid_token"


class InvalidSignatureError(InvalidTokenError):
    """Token is malformed, tampered with or signed with a foreign key."""
    code = "invalid_signature"

    def __init__(self, message: str = "invalid token"):
        super().__init__(message)


class TokenExpiredError(InvalidTokenError):
    """Token signature is valid but its expiry has passed."""
    code = "token_expired"

    def __init__(self, message: str = "token expired"):
        super().__init__(message)


class TooManyAttemptsError(StudentAdminError):
    status_code = 429
    code = "too_many_attempts"

    def __init__(self, retry_after: int):
        super().__init__(f"too many login attempts; retry after {retry_after}s")
        self.retry_after = retry_after


class NotFoundError(StudentAdminError):
    """A referenced record does not exist."""
    status_code = 404
    code = "not_found"
    kind = "Record"

    def __init__(self, record_id, kind: Optional[str] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(f"{self.kind} not found: {record_id}")
        self.record_id = record_id


class GradeNotFoundError(NotFoundError):
    kind = "Grade"


class MembershipNotFoundError(NotFoundError):
    kind = "Membership"


class ActivityNotFoundError(NotFoundError):
    kind = "Activity"


class StudentNotFoundError(NotFoundError):
    kind = "Student"


class UserNotFoundError(NotFoundError):
    kind = "User"


class DuplicateActivityError(StudentAdminError):
    """An activity with a conflicting name already exists."""
    status_code = 409
    code = "duplicate_activity"


class DuplicateActivityNameError(DuplicateActivityError):
    code = "duplicate_activity_name"

    def __init__(self, name: str):
        super().__init__(f"activity name already exists: {name.strip()}")
        self.name = name


class DuplicateActivityNameAndSuffixError(DuplicateActivityError):
    code = "duplicate_activity_name_and_suffix"

    def __init__(self, name: str, suffix: str):
        super().__init__(f"activity already exists with name '{name.strip()}' and type suffix '{suffix}'")
        self.name = name
        self.suffix = suffix


class DuplicateUserError(StudentAdminError):
    status_code = 409
    code = "duplicate_user"

    def __init__(self, username: str):
        super().__init__(f"username already exists: {username}")
        self.username = username


class InvalidMembershipTypeError(StudentAdminError):
    code = "invalid_membership_type"

    def __init__(self, membership_type):
        super().__init__(f"invalid membership type: {membership_type!r}")
        self.membership_type = membership_type


class ValidationFailedError(StudentAdminError):
    """Input failed request validation or violates a domain rule."""
    status_code = 422
    code = "validation_failed"

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class PersistenceFailure(StudentAdminError):
    """Wraps an underlying storage error.

    The original exception is kept on `__cause__` for logging; the message
    returned to callers stays generic.
    """
    status_code = 500
    code = "persistence_failure"

    def __init__(self, message: str = "storage operation failed"):
        super().__init__(message)


class ConstraintViolation(PersistenceFailure):
    """A storage-level integrity constraint rejected a write."""
    code = "constraint_violation"
