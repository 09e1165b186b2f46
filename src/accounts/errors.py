"""Typed account errors.

Services raise these; the HTTP boundary (main.py) turns them into the
response envelope. Each class carries its status code and the message
that is safe to show to clients.
"""


class AccountError(Exception):
    """Base class for all account failures."""

    status_code: int = 400
    public_message: str = "Bad request"

    def __init__(self, message: str | None = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(AccountError):
    status_code = 400
    public_message = "Invalid input"


class MissingCredentialsError(ValidationError):
    public_message = "Username or email is required"


class DuplicateUserError(AccountError):
    status_code = 409
    public_message = "User with this username or email already exists"


class UnauthorizedError(AccountError):
    status_code = 401
    public_message = "Unauthorized access"


class InvalidTokenError(UnauthorizedError):
    """Malformed, expired, mis-signed, rotated-out or orphaned token."""


class UserNotFoundError(UnauthorizedError):
    public_message = "Invalid credentials"


class InvalidPasswordError(UnauthorizedError):
    public_message = "Invalid credentials"


class InternalError(AccountError):
    status_code = 500
    public_message = "Something went wrong"
