# Error taxonomy; every rejection carries its HTTP status and the message sent as {"message": ...}
from typing import Optional


class AppError(Exception):
    status_code = 400
    message = "Invalid input"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class RateLimitExceeded(AppError):
    status_code = 429
    message = "Too many submissions. Please try again later."

    def __init__(self, retry_after: int = 0):
        super().__init__()
        self.retry_after = retry_after


class BotCheckFailed(AppError):
    message = "reCAPTCHA verification failed"


class ValidationFailed(AppError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class SuspiciousContent(AppError):
    message = "Message contains suspicious content"


class DuplicateSubmission(AppError):
    status_code = 429
    message = "Too many submissions from this email address. Please try again later."


class MissingRequiredFields(AppError):
    def __init__(self, fields: list[str]):
        super().__init__(f"Missing required fields: {', '.join(fields)}")
        self.fields = fields


class PersistenceFailure(AppError):
    status_code = 500
    message = "Server error"


class AuthRejected(AppError):
    status_code = 401
    message = "Invalid credentials"
