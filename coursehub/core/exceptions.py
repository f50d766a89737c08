class CourseHubError(Exception):
    """Base exception for CourseHub billing.

    ``status_code`` is what the global exception handler answers with.
    """

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(CourseHubError):
    """Raised when a User, Plan or Subscription row does not exist."""

    status_code = 404


class ConflictError(CourseHubError):
    """Raised on a duplicate subscription or a concurrent billing operation."""

    status_code = 409


class RemoteProviderError(CourseHubError):
    """Raised when a Stripe call fails."""

    status_code = 502

    def __init__(self, operation: str, message: str, status_code: int | None = None):
        self.operation = operation
        super().__init__(message, status_code)
