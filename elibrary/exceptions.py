"""Error taxonomy shared by the services and the HTTP error formatter."""

from fastapi import status


class LibraryError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal Server Error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(LibraryError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class AuthenticationError(LibraryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication failed"


class AuthorizationError(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Unauthorized"


class NotFoundError(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class ConflictError(LibraryError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Resource already exists"


class DependencyError(LibraryError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Upstream service failure"
