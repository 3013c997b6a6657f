"""Domain exceptions raised by services and mapped to HTTP responses.

Services raise these instead of building responses; `main` registers a
single handler that turns them into `{"detail": message}` with the
class's `status_code`.
"""


class ServiceError(Exception):
    """Invalid input or a request that cannot be carried out (400)."""
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class ExpiredError(ServiceError):
    """The resource existed but is no longer valid (410)."""
    status_code = 410


class AccessDeniedError(ServiceError):
    status_code = 403


class UpstreamError(ServiceError):
    """A third-party API (Figma, OAuth provider) failed (502)."""
    status_code = 502
