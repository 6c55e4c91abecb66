class ServiceError(Exception):
    """Base error raised by the service layer and rendered as `{"detail": ...}`."""
    status_code: int = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ServiceError):
    """Malformed input: unknown question, out of range option, inaccessible test."""
    status_code = 422


class NotFoundError(ServiceError):
    """Entity does not exist or is not owned by the caller."""
    status_code = 404


class ConflictError(ServiceError):
    """Operation does not fit the attempt's current state."""
    status_code = 409


class AttemptExpiredError(ConflictError):
    status_code = 403
