class ServiceError(Exception):
    """Base for errors raised by the service layer.

    ``status_code`` is what the HTTP layer answers with; ``payload`` is merged
    into the JSON error body.
    """

    status_code = 500

    def __init__(self, message: str, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self):
        body = dict(self.payload)
        body["error"] = self.message
        return body


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """The slot was taken (or blocked) before this request got to it.

    Callers may re-query availability and try another slot.
    """

    status_code = 409

    def __init__(self, message: str, conflicts=None, **payload):
        super().__init__(message, retryable=True, **payload)
        self.conflicts = list(conflicts or [])
        if self.conflicts:
            self.payload["conflicts"] = [s.to_dict() for s in self.conflicts]


class PersistenceError(ServiceError):
    status_code = 503
