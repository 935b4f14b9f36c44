"""Domain errors raised by services and rendered by the app error handler."""


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class NotFound(ServiceError):
    status_code = 404


class InvalidState(ServiceError):
    status_code = 409


class Forbidden(ServiceError):
    status_code = 403


class InvalidParticipant(Forbidden):
    pass


class InvalidInput(ServiceError):
    status_code = 400


class InvalidScore(ServiceError):
    status_code = 422


class ConcurrentUpdate(ServiceError):
    status_code = 409
