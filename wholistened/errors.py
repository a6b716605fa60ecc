"""Request-level failures raised by the game services.

Routes turn these into ``{"error": message}`` JSON responses with the
carried status code; nothing is mutated before one of these is raised.
"""


class GameError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(GameError):
    status_code = 400


class NotFoundError(GameError):
    status_code = 404


class PermissionDeniedError(GameError):
    status_code = 403


class StateConflictError(GameError):
    status_code = 409


class RoomCodeUnavailable(GameError):
    """No free room code after the allowed attempts."""
    status_code = 503
