# errors.py
"""
Error taxonomy shared by the server and client halves.

Lower layers raise these; Flask error handlers (server) and the generation
workflow (client) are the only places that turn them into user-facing text.
"""


class EduGameError(Exception):
    """Base class for all expected application errors."""

    status_code = 500

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(EduGameError):
    """The request is missing a required field or carries an invalid value."""

    status_code = 400

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class AuthorizationError(EduGameError):
    """Not found or unauthorized."""

    # Indistinguishable from a missing record.
    status_code = 404


class NotFoundError(EduGameError):
    """Not found."""

    status_code = 404


class GenerationError(EduGameError):
    """The game could not be generated. Please try again."""

    status_code = 502


class PersistenceError(EduGameError):
    """The change could not be saved. Please try again."""

    status_code = 500


class TransientHistoryError(EduGameError):
    """Recording a play-history entry failed."""


class ServiceUnavailableError(EduGameError):
    """The database is not configured."""

    status_code = 503


class WorkflowBusyError(EduGameError):
    """Another generation step is still running."""

    status_code = 409
