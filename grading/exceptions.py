class GradingError(Exception):
    """
    Base class for every error the grading engine raises on purpose.

    Views translate these into JSON error responses, so each subclass carries
    the HTTP status and a stable machine readable code.
    """

    status_code = 400
    code = "grading_error"
    default_message = "Grading error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(GradingError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Forbidden(GradingError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to access this resource."


class InvalidAttempt(GradingError):
    status_code = 400
    code = "invalid_attempt"
    default_message = "Attempt does not belong to this student and quiz."


class AlreadySubmitted(GradingError):
    status_code = 409
    code = "already_submitted"
    default_message = "Attempt already submitted"


class TimeExpired(GradingError):
    status_code = 403
    code = "time_expired"
    default_message = "Time limit for this attempt has passed"


class NoAttemptsRemaining(GradingError):
    status_code = 403
    code = "no_attempts_remaining"
    default_message = "No attempts remaining"


class GradingValidationError(GradingError):
    status_code = 400
    code = "validation_error"
    default_message = "Validation error"


class PersistenceUnavailable(GradingError):
    status_code = 503
    code = "persistence_unavailable"
    default_message = "Attempt storage is unavailable"
