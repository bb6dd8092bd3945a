"""Domain error taxonomy.

Services raise these close to where a rule is violated; ``gtd.main`` turns them
into JSON responses. Anything else escaping a request is logged and answered
with an opaque 500.
"""


class GTDError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(GTDError):
    # also used when the row exists but belongs to someone else
    status_code = 404
    default_message = "Not found"


class ConflictError(GTDError):
    status_code = 409
    default_message = "Conflict"


class BadRequestError(GTDError):
    status_code = 400
    default_message = "Bad request"


class ForbiddenError(GTDError):
    status_code = 403
    default_message = "Forbidden"


class InternalError(GTDError):
    status_code = 500
    default_message = "Internal server error"
