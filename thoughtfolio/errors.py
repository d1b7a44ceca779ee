"""Service-level exceptions and the error classifier shown to users."""


class ThoughtFolioError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ThoughtFolioError):
    status_code = 400


class LimitExceededError(ThoughtFolioError):
    status_code = 400


class NotFoundError(ThoughtFolioError):
    status_code = 404


class ForbiddenError(ThoughtFolioError):
    status_code = 403


class ConflictError(ThoughtFolioError):
    status_code = 409


class QuotaExceededError(ThoughtFolioError):
    status_code = 429


class ExtractionError(ThoughtFolioError):
    """A linked page could not be turned into readable text."""

    status_code = 422


class AIUnavailableError(ThoughtFolioError):
    """The generative model could not be reached or returned nothing usable."""

    status_code = 503


# (category, substrings, user-facing message), checked in order
_ERROR_CLASSES = [
    ("network", ("network", "fetch", "timeout", "econnrefused", "offline"),
     "Connection problem. Check your internet and try again."),
    ("auth", ("not authenticated", "unauthorized", "401", "jwt", "session"),
     "Your session has expired. Please sign in again."),
    ("rate_limit", ("rate limit", "429", "too many requests", "quota"),
     "You've hit the limit for now. Try again later."),
    ("validation", ("required", "must be", "invalid", "too large", "limited to"),
     None),
]


def classify_error(message: str) -> tuple[str, str]:
    """Sort a raw error message into a coarse category.

    Validation messages are already written for people, so they pass
    through unchanged.
    """
    text = (message or "").lower()
    for category, needles, friendly in _ERROR_CLASSES:
        if any(n in text for n in needles):
            return category, friendly or message
    return "unknown", "Something went wrong. Please try again."
