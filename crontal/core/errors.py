"""
errors.py — Error taxonomy for the Crontal RFQ pipeline.

Each error carries the HTTP status the API layer answers with, so routes
raise and the Blueprint error handler renders:

    ValidationFailure     400  missing/invalid request fields, upload limits
    NotFound              404  unknown RFQ id
    RateLimited           429  token bucket exhausted
    NormalizationFailure  500  model call or schema decode failed (parse)
    ClarificationFailure  500  model call failed (clarify)
    NegotiationFailure    500  model call failed (negotiate)
"""


class CrontalError(Exception):
    """Base class. `message` is user-facing, `detail` is the raw cause."""
    status_code = 500

    def __init__(self, message: str, detail: str = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"ok": False, "error": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationFailure(CrontalError):
    status_code = 400


class NotFound(CrontalError):
    status_code = 404


class RateLimited(CrontalError):
    status_code = 429


class NormalizationFailure(CrontalError):
    pass


class ClarificationFailure(CrontalError):
    pass


class NegotiationFailure(CrontalError):
    pass
