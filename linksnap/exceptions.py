from typing import Optional


class ShortenerError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInput(ShortenerError):
    status_code = 400
    default_detail = "Invalid input"


class InvalidAlias(InvalidInput):
    default_detail = "Invalid custom alias"


class Conflict(ShortenerError):
    status_code = 400
    default_detail = "Conflict"


class DuplicateShortCode(Conflict):
    default_detail = "Short code already exists"


class AliasTaken(Conflict):
    default_detail = "Custom alias already taken"


class AllocationExhausted(Conflict):
    default_detail = "Could not generate a unique short code"


class NotFound(ShortenerError):
    status_code = 404
    default_detail = "Short URL not found"


class Expired(ShortenerError):
    status_code = 410
    default_detail = "Short URL has expired"


class RateLimited(ShortenerError):
    status_code = 429
    default_detail = "Rate limit exceeded"

    def __init__(self, detail: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(detail)
        self.retry_after = retry_after


class Unauthorized(ShortenerError):
    status_code = 401
    default_detail = "Authentication required"


class Forbidden(ShortenerError):
    status_code = 403
    default_detail = "Invalid identity"


class StoreError(ShortenerError):
    pass
