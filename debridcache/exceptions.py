"""
Exceptions raised inside debridcache.
None of these escape a top-level search or resolution call.
"""


class DebridError(Exception):
    """Base error for provider interactions"""


class RateLimitedError(DebridError):
    """The provider rejected a call with HTTP 429"""

    def __init__(self, endpoint: str, retry_after: float = 0.0):
        super().__init__(f"Rate limited on {endpoint}")
        self.endpoint = endpoint
        self.retry_after = retry_after


class CacheStoreError(Exception):
    """Backing store failure, always caught inside the cache store"""
