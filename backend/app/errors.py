"""Error taxonomy shared by connectors, services and endpoints."""

import math
from enum import Enum
from typing import Mapping, Optional


class UpstreamErrorKind(str, Enum):
    QUOTA_EXHAUSTED = "quota_exhausted"  # HTTP 402
    RATE_LIMITED = "rate_limited"  # HTTP 429
    TRANSIENT = "transient"  # other 4xx/5xx and transport failures


class UpstreamError(Exception):
    """Classified failure of an upstream call, carrying explicit retry/quota hints."""

    kind: UpstreamErrorKind = UpstreamErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after_seconds: Optional[int] = None,
        quota_remaining: Optional[str] = None,
        quota_resets_in: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.retry_after_seconds = retry_after_seconds
        self.quota_remaining = quota_remaining
        self.quota_resets_in = quota_resets_in

    @property
    def http_status(self) -> int:
        """Status to surface to callers; 502 when the failure was not HTTP-shaped."""
        if self.status is not None and self.status >= 400:
            return self.status
        return 502

    @property
    def locks_quota(self) -> bool:
        return self.kind in (UpstreamErrorKind.QUOTA_EXHAUSTED, UpstreamErrorKind.RATE_LIMITED)


class QuotaExhaustedError(UpstreamError):
    kind = UpstreamErrorKind.QUOTA_EXHAUSTED


class RateLimitedError(UpstreamError):
    kind = UpstreamErrorKind.RATE_LIMITED


class UpstreamUnavailableError(UpstreamError):
    kind = UpstreamErrorKind.TRANSIENT


class StoreUnavailableError(Exception):
    """The durable store could not be read or written."""


def parse_retry_after_seconds(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header value; only positive numbers are accepted."""
    if value is None:
        return None
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(parsed) or parsed <= 0:
        return None
    return int(math.ceil(parsed))


def classify_upstream_error(status: int, headers: Mapping[str, str], message: str) -> UpstreamError:
    """Build the tagged error variant for a non-2xx upstream response."""
    kwargs = dict(
        status=status,
        retry_after_seconds=parse_retry_after_seconds(headers.get("Retry-After")),
        quota_remaining=headers.get("X-Toggl-Quota-Remaining"),
        quota_resets_in=headers.get("X-Toggl-Quota-Resets-In"),
    )
    if status == 402:
        return QuotaExhaustedError(message, **kwargs)
    if status == 429:
        return RateLimitedError(message, **kwargs)
    return UpstreamUnavailableError(message, **kwargs)
