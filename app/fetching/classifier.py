"""
Decide whether an upstream failure is throttling (retryable) or permanent.
"""

from __future__ import annotations

RATE_LIMIT_STATUS_CODE = 429


def _status_of(error: BaseException) -> int | None:
    for attribute in ("status_code", "status"):
        value = getattr(error, attribute, None)
        if isinstance(value, int):
            return value

    # requests.HTTPError and SDK errors that keep the response around
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_rate_limit_error(error: BaseException) -> bool:
    """
    True when the error carries HTTP 429 or its message mentions 429.
    """

    if _status_of(error) == RATE_LIMIT_STATUS_CODE:
        return True
    return str(RATE_LIMIT_STATUS_CODE) in str(error)
