"""Time-to-live resolution for session rows."""

from typing import Any, Callable, Optional, Union

# One day in seconds
ONE_DAY = 86400

TtlPolicy = Union[int, Callable[[Any, Any, Optional[str]], int], None]


def resolve_ttl(policy: TtlPolicy, store: Any, payload: Any, sid: Optional[str] = None) -> int:
    """Return the TTL in seconds for ``payload``.

    A fixed integer policy wins, then a callable ``policy(store, payload, sid)``.
    Without a policy the session cookie's ``maxAge`` (milliseconds) is used,
    falling back to one day.
    """
    if isinstance(policy, int) and not isinstance(policy, bool):
        return policy
    if callable(policy):
        return int(policy(store, payload, sid))

    cookie = payload.get("cookie") if isinstance(payload, dict) else None
    max_age = cookie.get("maxAge") if isinstance(cookie, dict) else None
    if isinstance(max_age, (int, float)) and not isinstance(max_age, bool):
        return int(max_age // 1000)
    return ONE_DAY
