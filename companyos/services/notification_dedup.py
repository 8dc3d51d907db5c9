"""
Notification deduplication policy.

Pure predicate deciding whether a proposed notification has effectively
already been delivered. Shared by every expiration checker; per-kind
re-notification cadence is passed in as a parameter.
"""

from typing import Any, Iterable, Optional

from companyos.models.notification import NotificationCandidate


def _field(notification: Any, name: str) -> Any:
    if isinstance(notification, dict):
        return notification.get(name)
    return getattr(notification, name, None)


def _record_id_of(notification: Any) -> Optional[str]:
    record_id = _field(notification, "record_id")
    if record_id is not None:
        return str(record_id)
    metadata = _field(notification, "extra_metadata") or _field(notification, "metadata") or {}
    value = metadata.get("record_id") if isinstance(metadata, dict) else None
    return str(value) if value is not None else None


def _type_of(notification: Any) -> Optional[str]:
    value = _field(notification, "type")
    return getattr(value, "value", value)


def _is_unread(notification: Any) -> bool:
    return not bool(_field(notification, "read"))


def matches_dedup_key(candidate: NotificationCandidate, notification: Any) -> bool:
    """True when the notification shares the candidate's (type, record id)."""
    return (
        _type_of(notification) == candidate.type.value
        and _record_id_of(notification) == str(candidate.record_id)
    )


def is_renotify_day(cadence_day: Optional[int], every_days: Optional[int]) -> bool:
    """
    True when a cadence rule lets an already-alerted record alert again.

    Within the first cadence window every run may alert; afterwards only on
    exact multiples of the cadence.
    """
    if not every_days or cadence_day is None:
        return False
    return cadence_day <= every_days or cadence_day % every_days == 0


def should_suppress(
    candidate: NotificationCandidate,
    existing_unread: Iterable[Any],
    allow_renotify_every: Optional[int] = None,
) -> bool:
    """
    Decide whether a candidate must be suppressed.

    Args:
        candidate: Proposed notification
        existing_unread: Notifications already stored (ORM rows or dicts);
            read ones are ignored
        allow_renotify_every: Re-notification cadence in days, or None to
            suppress on any unread match

    Returns:
        True if an unread notification with the same type and record id
        exists and the cadence rule does not allow another alert
    """
    already_notified = any(
        _is_unread(n) and matches_dedup_key(candidate, n)
        for n in existing_unread
    )
    if not already_notified:
        return False
    return not is_renotify_day(candidate.cadence_day, allow_renotify_every)
