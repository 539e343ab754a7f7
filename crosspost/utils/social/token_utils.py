from datetime import datetime, timezone, timedelta


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_token_expiry(val):
    """
    Normalize a stored expiry into an aware UTC datetime or None.
    Accepts:
      - datetime (naive values are taken as UTC, which is how pymongo returns them)
      - ISO string
      - unix timestamp (seconds)
    """
    if not val:
        return None

    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)

    if isinstance(val, str):
        try:
            dt = datetime.fromisoformat(val.replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

    try:
        return datetime.fromtimestamp(float(val), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def expires_at_from(expires_in, now=None):
    """Absolute expiry from a relative `expires_in` seconds value."""
    if expires_in is None:
        return None
    return (now or utcnow()) + timedelta(seconds=int(expires_in))


def is_token_expired(expires_at, now=None) -> bool:
    exp_dt = parse_token_expiry(expires_at)
    if not exp_dt:
        # No expiry recorded => non-expiring
        return False
    return (now or utcnow()) >= exp_dt


def is_token_expiring_soon(expires_at, buffer_seconds: int = 300, now=None) -> bool:
    exp_dt = parse_token_expiry(expires_at)
    if not exp_dt:
        return False
    return (now or utcnow()) >= exp_dt - timedelta(seconds=buffer_seconds)


def days_until_expiry(expires_at, now=None):
    exp_dt = parse_token_expiry(expires_at)
    if not exp_dt:
        return None
    return (exp_dt - (now or utcnow())).total_seconds() / 86400.0
