from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId

from wagerledger.errors import NotFoundError


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def round_money(amount: float) -> float:
    """Round a unit amount to cents."""
    return round(float(amount), 2)


def to_object_id(value, what: str = "Document") -> ObjectId:
    """Parse an id from a path or document, raising NotFoundError when malformed."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} {value} not found.")
