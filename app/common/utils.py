from typing import Any, Dict, Tuple
from datetime import datetime, timezone


def page_window(page: int, per_page: int) -> Tuple[int, int]:
    """Return (offset, limit) for a 1-indexed page."""
    page = max(1, int(page))
    per_page = max(1, int(per_page))
    return (page - 1) * per_page, per_page


def pagination_meta(page: int, per_page: int, total: int) -> Dict[str, Any]:
    """Pagination block for list responses"""
    page = max(1, int(page))
    per_page = max(1, int(per_page))
    pages = (total + per_page - 1) // per_page
    return {
        'page': page,
        'per_page': per_page,
        'total': total,
        'pages': pages,
        'has_next': page < pages,
        'has_prev': page > 1,
    }


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def elapsed_minutes(start: datetime, end: datetime) -> float:
    """Minutes between two instants; negative when the clock moved backwards."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 60.0


