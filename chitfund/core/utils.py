from typing import Optional
import math
import time

from chitfund.core.config import settings

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current time in epoch milliseconds, the timestamp unit stored in documents"""
    return int(time.time() * 1000)


def get_days_overdue(last_paid_date: Optional[int], now: Optional[int] = None) -> int:
    """Whole days since the last payment (0 when never paid)"""
    if not last_paid_date:
        return 0
    now = now if now is not None else now_ms()
    return math.ceil(abs(now - last_paid_date) / DAY_MS)


def is_overdue(last_paid_date: Optional[int], now: Optional[int] = None) -> bool:
    """Weekly collection plus one grace day; a customer who never paid is overdue"""
    if not last_paid_date:
        return True
    return get_days_overdue(last_paid_date, now) > settings.OVERDUE_AFTER_DAYS
