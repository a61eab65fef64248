# backend/app/utils/time_utils.py

import time
from datetime import date, datetime
from typing import Optional

import pytz

from app.core.config_loader import settings


def local_tz(name: Optional[str] = None):
    return pytz.timezone(name or settings.timezone)


def now_ms() -> int:
    """Epoch milliseconds, the unit used for createdAt/updatedAt."""
    return int(time.time() * 1000)


def today(tz_name: Optional[str] = None) -> date:
    return datetime.now(local_tz(tz_name)).date()


def current_time_str(tz_name: Optional[str] = None) -> str:
    """
    Wall clock for the prompt context, e.g. "2025-03-12 14:05 (Asia/Ho_Chi_Minh)".
    """
    tz = local_tz(tz_name)
    return f"{datetime.now(tz).strftime('%Y-%m-%d %H:%M')} ({tz.zone})"
