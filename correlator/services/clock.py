import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_date(epoch_ms: int) -> str:
    """YYYY-MM-DD of an epoch-ms instant in UTC."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def utc_day_start(date: str) -> int:
    """Epoch ms of midnight UTC on a YYYY-MM-DD date."""
    day = datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return int(day.timestamp() * 1000)
