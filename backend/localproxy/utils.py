from datetime import datetime, timedelta, timezone
import re

def now_utc():
    return datetime.now(timezone.utc)

def epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)

def iso_period_to_timedelta(s: str, default: timedelta = timedelta(days=1)):
    # Supports simple shorthands like "5m", "6h", "7d" or ISO-ish "P7D" / "PT6H"
    s = (s or "").lower().strip()
    for suffix, unit in (("m", "minutes"), ("h", "hours"), ("d", "days")):
        if s.endswith(suffix) and s[:-1].isdigit():
            return timedelta(**{unit: int(s[:-1])})
    m = re.fullmatch(r"p(\d+)d", s)
    if m:
        return timedelta(days=int(m.group(1)))
    m = re.fullmatch(r"pt(\d+)h", s)
    if m:
        return timedelta(hours=int(m.group(1)))
    return default

def bucket_start(ts_ms: int, width: timedelta) -> int:
    """Floor an epoch-ms timestamp to its bucket, aligned to the epoch."""
    step = int(width.total_seconds() * 1000)
    return (ts_ms // step) * step
