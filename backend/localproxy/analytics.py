import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from pydantic import ValidationError
from .models import LogEvent, Decision
from .schemas import Dashboard, ConnectionBucket, RequestDetail
from .utils import now_utc, epoch_ms, iso_period_to_timedelta, bucket_start

log = logging.getLogger("analytics")

# range key -> bucket width; the key itself is the window length
TIME_RANGES = {
    "1h": "5m",
    "6h": "30m",
    "24h": "60m",
    "7d": "6h",
    "30d": "1d",
}
DEFAULT_RANGE = "24h"

def resolve_range(range_key: str) -> Tuple[timedelta, timedelta]:
    key = range_key if range_key in TIME_RANGES else DEFAULT_RANGE
    return iso_period_to_timedelta(key), iso_period_to_timedelta(TIME_RANGES[key])

def get_dashboard(db: Session, range_key: str, now: Optional[datetime] = None) -> Dashboard:
    """Aggregate the request log over the window named by ``range_key``.

    Rows with ``now - window <= timestamp <= now`` are counted into
    epoch-aligned buckets (so a bucket may start before the window does).
    Buckets come back oldest first, detail rows newest first.
    """
    window, width = resolve_range(range_key)
    end = now or now_utc()
    start_ms, end_ms = epoch_ms(end - window), epoch_ms(end)
    out = Dashboard(time_range=range_key)

    q = (select(LogEvent)
         .where(LogEvent.timestamp >= start_ms, LogEvent.timestamp <= end_ms)
         .order_by(desc(LogEvent.timestamp), desc(LogEvent.id)))
    try:
        rows = db.scalars(q).all()
    except SQLAlchemyError as e:
        log.error("Failed to query request log for %s: %s", range_key, e)
        return out

    buckets: Dict[int, ConnectionBucket] = {}
    for row in rows:
        try:
            detail = RequestDetail.model_validate(row)
        except ValidationError as e:
            log.warning("Skipping malformed request log row %s: %s", row.id, e.errors()[:1])
            continue
        key = bucket_start(detail.timestamp, width)
        b = buckets.get(key)
        if b is None:
            b = buckets[key] = ConnectionBucket(timestamp=key)
        b.count += 1
        if detail.decision == Decision.APPROVED.value:
            b.approved += 1
            out.approved_count += 1
        else:
            b.rejected += 1
            out.rejected_count += 1
        out.requests.append(detail)
    out.total_requests = len(out.requests)
    out.connections = [buckets[k] for k in sorted(buckets)]
    return out
