"""Live dashboard feed: polls a session's events and emits server-sent events."""
import asyncio
import json
import logging
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from app.config import settings
from app.services import store
from app.services.aggregate import attendance_percentage
from app.services.sessions import is_expired

logger = logging.getLogger(__name__)


async def watch_session(
    session_id: str,
    roster_size: int,
    poll_interval: Optional[float] = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> AsyncIterator[dict]:
    """Yield a snapshot on the first poll, whenever new check-ins arrive, and once on expiry.

    New events within a snapshot are in commit order. The generator ends after
    the session expires or disappears.
    """
    poll_interval = settings.live_poll_interval_seconds if poll_interval is None else poll_interval
    seen: set[str] = set()
    first = True
    while True:
        session = await store.get_session(session_id)
        expired = session is None or is_expired(session, clock())
        events = await store.events_for_session(session_id)
        new = [e for e in events if str(e.id) not in seen]
        seen.update(str(e.id) for e in new)

        if first or new or expired:
            present = len(seen)
            yield {
                "session_id": session_id,
                "present": present,
                "absent": max(roster_size - present, 0),
                "percentage": attendance_percentage(present, roster_size),
                "expired": expired,
                "new": [
                    {
                        "id": e.student_id,
                        "roll_number": e.roll_number,
                        "name": e.name,
                        "father": e.father,
                        "checkInTime": e.timestamp.isoformat(),
                    }
                    for e in new
                ],
            }
        first = False
        if expired:
            logger.info(f"Live feed for session {session_id} closed")
            return
        await asyncio.sleep(poll_interval)


async def sse_stream(snapshots: AsyncIterator[dict]) -> AsyncIterator[str]:
    async for snapshot in snapshots:
        yield f"event: attendance\ndata: {json.dumps(snapshot)}\n\n"
