"""
ARQ background task: delete expired legacy sessions.

Lookups already reject expired sessions; this keeps the table from growing.
"""

from __future__ import annotations

from datetime import timedelta

import structlog

from app.core.config import get_settings
from app.core.sessions import SessionLedger
from app.core.store import get_store

log = structlog.get_logger()


async def purge_expired_sessions(ctx: dict) -> int:
    """Returns the number of sessions removed."""
    ledger = SessionLedger(
        ctx.get("store") or get_store(),
        ttl=timedelta(hours=get_settings().session_ttl_hours),
    )
    count = await ledger.purge_expired()
    log.info("session_purge.completed", count=count)
    return count


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [purge_expired_sessions]
    cron_jobs = [
        {
            "coroutine": purge_expired_sessions,
            "hour": None,  # every hour
            "minute": 15,
        },
    ]
