"""Leadership loss detection.

Once a campaign loop has confirmed that it won, it watches the exact
record that won the election and yields leadership as soon as that record
is deleted, the watch is cancelled by the service, or the session dies.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from steward.coordination.base import CoordinationClient, EventType, Session, WatchResponse

logger = logging.getLogger(__name__)


class LossReason(str, Enum):
    """Why a leader stopped being leader."""

    CANCELED = "canceled"
    DELETED = "deleted"
    SESSION_DONE = "session_done"
    STREAM_CLOSED = "stream_closed"
    ERROR = "error"


async def watch_owner(
    client: CoordinationClient,
    session: Session,
    record_key: str,
) -> LossReason:
    """Block until leadership held through ``record_key`` is lost.

    Value updates on the record are ignored. Cancelling the calling task
    cancels the watch.
    """
    logger.debug(f"Watching owner key {record_key}")
    stream = client.watch(record_key)
    session_done = asyncio.ensure_future(session.wait_done())
    receive: asyncio.Future[WatchResponse] | None = None

    try:
        while True:
            receive = asyncio.ensure_future(stream.__anext__())
            done, _ = await asyncio.wait(
                {receive, session_done},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if session_done in done:
                logger.info(f"Session expired while watching owner key {record_key}")
                return LossReason.SESSION_DONE

            try:
                response = receive.result()
            except StopAsyncIteration:
                logger.info(f"Watch on owner key {record_key} closed, no owner")
                return LossReason.STREAM_CLOSED
            except Exception as e:
                logger.warning(f"Watch on owner key {record_key} failed: {e}")
                return LossReason.ERROR
            finally:
                receive = None

            if response.canceled:
                logger.info(f"Watch on owner key {record_key} was canceled, no owner")
                return LossReason.CANCELED

            for event in response.events:
                if event.type is EventType.DELETE:
                    logger.info(f"Owner key {record_key} was deleted")
                    return LossReason.DELETED
    finally:
        if receive is not None:
            receive.cancel()
        session_done.cancel()
        await stream.aclose()
