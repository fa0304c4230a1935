"""Outbound notifications triggered by selection outcomes.

Delivery itself (templates, SMTP/Resend) is an external collaborator
behind :class:`EmailSender`.  Sends happen after the arbiter's
transaction has committed and never affect its result: a failed send is
logged and swallowed here, and a send that hangs is abandoned after
``send_timeout_seconds``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Protocol

import structlog

from guide_match.models.selection import Selection

logger = structlog.get_logger()

DEFAULT_SEND_TIMEOUT_SECONDS = 10.0


class MatchNotice:
    TOURIST_ACCEPTED = "tourist_accepted"
    GUIDE_CONFIRMED = "guide_confirmed"
    REQUEST_FILLED = "request_filled"


class EmailSender(Protocol):
    async def send(self, selection: Selection, outcome: str) -> None: ...


class LoggingEmailSender:
    """Records each dispatch in the log instead of delivering it."""

    async def send(self, selection: Selection, outcome: str) -> None:
        logger.info(
            "email_dispatched",
            outcome=outcome,
            request_id=selection.request_id,
            student_id=selection.student_id,
            selection_id=selection.id,
        )


class NotificationFanout:
    def __init__(
        self, sender: EmailSender, send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS
    ) -> None:
        self.sender = sender
        self.send_timeout_seconds = send_timeout_seconds

    async def _send(self, selection: Selection, outcome: str) -> bool:
        try:
            await asyncio.wait_for(
                self.sender.send(selection, outcome), self.send_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "email_send_timeout",
                outcome=outcome,
                request_id=selection.request_id,
                selection_id=selection.id,
                timeout_seconds=self.send_timeout_seconds,
            )
            return False
        except Exception:
            logger.exception(
                "email_send_failed",
                outcome=outcome,
                request_id=selection.request_id,
                selection_id=selection.id,
            )
            return False
        return True

    async def match_won(
        self, winner: Selection, expired_siblings: Sequence[Selection] = ()
    ) -> int:
        """Notify the tourist and winning guide, then every guide who missed out.

        Returns the number of notices that were handed off successfully.
        """
        sent = 0
        for outcome in (MatchNotice.TOURIST_ACCEPTED, MatchNotice.GUIDE_CONFIRMED):
            sent += await self._send(winner, outcome)
        for sibling in expired_siblings:
            sent += await self._send(sibling, MatchNotice.REQUEST_FILLED)

        expected = 2 + len(expired_siblings)
        if sent < expected:
            logger.warning(
                "match_notifications_incomplete",
                request_id=winner.request_id,
                sent=sent,
                expected=expected,
            )
        return sent
