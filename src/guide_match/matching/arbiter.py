"""Selection state machine and accept-race arbitration.

Selection lifecycle::

    pending -> accepted | declined | expired      (all terminal)

Several guides may follow their accept links for the same request at the
same moment, from any number of stateless server instances.  Exactly one
of them may win.  That guarantee lives in the database, not in this
process:

- the accept is a single conditional ``UPDATE`` that only matches a row
  which is still ``pending``, whose request is still ``open``, and which
  has no ``accepted`` sibling (``NOT EXISTS``);
- the partial unique index ``uq_selections_one_accepted`` rejects a second
  accepted row even when two such updates pass their ``NOT EXISTS`` check
  concurrently.  The resulting ``IntegrityError`` is translated into
  ``LOST_RACE``.

Nothing here retries.  A storage timeout surfaces as
:class:`~guide_match.errors.StorageTimeout` and the caller decides.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import sqlalchemy as sa
import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from guide_match.clock import Clock, SystemClock, naive_utc
from guide_match.db.timeouts import bounded
from guide_match.errors import ConfigError, SelectionNotFound, StorageConflict, ValidationError
from guide_match.models.audit_log import AuditLog
from guide_match.models.base import new_id
from guide_match.models.selection import Selection, SelectionStatus
from guide_match.models.tourist_request import RequestStatus, TouristRequest
from guide_match.notifications.fanout import NotificationFanout

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 5.0

# deadlock_detected, serialization_failure
TRANSIENT_SQLSTATES = frozenset({"40P01", "40001"})


class RespondOutcome(str, enum.Enum):
    WON = "won"
    LOST_RACE = "lost_race"
    DECLINED = "declined"
    ALREADY_RESOLVED = "already_resolved"
    REQUEST_CLOSED = "request_closed"


@dataclass(frozen=True)
class RespondResult:
    """What happened to one respond call.

    ``selection`` reflects the row as committed.  ``expired_siblings`` is
    only populated for ``WON``.
    """

    outcome: RespondOutcome
    selection: Selection
    expired_siblings: tuple[Selection, ...] = field(default=())

    @property
    def status(self) -> str:
        return self.selection.status

    @property
    def request_id(self) -> str:
        return self.selection.request_id


def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise ConfigError(f"Unsupported dialect for selection fan-out: {dialect_name}")


def _is_transient(exc: DBAPIError) -> bool:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    return sqlstate in TRANSIENT_SQLSTATES


async def _reload(session: AsyncSession, selection_id: str) -> Selection:
    stmt = (
        sa.select(Selection)
        .where(Selection.id == selection_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one()


async def _winner_exists(session: AsyncSession, request_id: str) -> bool:
    stmt = sa.select(
        sa.select(Selection.id)
        .where(
            Selection.request_id == request_id,
            Selection.status == SelectionStatus.ACCEPTED,
        )
        .exists()
    )
    return bool(await session.scalar(stmt))


class SelectionArbiter:
    """Owns every write to ``selections`` after fan-out."""

    def __init__(
        self,
        fanout: NotificationFanout,
        clock: Clock | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.fanout = fanout
        self.clock = clock or SystemClock()
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def create_selections(
        self,
        session: AsyncSession,
        request_id: str,
        candidate_ids: Iterable[str],
    ) -> list[Selection]:
        """Create one pending selection per candidate guide.

        Idempotent: candidates that already have a selection for this
        request (or appear twice in *candidate_ids*) are skipped without
        error.  Returns the selections for all given candidates, in input
        order.
        """
        return await bounded(
            "create_selections",
            self._create_selections(session, request_id, list(dict.fromkeys(candidate_ids))),
            self.timeout_seconds,
        )

    async def _create_selections(
        self, session: AsyncSession, request_id: str, candidate_ids: list[str]
    ) -> list[Selection]:
        async with session.begin():
            request = await session.get(TouristRequest, request_id)
            if request is None:
                raise ValidationError(f"Request {request_id} not found")
            if not candidate_ids:
                return []

            insert = _insert_for(session.get_bind().dialect.name)
            stmt = (
                insert(Selection)
                .values(
                    [
                        {
                            "id": new_id(),
                            "request_id": request_id,
                            "student_id": student_id,
                            "status": SelectionStatus.PENDING,
                        }
                        for student_id in candidate_ids
                    ]
                )
                .on_conflict_do_nothing(index_elements=["request_id", "student_id"])
            )
            await session.execute(stmt)

            rows_stmt = (
                sa.select(Selection)
                .where(
                    Selection.request_id == request_id,
                    Selection.student_id.in_(candidate_ids),
                )
                .execution_options(populate_existing=True)
            )
            rows = (await session.execute(rows_stmt)).scalars().all()

        by_student = {row.student_id: row for row in rows}
        logger.info("selections_created", request_id=request_id, candidates=len(candidate_ids))
        return [by_student[sid] for sid in candidate_ids if sid in by_student]

    # ------------------------------------------------------------------
    # Respond
    # ------------------------------------------------------------------

    async def respond(
        self,
        session: AsyncSession,
        selection_id: str,
        request_id: str,
        student_id: str,
        action: str,
    ) -> RespondResult:
        """Apply a guide's accept/decline to their selection.

        Raises:
            SelectionNotFound: no selection matches all three identifiers.
            StorageTimeout: the transaction did not finish in time.
        """
        if action not in ("accept", "decline"):
            raise ValueError(f"Unknown action: {action!r}")

        result = await bounded(
            "respond",
            self._respond(session, selection_id, request_id, student_id, action),
            self.timeout_seconds,
        )

        if result.outcome is RespondOutcome.WON:
            await self.fanout.match_won(result.selection, result.expired_siblings)
        return result

    async def _respond(
        self,
        session: AsyncSession,
        selection_id: str,
        request_id: str,
        student_id: str,
        action: str,
    ) -> RespondResult:
        now = naive_utc(self.clock.now())
        try:
            async with session.begin():
                stmt = (
                    sa.select(Selection)
                    .where(
                        Selection.id == selection_id,
                        Selection.request_id == request_id,
                        Selection.student_id == student_id,
                    )
                    .execution_options(populate_existing=True)
                )
                selection = (await session.execute(stmt)).scalar_one_or_none()
                if selection is None:
                    logger.warning(
                        "selection_not_found",
                        selection_id=selection_id,
                        request_id=request_id,
                        student_id=student_id,
                    )
                    raise SelectionNotFound("identifier triple does not match a selection")

                if selection.status in SelectionStatus.TERMINAL:
                    return self._already_resolved(selection)

                if action == "decline":
                    return await self._decline(session, selection, now)
                return await self._accept(session, selection, now)
        except IntegrityError:
            # Another accept for this request committed between our
            # NOT EXISTS check and our write.
            return await self._lost_after_conflict(session, selection_id, now)
        except DBAPIError as exc:
            if not _is_transient(exc):
                raise
            logger.warning(
                "respond_transaction_aborted",
                selection_id=selection_id,
                sqlstate=getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None),
            )
            return await self._lost_after_conflict(session, selection_id, now)

    def _already_resolved(self, selection: Selection) -> RespondResult:
        logger.info(
            "selection_already_resolved",
            selection_id=selection.id,
            request_id=selection.request_id,
            status=selection.status,
        )
        return RespondResult(RespondOutcome.ALREADY_RESOLVED, selection)

    async def _decline(
        self, session: AsyncSession, selection: Selection, now: datetime
    ) -> RespondResult:
        stmt = (
            sa.update(Selection)
            .where(Selection.id == selection.id, Selection.status == SelectionStatus.PENDING)
            .values(status=SelectionStatus.DECLINED, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        updated = (await session.execute(stmt)).rowcount
        selection = await _reload(session, selection.id)
        if updated == 0:
            return self._already_resolved(selection)

        session.add(
            AuditLog(
                action_type="selection_decline",
                request_id=selection.request_id,
                selection_id=selection.id,
                student_id=selection.student_id,
            )
        )
        logger.info("selection_declined", selection_id=selection.id, request_id=selection.request_id)
        return RespondResult(RespondOutcome.DECLINED, selection)

    async def _accept(
        self, session: AsyncSession, selection: Selection, now: datetime
    ) -> RespondResult:
        request_id = selection.request_id
        sibling = aliased(Selection)

        # Accepts for one request queue on the request row.
        await session.execute(
            sa.select(TouristRequest.id)
            .where(TouristRequest.id == request_id)
            .with_for_update(key_share=True)
        )

        request_open = (
            sa.select(TouristRequest.id)
            .where(
                TouristRequest.id == request_id,
                TouristRequest.status == RequestStatus.OPEN,
                sa.or_(TouristRequest.expires_at.is_(None), TouristRequest.expires_at > now),
            )
            .exists()
        )
        winner_exists = (
            sa.select(sibling.id)
            .where(
                sibling.request_id == request_id,
                sibling.status == SelectionStatus.ACCEPTED,
            )
            .exists()
        )
        stmt = (
            sa.update(Selection)
            .where(
                Selection.id == selection.id,
                Selection.status == SelectionStatus.PENDING,
                request_open,
                ~winner_exists,
            )
            .values(status=SelectionStatus.ACCEPTED, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        updated = (await session.execute(stmt)).rowcount

        if updated == 1:
            return await self._close_request(session, selection, now)
        return await self._explain_failed_accept(session, selection.id, now)

    async def _close_request(
        self, session: AsyncSession, selection: Selection, now: datetime
    ) -> RespondResult:
        """Winner bookkeeping, inside the winning transaction."""
        request_id = selection.request_id

        await session.execute(
            sa.update(TouristRequest)
            .where(TouristRequest.id == request_id)
            .values(status=RequestStatus.MATCHED, assigned_student_id=selection.student_id)
            .execution_options(synchronize_session=False)
        )

        pending_stmt = sa.select(Selection.id).where(
            Selection.request_id == request_id,
            Selection.id != selection.id,
            Selection.status == SelectionStatus.PENDING,
        )
        pending_ids = list((await session.execute(pending_stmt)).scalars().all())
        if pending_ids:
            await session.execute(
                sa.update(Selection)
                .where(Selection.id.in_(pending_ids), Selection.status == SelectionStatus.PENDING)
                .values(status=SelectionStatus.EXPIRED, responded_at=now)
                .execution_options(synchronize_session=False)
            )

        reload_stmt = (
            sa.select(Selection)
            .where(Selection.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        rows = (await session.execute(reload_stmt)).scalars().all()
        winner = next(row for row in rows if row.id == selection.id)
        expired = tuple(
            row for row in rows if row.id in pending_ids and row.status == SelectionStatus.EXPIRED
        )

        session.add(
            AuditLog(
                action_type="selection_accept",
                request_id=request_id,
                selection_id=winner.id,
                student_id=winner.student_id,
                details={"expired_selection_ids": [row.id for row in expired]},
            )
        )
        logger.info(
            "selection_won",
            selection_id=winner.id,
            request_id=request_id,
            student_id=winner.student_id,
            expired_siblings=len(expired),
        )
        return RespondResult(RespondOutcome.WON, winner, expired)

    async def _explain_failed_accept(
        self, session: AsyncSession, selection_id: str, now: datetime
    ) -> RespondResult:
        """The conditional update matched nothing; work out why."""
        selection = await _reload(session, selection_id)
        has_winner = await _winner_exists(session, selection.request_id)

        if selection.status in (SelectionStatus.ACCEPTED, SelectionStatus.DECLINED):
            # Our own concurrent click got there first.
            return self._already_resolved(selection)
        if selection.status == SelectionStatus.EXPIRED and not has_winner:
            return self._already_resolved(selection)

        outcome = RespondOutcome.LOST_RACE if has_winner else RespondOutcome.REQUEST_CLOSED
        selection = await self._expire(session, selection, now, outcome)
        return RespondResult(outcome, selection)

    async def _expire(
        self,
        session: AsyncSession,
        selection: Selection,
        now: datetime,
        outcome: RespondOutcome,
    ) -> Selection:
        await session.execute(
            sa.update(Selection)
            .where(Selection.id == selection.id, Selection.status == SelectionStatus.PENDING)
            .values(status=SelectionStatus.EXPIRED, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        selection = await _reload(session, selection.id)
        session.add(
            AuditLog(
                action_type="selection_lost",
                request_id=selection.request_id,
                selection_id=selection.id,
                student_id=selection.student_id,
                details={"outcome": outcome.value},
            )
        )
        logger.info(
            "selection_lost",
            selection_id=selection.id,
            request_id=selection.request_id,
            outcome=outcome.value,
        )
        return selection

    async def _lost_after_conflict(
        self, session: AsyncSession, selection_id: str, now: datetime
    ) -> RespondResult:
        """Re-check after the database rejected or aborted our accept.

        Raises:
            StorageConflict: nothing was committed for this request yet.
        """
        async with session.begin():
            selection = await _reload(session, selection_id)
            if selection.status != SelectionStatus.PENDING:
                return self._already_resolved(selection)
            if not await _winner_exists(session, selection.request_id):
                raise StorageConflict(
                    f"accept for {selection_id} aborted before any winner committed"
                )
            selection = await self._expire(session, selection, now, RespondOutcome.LOST_RACE)
        return RespondResult(RespondOutcome.LOST_RACE, selection)


async def list_request_selections(session: AsyncSession, request_id: str) -> Sequence[Selection]:
    stmt = (
        sa.select(Selection)
        .where(Selection.request_id == request_id)
        .order_by(Selection.created_at, Selection.id)
    )
    return (await session.execute(stmt)).scalars().all()
