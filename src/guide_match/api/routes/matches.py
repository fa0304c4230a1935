"""Accept/decline endpoint for emailed match links."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from guide_match.api.deps import get_arbiter, get_db, get_token_codec
from guide_match.api.schemas import ErrorResponse, RespondResponse, TokenBody
from guide_match.matching.arbiter import SelectionArbiter
from guide_match.tokens.codec import TokenCodec

router = APIRouter(prefix="/api/matches", tags=["matches"])


@router.post(
    "/respond",
    response_model=RespondResponse,
    responses={401: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def respond_to_match(
    body: TokenBody,
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    arbiter: SelectionArbiter = Depends(get_arbiter),
) -> RespondResponse:
    """Verify a signed accept/decline token and apply it to the selection.

    ``lost_race``, ``already_resolved`` and ``request_closed`` are normal
    200 responses; the landing page branches on ``outcome``.
    """
    payload = codec.verify(body.token)
    result = await arbiter.respond(
        db,
        selection_id=payload.selection_id,
        request_id=payload.request_id,
        student_id=payload.student_id,
        action=payload.action,
    )
    return RespondResponse(
        outcome=result.outcome.value,
        status=result.status,
        request_id=result.request_id,
        selection_id=result.selection.id,
    )
