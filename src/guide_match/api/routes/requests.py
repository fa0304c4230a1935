"""Candidate fan-out and read-only request status."""

from __future__ import annotations

import sqlalchemy as sa
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from guide_match.api.deps import get_arbiter, get_db, get_token_codec
from guide_match.api.schemas import (
    CreateSelectionsRequest,
    CreateSelectionsResponse,
    RequestView,
    SelectionInvite,
    TokenBody,
)
from guide_match.config.settings import Settings, get_settings
from guide_match.errors import TokenInvalid
from guide_match.matching.arbiter import SelectionArbiter
from guide_match.models.selection import Selection
from guide_match.models.tourist_request import TouristRequest
from guide_match.tokens.codec import TokenCodec
from guide_match.tokens.links import build_match_urls

router = APIRouter(prefix="/api/requests", tags=["requests"])


@router.post(
    "/{request_id}/selections",
    response_model=CreateSelectionsResponse,
    status_code=201,
)
async def create_selections(
    request_id: str,
    body: CreateSelectionsRequest,
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    arbiter: SelectionArbiter = Depends(get_arbiter),
    settings: Settings = Depends(get_settings),
) -> CreateSelectionsResponse:
    """Invite candidate guides and return their signed accept/decline links."""
    selections = await arbiter.create_selections(db, request_id, body.student_ids)

    invites = []
    for selection in selections:
        links = build_match_urls(
            codec,
            settings.app_base_url,
            request_id=selection.request_id,
            student_id=selection.student_id,
            selection_id=selection.id,
            ttl_hours=settings.match_token_ttl_hours,
        )
        invites.append(
            SelectionInvite(
                selection_id=selection.id,
                student_id=selection.student_id,
                status=selection.status,
                accept_url=links.accept_url,
                decline_url=links.decline_url,
            )
        )
    return CreateSelectionsResponse(request_id=request_id, selections=invites)


@router.post("/view", response_model=RequestView)
async def view_request(
    body: TokenBody,
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> RequestView:
    """Read-only status for the holder of a view token."""
    payload = codec.verify_view(body.token)

    request = await db.get(TouristRequest, payload.request_id)
    if request is None:
        raise TokenInvalid(f"view token references unknown request {payload.request_id}")

    selection_status = await db.scalar(
        sa.select(Selection.status).where(
            Selection.request_id == payload.request_id,
            Selection.student_id == payload.student_id,
        )
    )
    return RequestView(
        request_id=request.id,
        city=request.city,
        status=request.status,
        selection_status=selection_status,
        assigned_to_you=request.assigned_student_id == payload.student_id,
    )
