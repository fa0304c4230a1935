"""Tests for the FastAPI REST API endpoints."""

from urllib.parse import unquote

import pytest

from conftest import REQUEST_ID, STUDENT_IDS, seed_request

INVALID_LINK = {"error": "invalid_token", "message": "This link is invalid."}


def _token(url: str) -> str:
    return unquote(url.split("#token=", 1)[1])


async def _invite(api_client) -> dict:
    resp = await api_client.post(
        f"/api/requests/{REQUEST_ID}/selections", json={"student_ids": list(STUDENT_IDS)}
    )
    assert resp.status_code == 201
    return {invite["student_id"]: invite for invite in resp.json()["selections"]}


@pytest.mark.asyncio
async def test_health_endpoint(api_client):
    resp = await api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Fan-out and respond
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_selections_returns_fragment_links(api_client, seeded_request):
    invites = await _invite(api_client)

    assert set(invites) == set(STUDENT_IDS)
    for invite in invites.values():
        assert invite["status"] == "pending"
        assert "/matches/respond#token=" in invite["accept_url"]
        assert "?" not in invite["accept_url"]
        assert invite["accept_url"] != invite["decline_url"]


@pytest.mark.asyncio
async def test_create_selections_unknown_request(api_client, seeded_request):
    resp = await api_client.post(
        "/api/requests/req-missing/selections", json={"student_ids": ["stu-ana"]}
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_three_guides_one_winner(api_client, seeded_request, sender):
    invites = await _invite(api_client)

    won = await api_client.post(
        "/api/matches/respond", json={"token": _token(invites["stu-bruno"]["accept_url"])}
    )
    late = await api_client.post(
        "/api/matches/respond", json={"token": _token(invites["stu-ana"]["accept_url"])}
    )

    assert won.status_code == 200
    assert won.json() == {
        "outcome": "won",
        "status": "accepted",
        "request_id": REQUEST_ID,
        "selection_id": invites["stu-bruno"]["selection_id"],
    }
    assert late.status_code == 200
    assert late.json()["outcome"] == "already_resolved"
    assert late.json()["status"] == "expired"
    assert ("stu-bruno", "guide_confirmed") in sender.sent


@pytest.mark.asyncio
async def test_decline_link(api_client, seeded_request):
    invites = await _invite(api_client)
    token = _token(invites["stu-carla"]["decline_url"])

    first = await api_client.post("/api/matches/respond", json={"token": token})
    second = await api_client.post("/api/matches/respond", json={"token": token})

    assert first.json()["outcome"] == "declined"
    assert second.json()["outcome"] == "already_resolved"
    assert second.json()["status"] == "declined"


@pytest.mark.asyncio
async def test_garbage_token(api_client, seeded_request):
    resp = await api_client.post("/api/matches/respond", json={"token": "not-a-token"})
    assert resp.status_code == 401
    assert resp.json() == INVALID_LINK


@pytest.mark.asyncio
async def test_unknown_selection_looks_like_invalid_token(api_client, seeded_request, codec):
    await _invite(api_client)
    token = codec.mint_match_token(REQUEST_ID, "stu-ana", "sel-does-not-exist", "accept")

    resp = await api_client.post("/api/matches/respond", json={"token": token})

    assert resp.status_code == 401
    assert resp.json() == INVALID_LINK


@pytest.mark.asyncio
async def test_expired_token(api_client, seeded_request, clock):
    invites = await _invite(api_client)
    clock.advance(hours=73)

    resp = await api_client.post(
        "/api/matches/respond", json={"token": _token(invites["stu-ana"]["accept_url"])}
    )

    assert resp.status_code == 401
    assert resp.json() == {"error": "expired_token", "message": "This link has expired."}


@pytest.mark.asyncio
async def test_malformed_body_is_sanitized(api_client):
    resp = await api_client.post("/api/matches/respond", json={"token": "x" * 5000})
    assert resp.status_code == 422
    assert resp.json() == {
        "error": "validation_error",
        "message": "The submitted data is invalid.",
    }


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_view_request(api_client, seeded_request, codec):
    invites = await _invite(api_client)
    await api_client.post(
        "/api/matches/respond", json={"token": _token(invites["stu-ana"]["accept_url"])}
    )

    winner = await api_client.post(
        "/api/requests/view", json={"token": codec.mint_view_token(REQUEST_ID, "stu-ana")}
    )
    other = await api_client.post(
        "/api/requests/view", json={"token": codec.mint_view_token(REQUEST_ID, "stu-bruno")}
    )

    assert winner.json() == {
        "request_id": REQUEST_ID,
        "city": "Lisbon",
        "status": "matched",
        "selection_status": "accepted",
        "assigned_to_you": True,
    }
    assert other.json()["selection_status"] == "expired"
    assert other.json()["assigned_to_you"] is False


@pytest.mark.asyncio
async def test_view_rejects_match_token(api_client, seeded_request, codec):
    token = codec.mint_match_token(REQUEST_ID, "stu-ana", "sel-1", "accept")
    resp = await api_client.post("/api/requests/view", json={"token": token})
    assert resp.status_code == 401
    assert resp.json() == INVALID_LINK


@pytest.mark.asyncio
async def test_view_unknown_request(api_client, seeded_request, codec):
    token = codec.mint_view_token("req-missing", "stu-ana")
    resp = await api_client.post("/api/requests/view", json={"token": token})
    assert resp.status_code == 401
    assert resp.json() == INVALID_LINK


# ---------------------------------------------------------------------------
# Reviews and metrics
# ---------------------------------------------------------------------------


def _review_body(**overrides) -> dict:
    body = {
        "request_id": REQUEST_ID,
        "student_id": "stu-ana",
        "rating": 5,
        "no_show": False,
        "text": "Showed us the best miradouros.",
        "attributes": ["local_insights", "friendly"],
        "price_paid": 40.0,
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_create_review(api_client, seeded_request):
    resp = await api_client.post("/api/reviews", json=_review_body())

    assert resp.status_code == 201
    data = resp.json()
    assert data["review"]["rating"] == 5
    assert data["review"]["attributes"] == ["local_insights", "friendly"]
    assert data["review"]["created_at"] is not None
    assert data["metrics"] == {
        "average_rating": 5.0,
        "completion_rate": 100.0,
        "reliability_badge": "bronze",
        "trips_hosted": 1,
        "no_show_count": 0,
        "total_reviews": 1,
    }


@pytest.mark.asyncio
async def test_duplicate_review_conflicts(api_client, seeded_request):
    await api_client.post("/api/reviews", json=_review_body())
    resp = await api_client.post("/api/reviews", json=_review_body(rating=1))

    assert resp.status_code == 409
    assert resp.json()["error"] == "conflict"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"rating": 0},
        {"rating": 6},
        {"text": "x" * 501},
        {"attributes": ["grumpy"]},
        {"price_paid": -1},
    ],
)
async def test_invalid_review(api_client, seeded_request, overrides):
    resp = await api_client.post("/api/reviews", json=_review_body(**overrides))
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_student_metrics_and_reviews(api_client, test_session_factory, seeded_request):
    await seed_request(test_session_factory, request_id="req-porto", student_ids=("stu-ana",))
    await api_client.post("/api/reviews", json=_review_body(rating=5))
    await api_client.post(
        "/api/reviews", json=_review_body(request_id="req-porto", rating=3, attributes=[])
    )

    metrics = await api_client.get("/api/students/stu-ana/metrics")
    reviews = await api_client.get("/api/students/stu-ana/reviews")

    assert metrics.status_code == 200
    assert metrics.json()["average_rating"] == 4.0
    assert metrics.json()["total_reviews"] == 2
    assert sorted(review["rating"] for review in reviews.json()) == [3, 5]


@pytest.mark.asyncio
async def test_metrics_before_first_review(api_client, seeded_request):
    resp = await api_client.get("/api/students/stu-bruno/metrics")
    assert resp.status_code == 200
    assert resp.json()["average_rating"] is None
    assert resp.json()["reliability_badge"] == "bronze"


@pytest.mark.asyncio
async def test_metrics_unknown_student(api_client):
    resp = await api_client.get("/api/students/stu-ghost/metrics")
    assert resp.status_code == 404
