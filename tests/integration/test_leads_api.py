import pytest
from httpx import AsyncClient


async def _create_sequence(client: AsyncClient, **overrides) -> dict:
    data = {
        "name": "Welcome",
        "trigger_type": "new_lead",
        "steps": [{"action_type": "add_tag", "action_config": {"tag": "welcomed"}}],
    }
    data.update(overrides)
    response = await client.post("/api/v1/sequences", json=data)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_lead(client: AsyncClient):
    """Test creating a lead via API."""
    data = {
        "name": "Integration Test Lead",
        "email": "integration@test.com",
        "phone": "+1234567890",
        "source": "Referral",
        "intent": "investor",
        "budget_max": "1500000",
    }

    response = await client.post("/api/v1/leads", json=data)
    assert response.status_code == 201
    res_data = response.json()
    assert res_data["name"] == data["name"]
    assert res_data["status"] == "new"
    assert res_data["source"] == "referral"
    assert res_data["score"] > 0
    assert res_data["enrolled_sequences"] == []


@pytest.mark.asyncio
async def test_create_lead_rejects_inverted_budget(client: AsyncClient):
    response = await client.post(
        "/api/v1/leads",
        json={"name": "X", "source": "website", "budget_min": "500000", "budget_max": "100000"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_lead_enrolls_in_new_lead_sequences(client: AsyncClient):
    await _create_sequence(client, name="Referral welcome", trigger_conditions={"sources": ["referral"]})
    await _create_sequence(client, name="Portal welcome", trigger_conditions={"sources": ["portal"]})

    response = await client.post("/api/v1/leads", json={"name": "Ana", "source": "referral"})
    assert response.status_code == 201
    assert response.json()["enrolled_sequences"] == ["Referral welcome"]

    lead_id = response.json()["id"]
    enrollments = (await client.get(f"/api/v1/leads/{lead_id}/enrollments")).json()
    assert len(enrollments) == 1
    assert enrollments[0]["status"] == "active"


@pytest.mark.asyncio
async def test_status_change_fires_status_change_sequences(client: AsyncClient):
    await _create_sequence(
        client,
        name="Qualified follow-up",
        trigger_type="status_change",
        trigger_conditions={"statuses": ["qualified"]},
    )
    lead_id = (await client.post("/api/v1/leads", json={"name": "Ana", "source": "website"})).json()["id"]

    contacted = await client.patch(f"/api/v1/leads/{lead_id}/status", json={"status": "contacted"})
    assert contacted.status_code == 200
    assert contacted.json()["enrolled_sequences"] == []

    qualified = await client.patch(f"/api/v1/leads/{lead_id}/status", json={"status": "QUALIFIED"})
    assert qualified.json()["status"] == "qualified"
    assert qualified.json()["enrolled_sequences"] == ["Qualified follow-up"]

    # Same status again is not an event
    repeat = await client.patch(f"/api/v1/leads/{lead_id}/status", json={"status": "qualified"})
    assert repeat.json()["enrolled_sequences"] == []


@pytest.mark.asyncio
async def test_log_activity_and_list(client: AsyncClient):
    lead_id = (await client.post("/api/v1/leads", json={"name": "Ana", "source": "website"})).json()["id"]

    response = await client.post(
        f"/api/v1/leads/{lead_id}/activities",
        json={"type": "call", "title": "Intro call", "metadata": {"duration_min": 12}},
    )
    assert response.status_code == 201
    assert response.json()["metadata"] == {"duration_min": 12}

    activities = (await client.get(f"/api/v1/leads/{lead_id}/activities")).json()
    assert {a["type"] for a in activities} >= {"call", "note"}


@pytest.mark.asyncio
async def test_score_breakdown(client: AsyncClient):
    lead = (
        await client.post(
            "/api/v1/leads",
            json={"name": "Ana", "source": "referral", "intent": "investor", "budget_max": "1500000"},
        )
    ).json()

    response = await client.get(f"/api/v1/leads/{lead['id']}/score-breakdown")
    assert response.status_code == 200
    body = response.json()
    assert set(body["components"]) == {
        "engagement", "budget", "intent", "recency", "completeness", "source_quality",
    }
    assert body["components"]["budget"] == {"score": 20, "max": 20, "label": "Budget"}

    recalculated = await client.post(f"/api/v1/leads/{lead['id']}/recalculate-score")
    assert recalculated.json()["score"] == body["total"]


@pytest.mark.asyncio
async def test_deleted_lead_is_hidden(client: AsyncClient):
    lead_id = (await client.post("/api/v1/leads", json={"name": "Ana", "source": "website"})).json()["id"]

    assert (await client.delete(f"/api/v1/leads/{lead_id}")).status_code == 204

    response = await client.get(f"/api/v1/leads/{lead_id}")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "lead_not_found"


@pytest.mark.asyncio
async def test_unknown_lead_returns_unified_error(client: AsyncClient):
    response = await client.get("/api/v1/leads/424242")
    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["code"] == "lead_not_found"
    assert detail["context"] == {"lead_id": 424242}
    assert "X-Request-ID" in response.headers
