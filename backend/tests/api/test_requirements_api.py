"""Integration tests for /api/journeys/{id}/requirements and /auto-approval."""

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
async def journey(seed, owner_user):
    return await seed.journey(owner_user.user_id, skills=["navigation"])


async def test_owner_creates_and_lists_requirements(client, login, journey, owner_user):
    login(owner_user)

    created = await client.post(f"/api/journeys/{journey.id}/requirements", json={
        "requirement_type": "skill",
        "skill_name": "Navigation",
        "qualification_criteria": "Can plan a passage",
        "weight": 6,
    })
    assert created.status_code == 201
    assert created.json()["skill_name"] == "navigation"
    assert created.json()["is_required"] is True

    login(None)
    listed = await client.get(f"/api/journeys/{journey.id}/requirements")
    assert listed.status_code == 200
    assert [r["id"] for r in listed.json()["requirements"]] == [created.json()["id"]]


async def test_weight_out_of_range_rejected_before_write(client, login, journey, owner_user):
    login(owner_user)

    response = await client.post(f"/api/journeys/{journey.id}/requirements", json={
        "requirement_type": "question",
        "question_text": "Why?",
        "qualification_criteria": "Any",
        "weight": 11,
    })

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
    listed = await client.get(f"/api/journeys/{journey.id}/requirements")
    assert listed.json()["requirements"] == []


async def test_second_passport_requirement_conflicts(client, login, journey, owner_user):
    login(owner_user)
    url = f"/api/journeys/{journey.id}/requirements"

    assert (await client.post(url, json={"requirement_type": "passport"})).status_code == 201
    response = await client.post(url, json={"requirement_type": "passport"})

    assert response.status_code == 409


async def test_non_owner_gets_forbidden(client, login, journey, crew_user):
    login(crew_user)

    response = await client.post(f"/api/journeys/{journey.id}/requirements", json={"requirement_type": "passport"})

    assert response.status_code == 403


async def test_update_and_delete_requirement(client, login, journey, owner_user, seed):
    requirement = await seed.requirement(journey.id, "question", question_text="Q?", qualification_criteria="C")
    login(owner_user)
    url = f"/api/journeys/{journey.id}/requirements/{requirement.id}"

    patched = await client.patch(url, json={"weight": 9, "is_required": False})
    assert patched.status_code == 200
    assert patched.json()["weight"] == 9
    assert patched.json()["is_required"] is False

    deleted = await client.delete(url)
    assert deleted.status_code == 204

    missing = await client.patch(url, json={"weight": 1})
    assert missing.status_code == 404


async def test_auto_approval_lifecycle(client, login, journey, owner_user):
    login(owner_user)
    config_url = f"/api/journeys/{journey.id}/auto-approval"

    refused = await client.patch(config_url, json={"auto_approval_enabled": True})
    assert refused.status_code == 400
    assert refused.json()["error"] == "validation_error"

    created = await client.post(f"/api/journeys/{journey.id}/requirements", json={"requirement_type": "risk_level"})
    enabled = await client.patch(config_url, json={"auto_approval_enabled": True, "auto_approval_threshold": 75})
    assert enabled.json() == {
        "journey_id": journey.id,
        "auto_approval_enabled": True,
        "auto_approval_threshold": 75,
        "requirement_count": 1,
    }

    await client.delete(f"/api/journeys/{journey.id}/requirements/{created.json()['id']}")
    current = await client.get(config_url)
    assert current.json()["auto_approval_enabled"] is False
    assert current.json()["requirement_count"] == 0


async def test_threshold_bounds(client, login, journey, owner_user):
    login(owner_user)

    response = await client.patch(f"/api/journeys/{journey.id}/auto-approval", json={"auto_approval_threshold": 150})

    assert response.status_code == 400
