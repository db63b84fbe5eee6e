"""
Интеграционные тесты эндпоинтов /api/v1/programs/*.

Покрываемые сценарии:
- Аутентификация: без токена → 401/403, настоящий JWT принимается
- CRUD программ, список своих и общих, 403 для чужой приватной программы
- POST /programs/{id}/days/{day}/sessions: создание, 422 на пустое название, делегирование
- GET /programs/{id}/calendar?week=N и /calendar/full
- POST /programs/{id}/days/{day}/paste, /weeks/copy, /duplicate
- PATCH /programs/{id}/days/{day}
- Ошибки домена: 404 с detail, 409 с completed/rolled_back
"""

import pytest

from program_builder.services.composition_engine import CompositionEngine
from tests.conftest import make_auth_headers

pytestmark = pytest.mark.integration

API = "/api/v1/programs"


# ---------------------------------------------------------------------------
# Вспомогательные функции
# ---------------------------------------------------------------------------

async def create_program(client, **overrides) -> dict:
    payload = {"title": "Strength Block", "tags": ["strength"], **overrides}
    response = await client.post(f"{API}/", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def add_session(client, program_id: int, day_index: int, title: str = "Push Day", **extra) -> dict:
    response = await client.post(
        f"{API}/{program_id}/days/{day_index}/sessions",
        json={"title": title, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def add_exercise(client, module_id: int, exercise_id: int, **extra) -> dict:
    response = await client.post(
        f"/api/v1/modules/{module_id}/exercises",
        json={"exercise_id": exercise_id, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Аутентификация
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_programs_without_token_is_rejected(client):
    response = await client.get(f"{API}/")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token_returns_401(client):
    response = await client.get(f"{API}/", headers={"Authorization": "Bearer broken"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_real_jwt_is_accepted(client, coach_fixture):
    headers = make_auth_headers(coach_fixture)

    created = await client.post(f"{API}/", json={"title": "Via JWT"}, headers=headers)
    listed = await client.get(f"{API}/", headers=headers)

    assert created.status_code == 201
    assert created.json()["owner_coach_id"] == coach_fixture.id
    assert [p["title"] for p in listed.json()] == ["Via JWT"]


@pytest.mark.asyncio
async def test_specialist_cannot_create_program(specialist_client):
    response = await specialist_client.post(f"{API}/", json={"title": "Nope"})
    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Программы
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_get_program(coach_client):
    created = await create_program(coach_client, level="none", visibility="shared")

    response = await coach_client.get(f"{API}/{created['id']}")

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Strength Block"
    assert data["level"] is None
    assert data["visibility"] == "shared"


@pytest.mark.asyncio
async def test_create_program_with_blank_title_returns_422(coach_client):
    response = await coach_client.post(f"{API}/", json={"title": "   "})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_missing_program_returns_404(coach_client):
    response = await coach_client.get(f"{API}/999")
    assert response.status_code == 404
    assert "999" in response.json()["detail"]


@pytest.mark.asyncio
async def test_private_program_hidden_from_other_coach(coach_client, other_coach_client):
    private = await create_program(coach_client, title="Private")
    shared = await create_program(coach_client, title="Shared", visibility="shared")

    assert (await other_coach_client.get(f"{API}/{private['id']}")).status_code == 403
    assert (await other_coach_client.get(f"{API}/{shared['id']}")).status_code == 200

    listed = await other_coach_client.get(f"{API}/")
    assert [p["title"] for p in listed.json()] == ["Shared"]


@pytest.mark.asyncio
async def test_other_coach_cannot_edit_shared_program(coach_client, other_coach_client):
    shared = await create_program(coach_client, visibility="shared")

    response = await other_coach_client.post(
        f"{API}/{shared['id']}/days/1/sessions", json={"title": "Hijack"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_and_delete_program(coach_client):
    created = await create_program(coach_client)

    patched = await coach_client.patch(f"{API}/{created['id']}", json={"description": "Deload week"})
    assert patched.status_code == 200
    assert patched.json()["description"] == "Deload week"
    assert patched.json()["title"] == "Strength Block"

    deleted = await coach_client.delete(f"{API}/{created['id']}")
    assert deleted.status_code == 204
    assert (await coach_client.get(f"{API}/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_list_programs_filters(coach_client):
    await create_program(coach_client, title="Upper Lower", tags=["strength", "split"])
    await create_program(coach_client, title="Conditioning", tags=["cardio"])

    by_search = await coach_client.get(f"{API}/", params={"search": "upper"})
    by_tags = await coach_client.get(f"{API}/", params=[("tags", "strength"), ("tags", "split")])

    assert [p["title"] for p in by_search.json()] == ["Upper Lower"]
    assert [p["title"] for p in by_tags.json()] == ["Upper Lower"]


# ---------------------------------------------------------------------------
# Сессии и дни
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_session_returns_draft_module(coach_client):
    program = await create_program(coach_client)

    module = await add_session(coach_client, program["id"], 3, session_type="cardio", session_timing="morning")

    assert module["status"] == "draft"
    assert module["sort_order"] == 1
    assert module["module_type"] == "cardio"
    assert module["module_owner_coach_id"] == "coach-1"


@pytest.mark.asyncio
async def test_add_session_blank_title_returns_422(coach_client):
    program = await create_program(coach_client)

    response = await coach_client.post(f"{API}/{program['id']}/days/1/sessions", json={"title": " "})
    calendar = await coach_client.get(f"{API}/{program['id']}/calendar", params={"week": 1})

    assert response.status_code == 422
    assert all(day["day_id"] is None for day in calendar.json())


@pytest.mark.asyncio
async def test_add_session_owner_must_be_in_team(coach_client):
    program = await create_program(coach_client)

    delegated = await add_session(coach_client, program["id"], 1, module_owner="physio-1")
    stranger = await coach_client.post(
        f"{API}/{program['id']}/days/1/sessions",
        json={"title": "Rehab", "module_owner": "physio-99"},
    )

    assert delegated["module_owner_coach_id"] == "physio-1"
    assert stranger.status_code == 403


@pytest.mark.asyncio
async def test_update_day_creates_and_renames(coach_client):
    program = await create_program(coach_client)

    response = await coach_client.patch(
        f"{API}/{program['id']}/days/2", json={"day_title": "Upper", "notes": "Heavy"}
    )

    assert response.status_code == 200
    assert response.json()["day_index"] == 2
    assert response.json()["day_title"] == "Upper"


# ---------------------------------------------------------------------------
# Календарь
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_calendar_week_two_has_seven_slots(coach_client):
    program = await create_program(coach_client)
    await add_session(coach_client, program["id"], 9, title="Tuesday W2")

    response = await coach_client.get(f"{API}/{program['id']}/calendar", params={"week": 2})

    assert response.status_code == 200
    slots = response.json()
    assert [s["day_index"] for s in slots] == list(range(8, 15))
    assert slots[1]["sessions"][0]["title"] == "Tuesday W2"
    assert slots[1]["is_rest_day"] is False
    assert slots[0]["is_rest_day"] is True


@pytest.mark.asyncio
async def test_calendar_week_zero_returns_422(coach_client):
    program = await create_program(coach_client)
    response = await coach_client.get(f"{API}/{program['id']}/calendar", params={"week": 0})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_full_calendar(coach_client):
    program = await create_program(coach_client)
    module = await add_session(coach_client, program["id"], 1)
    await add_session(coach_client, program["id"], 20, title="Week 3")
    await coach_client.post(f"/api/v1/modules/{module['id']}/toggle-status")

    response = await coach_client.get(f"{API}/{program['id']}/calendar/full")

    data = response.json()
    assert data["summary"] == {"total_weeks": 3, "training_days": 2, "published_count": 1, "draft_count": 1}
    assert [w["week_number"] for w in data["weeks"]] == [1, 2, 3]


# ---------------------------------------------------------------------------
# Вставка, копирование недели, дублирование
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_paste_returns_detail_with_exercises(coach_client):
    program = await create_program(coach_client)
    module = await add_session(coach_client, program["id"], 1)
    await add_exercise(coach_client, module["id"], 101)
    await add_exercise(coach_client, module["id"], 55, section="warmup")

    ref = await coach_client.post(f"/api/v1/modules/{module['id']}/copy")
    response = await coach_client.post(f"{API}/{program['id']}/days/8/paste", json=ref.json())

    assert response.status_code == 201
    pasted = response.json()
    assert pasted["id"] != module["id"]
    assert pasted["day_index"] == 8
    assert pasted["status"] == "draft"
    assert [(e["section"], e["exercise_id"]) for e in pasted["exercises"]] == [("warmup", 55), ("main", 101)]
    assert all(e["prescription"]["set_count"] == 3 for e in pasted["exercises"])


@pytest.mark.asyncio
async def test_paste_deleted_module_returns_404(coach_client):
    program = await create_program(coach_client)
    module = await add_session(coach_client, program["id"], 1)
    ref = (await coach_client.post(f"/api/v1/modules/{module['id']}/copy")).json()
    await coach_client.delete(f"/api/v1/modules/{module['id']}")

    response = await coach_client.post(f"{API}/{program['id']}/days/2/paste", json=ref)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_copy_week(coach_client):
    program = await create_program(coach_client)
    await add_session(coach_client, program["id"], 1, title="Mon")
    await add_session(coach_client, program["id"], 5, title="Fri")

    response = await coach_client.post(
        f"{API}/{program['id']}/weeks/copy", json={"source_week": 1, "dest_week": 3}
    )

    assert response.status_code == 200
    data = response.json()
    assert [m["title"] for m in data["created"]] == ["Mon", "Fri"]

    week3 = (await coach_client.get(f"{API}/{program['id']}/calendar", params={"week": 3})).json()
    assert [s["day_index"] for s in week3 if not s["is_rest_day"]] == [15, 19]


@pytest.mark.asyncio
async def test_copy_week_invalid_week_returns_422(coach_client):
    program = await create_program(coach_client)
    response = await coach_client.post(
        f"{API}/{program['id']}/weeks/copy", json={"source_week": 0, "dest_week": 2}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_copy_week_partial_failure_returns_409(coach_client, monkeypatch):
    program = await create_program(coach_client)
    await add_session(coach_client, program["id"], 1, title="Mon")
    await add_session(coach_client, program["id"], 2, title="Tue")

    original = CompositionEngine._deep_copy_module
    calls = {"n": 0}

    async def flaky(self, *args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("connection reset")
        return await original(self, *args, **kwargs)

    monkeypatch.setattr(CompositionEngine, "_deep_copy_module", flaky)

    response = await coach_client.post(
        f"{API}/{program['id']}/weeks/copy", json={"source_week": 1, "dest_week": 2}
    )

    assert response.status_code == 409
    body = response.json()
    assert body["rolled_back"] is True
    assert len(body["completed"]) == 1
    assert "hint" in body

    week2 = (await coach_client.get(f"{API}/{program['id']}/calendar", params={"week": 2})).json()
    assert all(s["is_rest_day"] for s in week2)


@pytest.mark.asyncio
async def test_duplicate_program(coach_client, other_coach_client):
    program = await create_program(coach_client, visibility="shared")
    await add_session(coach_client, program["id"], 1)

    response = await other_coach_client.post(f"{API}/{program['id']}/duplicate")

    assert response.status_code == 201
    copy = response.json()
    assert copy["id"] != program["id"]
    assert copy["title"] == "Strength Block (Copy)"
    assert copy["owner_coach_id"] == "coach-2"
    assert copy["visibility"] == "private"

    calendar = (await other_coach_client.get(f"{API}/{copy['id']}/calendar", params={"week": 1})).json()
    assert calendar[0]["sessions"][0]["title"] == "Push Day"


@pytest.mark.asyncio
async def test_paste_from_foreign_private_program_returns_403(coach_client, other_coach_client):
    private = await create_program(coach_client, title="Private")
    module = await add_session(coach_client, private["id"], 1)
    target = await create_program(other_coach_client, title="Mine")

    copied = await other_coach_client.post(f"/api/v1/modules/{module['id']}/copy")
    pasted = await other_coach_client.post(
        f"{API}/{target['id']}/days/1/paste", json={"module_id": module["id"]}
    )

    assert copied.status_code == 403
    assert pasted.status_code == 403


@pytest.mark.asyncio
async def test_patch_program_with_null_tags_keeps_program_readable(coach_client):
    created = await create_program(coach_client, tags=["strength", "upper"])

    patched = await coach_client.patch(f"{API}/{created['id']}", json={"tags": None, "visibility": None})
    fetched = await coach_client.get(f"{API}/{created['id']}")
    listed = await coach_client.get(f"{API}/")

    assert patched.status_code == 200
    assert patched.json()["tags"] == ["strength", "upper"]
    assert fetched.status_code == 200
    assert fetched.json()["visibility"] == "private"
    assert listed.status_code == 200
