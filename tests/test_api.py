"""Tests for the FastAPI surface that hosts attempt sessions."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from quiz_engine import main
from quiz_engine.services.backend_client import CourseBackendClient
from quiz_engine.services.graders import LocalGrader, RemoteGrader
from quiz_engine.services.quiz_loader import QuizLoader
from quiz_engine.state import session_store


@pytest.fixture(autouse=True)
def local_only(monkeypatch):
    monkeypatch.setattr(main, "quiz_loader", QuizLoader([]))
    monkeypatch.setattr(main, "grader", LocalGrader())
    yield
    session_store.clear()


def _client():
    return AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


async def _start(ac, **overrides):
    payload = {"topic": "Sorting Algorithms", "difficulty": "easy", "count": 3, "salt": "fixed"}
    payload.update(overrides)
    r = await ac.post("/api/session/start", json=payload)
    assert r.status_code == 200, r.text
    return r.json()


@pytest.mark.asyncio
async def test_generate_is_deterministic_for_a_salt():
    async with _client() as ac:
        body = {"topic": "Graphs", "difficulty": "advanced", "count": 4, "salt": "modal-1"}
        first = (await ac.post("/api/quiz/generate", json=body)).json()
        second = (await ac.post("/api/quiz/generate", json=body)).json()
    assert first == second
    assert len(first["questions"]) == 4
    assert first["source"] == "local"


@pytest.mark.asyncio
@pytest.mark.parametrize("body,detail", [
    ({"topic": " ab ", "difficulty": "easy"}, "topic_too_short"),
    ({"topic": "Graphs", "difficulty": "easy", "count": 0}, "count_must_be_positive"),
])
async def test_generate_rejects_bad_input(body, detail):
    async with _client() as ac:
        r = await ac.post("/api/quiz/generate", json=body)
    assert r.status_code == 422
    assert r.json()["detail"] == detail


@pytest.mark.asyncio
async def test_full_attempt_flow():
    async with _client() as ac:
        view = await _start(ac)
        sid = view["session_id"]
        assert view["state"] == "in_progress"
        assert view["total_questions"] == 3
        assert "correct_option_ids" not in view["question"]

        session = session_store.get(sid)
        for i, q in enumerate(session.definition.questions):
            r = await ac.post(f"/api/session/{sid}/navigate", json={"action": "jump", "index": i})
            assert r.json()["current_index"] == i
            r = await ac.post(f"/api/session/{sid}/answer", json={"option_id": q.correct_option_id})
            assert r.status_code == 200

        r = await ac.post(f"/api/session/{sid}/submit")
        assert r.status_code == 200
        result = r.json()["result"]
        assert result["percentage"] == 100
        assert result["passed"] is True

        r = await ac.post(f"/api/session/{sid}/answer", json={"option_id": "0-0"})
        assert r.status_code == 409


@pytest.mark.asyncio
async def test_navigation_is_clamped_and_validated():
    async with _client() as ac:
        sid = (await _start(ac))["session_id"]
        r = await ac.post(f"/api/session/{sid}/navigate", json={"action": "previous"})
        assert r.json()["current_index"] == 0
        r = await ac.post(f"/api/session/{sid}/navigate", json={"action": "jump", "index": 50})
        assert r.json()["current_index"] == 2
        r = await ac.post(f"/api/session/{sid}/navigate", json={"action": "sideways"})
        assert r.status_code == 400


@pytest.mark.asyncio
async def test_unknown_option_and_session():
    async with _client() as ac:
        sid = (await _start(ac))["session_id"]
        r = await ac.post(f"/api/session/{sid}/answer", json={"option_id": "9-9"})
        assert r.status_code == 400
        r = await ac.get("/api/session/does-not-exist")
        assert r.status_code == 404


@pytest.mark.asyncio
async def test_retake_respects_max_attempts():
    async with _client() as ac:
        sid = (await _start(ac, max_attempts=2))["session_id"]
        await ac.post(f"/api/session/{sid}/submit")

        r = await ac.post(f"/api/session/{sid}/retake")
        assert r.status_code == 200
        new_sid = r.json()["session_id"]
        assert new_sid != sid
        assert r.json()["state"] == "in_progress"
        assert not session_store.has_session(sid)

        await ac.post(f"/api/session/{new_sid}/submit")
        r = await ac.post(f"/api/session/{new_sid}/retake")
        assert r.status_code == 403

        r = await ac.get(f"/api/session/{new_sid}/attempts")
        assert r.json()["policy"]["can_retake"] is False
        assert r.json()["stats"]["total_attempts"] == 2


@pytest.mark.asyncio
async def test_start_refused_when_history_exhausts_attempts():
    history = [{"score": 0, "max_score": 3, "percentage": 0, "passed": False}]
    async with _client() as ac:
        r = await ac.post("/api/session/start", json={
            "topic": "Sorting Algorithms", "difficulty": "easy", "count": 3, "max_attempts": 1, "attempt_history": history,
        })
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_timed_session_reports_countdown_and_discard():
    async with _client() as ac:
        view = await _start(ac, time_limit_minutes=2)
        sid = view["session_id"]
        assert view["remaining_seconds"] == 120
        assert view["remaining_display"] == "2:00"
        session = session_store.get(sid)
        assert session.timer_running is True

        r = await ac.delete(f"/api/session/{sid}")
        assert r.status_code == 200
        assert session.timer_running is False
        assert session.state.value == "cancelled"


@pytest.mark.asyncio
async def test_malformed_remote_grade_is_a_bad_gateway(monkeypatch):
    bad = httpx.MockTransport(lambda r: httpx.Response(200, json={"success": True, "data": {"result": {"score": "n/a", "attemptsLeft": "2"}}}))
    client = CourseBackendClient(base_url="http://course.test", timeout=1, transport=bad)
    monkeypatch.setattr(main, "grader", RemoteGrader(client, offline_fallback=False))
    async with _client() as ac:
        sid = (await _start(ac))["session_id"]
        r = await ac.post(f"/api/session/{sid}/submit")
        assert r.status_code == 502
        view = (await ac.get(f"/api/session/{sid}")).json()
    assert view["state"] == "submitted"
    assert view["last_error"]
