"""Tests for API routes."""
import pytest
from unittest.mock import AsyncMock, MagicMock

from company_scout.errors import ConfigurationError
from company_scout.models.scout import ScoutResult
from company_scout.services import streaming


@pytest.fixture
def app():
    from company_scout.main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


def _override(app, orchestrator):
    from company_scout.api.routes.scout import get_orchestrator

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "company-scout"}


def test_scout_returns_result(app, client):
    orchestrator = MagicMock()
    orchestrator.scout_companies = AsyncMock(return_value=ScoutResult(queries_run=5, search_queries=["q"]))
    _override(app, orchestrator)

    response = client.post(
        "/api/scout",
        json={"criteria": "AI diagnostics startups with Series A", "maxResults": 10},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["queriesRun"] == 5
    assert data["companies"] == []
    assert orchestrator.scout_companies.call_args.args == ("AI diagnostics startups with Series A", 10, 5)


def test_scout_validates_input(app, client):
    _override(app, MagicMock())

    response = client.post("/api/scout", json={"criteria": "short"})

    assert response.status_code == 422


def test_scout_rejects_criteria_that_is_short_once_collapsed(app, client):
    orchestrator = MagicMock()
    orchestrator.scout_companies = AsyncMock()
    _override(app, orchestrator)

    response = client.post("/api/scout", json={"criteria": "a         b"})

    assert response.status_code == 422
    orchestrator.scout_companies.assert_not_called()


def test_scout_configuration_error_is_400(app, client):
    orchestrator = MagicMock()
    orchestrator.scout_companies = AsyncMock(side_effect=ConfigurationError("Missing required credentials: EXA_API_KEY"))
    _override(app, orchestrator)

    response = client.post("/api/scout", json={"criteria": "AI diagnostics startups"})

    assert response.status_code == 400
    assert "EXA_API_KEY" in response.json()["detail"]


def test_scout_unexpected_error_is_500(app, client):
    orchestrator = MagicMock()
    orchestrator.scout_companies = AsyncMock(side_effect=RuntimeError("secret internals"))
    _override(app, orchestrator)

    response = client.post("/api/scout", json={"criteria": "AI diagnostics startups"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Scout run failed unexpectedly."


def test_stream_emits_progress_then_complete(app, client):
    async def fake_scout(criteria, max_results, min_relevance_score, *, reporter, cancel_event):
        reporter.emit(streaming.planning_started(criteria))
        reporter.emit(streaming.plan_created(["q1", "q2"]))
        result = ScoutResult(queries_run=2, search_queries=["q1", "q2"])
        reporter.emit(streaming.scout_complete(result.to_dict()))
        return result

    orchestrator = MagicMock()
    orchestrator.scout_companies = AsyncMock(side_effect=fake_scout)
    _override(app, orchestrator)

    response = client.post("/api/scout/stream", json={"criteria": "AI diagnostics startups"})

    assert response.status_code == 200
    body = response.text
    assert "event: planning" in body
    assert "event: complete" in body
    assert body.index("event: planning") < body.index("event: complete")
    assert '"queriesRun": 2' in body


def test_stream_emits_error_event(app, client):
    async def failing_scout(criteria, max_results, min_relevance_score, *, reporter, cancel_event):
        reporter.emit(streaming.error("Missing required credentials: OPENROUTER_API_KEY"))
        raise ConfigurationError("Missing required credentials: OPENROUTER_API_KEY")

    orchestrator = MagicMock()
    orchestrator.scout_companies = AsyncMock(side_effect=failing_scout)
    _override(app, orchestrator)

    response = client.post("/api/scout/stream", json={"criteria": "AI diagnostics startups"})

    assert "event: error" in response.text
    assert "OPENROUTER_API_KEY" in response.text
