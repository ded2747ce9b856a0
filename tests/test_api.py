"""HTTP surface: status codes and response shapes of every endpoint."""

import pytest
from fastapi.testclient import TestClient

from conftest import GOOD_ARTICLE, FakeGateway, FakeTextClient, make_article, make_raw_item
from newsroom.api.v1.processing.routes import get_generator
from newsroom.core.config import get_settings
from newsroom.core.dependencies import (
    get_pipeline_scheduler,
    get_redis_client,
    get_session_factory,
    get_stage_gateway,
)
from newsroom.database import get_db
from newsroom.main import create_app
from newsroom.models import ArticleStatus
from newsroom.services.pipeline import PipelineOrchestrator, PipelineScheduler
from newsroom.services.processing import ContentGenerator


@pytest.fixture
def gateway():
    return FakeGateway(collect_report={"collected": 2, "sources": ["dpp"], "by_source": {}, "errors": []})


@pytest.fixture
def client(settings, session_factory, redis_client, ledger, gateway):
    app = create_app(use_lifespan=False)

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_redis_client] = lambda: redis_client
    app.dependency_overrides[get_stage_gateway] = lambda: gateway
    app.dependency_overrides[get_generator] = lambda: ContentGenerator(text_client=FakeTextClient(), settings=settings)

    scheduler = PipelineScheduler(
        PipelineOrchestrator(gateway, session_factory, ledger, settings),
        session_factory,
        ledger,
        settings=settings,
    )
    app.dependency_overrides[get_pipeline_scheduler] = lambda: scheduler

    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Pipeline
# ============================================================================

@pytest.mark.integration
def test_pipeline_run_returns_report(client):
    response = client.post("/api/v1/pipeline/run", json={"mode": "collect"})

    assert response.status_code == 200
    body = response.json()
    assert body["collected"] == 2
    assert body["mode"] == "collect"
    assert body["worker_status"]["publish"] == "skipped"

    status = client.get("/api/v1/pipeline/status").json()
    assert status["latest_run"]["pipeline_run_id"] == body["pipeline_run_id"]
    assert client.get(f"/api/v1/pipeline/runs/{body['pipeline_run_id']}").status_code == 200


@pytest.mark.integration
def test_pipeline_run_rejects_unknown_mode(client):
    response = client.post("/api/v1/pipeline/run", json={"mode": "everything"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_input"


@pytest.mark.integration
def test_pipeline_run_conflicts_with_held_lease(client, ledger):
    ledger.acquire_lease("full")

    assert client.post("/api/v1/pipeline/run", json={}).status_code == 409
    assert client.post("/api/v1/pipeline/run", json={"force": True}).status_code == 200


@pytest.mark.integration
def test_unknown_run_is_404(client):
    assert client.get("/api/v1/pipeline/runs/missing").status_code == 404


# ============================================================================
# Collection
# ============================================================================

@pytest.mark.integration
def test_collect_health_marks_failing_sources(client, ledger):
    ledger.record_source_health("dpp", "DPP", "https://example.test/dpp.rss", ok=True, collected=2)
    ledger.record_source_health("praha4", "Praha 4", "https://example.test/p4.rss", ok=False, error="timeout")

    body = client.get("/api/v1/collect/health").json()

    assert body["overall"] == "degraded"
    assert body["degraded"] == ["praha4"]


@pytest.mark.integration
def test_collect_sources_and_raw_listing(client, seed):
    seed(make_raw_item(score=0.9))

    sources = client.get("/api/v1/collect/sources").json()["sources"]
    listing = client.post("/api/v1/collect", params={"include_raw": True}).json()

    assert {s["id"] for s in sources} >= {"praha4", "dpp"}
    assert listing["total"] == 1
    assert listing["items"][0]["qualified"] is True


@pytest.mark.integration
def test_collect_limit_is_bounded(client):
    assert client.post("/api/v1/collect", params={"limit": 0}).status_code == 422


# ============================================================================
# Processing
# ============================================================================

@pytest.mark.integration
def test_score_endpoint(client, seed):
    seed(make_raw_item())

    body = client.post("/api/v1/score").json()

    assert body["processed"] == 1


@pytest.mark.integration
def test_generate_status_codes(client, seed):
    high_id, low_id = seed(make_raw_item(key="high", score=0.9), make_raw_item(key="low", score=0.2))

    assert client.post("/api/v1/generate", json={}).status_code == 400
    assert client.post("/api/v1/generate", json={"raw_content_id": "missing"}).status_code == 404
    assert client.post("/api/v1/generate", json={"raw_content_id": low_id}).status_code == 409

    created = client.post("/api/v1/generate", json={"raw_content_id": high_id})
    assert created.status_code == 201
    assert created.json()["neighborhood"] == "praha4"
    assert created.json()["status"] == ArticleStatus.GENERATED.value


@pytest.mark.integration
def test_validate_status_codes(client, seed):
    article_id, published_id = seed(make_article(), make_article(status=ArticleStatus.PUBLISHED.value, confidence=0.9))

    assert client.post("/api/v1/validate", json={"content_text": ""}).status_code == 400
    assert client.post(
        "/api/v1/validate", json={"content_text": GOOD_ARTICLE, "content_id": published_id}
    ).status_code == 409
    assert client.post(
        "/api/v1/validate", json={"content_text": GOOD_ARTICLE, "content_id": "missing"}
    ).status_code == 404

    body = client.post(
        "/api/v1/validate",
        json={"content_text": GOOD_ARTICLE, "category": "transport", "content_id": article_id},
    ).json()
    assert body["approved"] is True
    assert body["content_id"] == article_id


@pytest.mark.integration
def test_publish_status_codes(client, seed):
    ready_id, weak_id = seed(
        make_article(status=ArticleStatus.VALIDATED.value, confidence=0.9),
        make_article(status=ArticleStatus.VALIDATED.value, confidence=0.84),
    )

    assert client.post("/api/v1/publish", json={}).status_code == 400
    assert client.post("/api/v1/publish", json={"content_id": "missing"}).status_code == 404
    assert client.post("/api/v1/publish", json={"content_id": weak_id}).status_code == 404

    published = client.post("/api/v1/publish", json={"content_id": ready_id})
    assert published.status_code == 200
    assert published.json()["status"] == ArticleStatus.PUBLISHED.value


# ============================================================================
# Scheduler and health
# ============================================================================

@pytest.mark.integration
def test_scheduler_endpoints(client):
    status = client.get("/api/v1/scheduler")
    assert status.status_code == 200
    assert status.json()["is_running"] is False

    summary = client.post("/api/v1/scheduler").json()
    assert summary["pipeline"]["mode"] == "full"
    assert "cleanup" in summary


@pytest.mark.integration
def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
