"""
Tests for the HTTP API, run against a temporary database and sample data.
"""
import pytest
from fastapi.testclient import TestClient

from api.config import Config
from api.main import create_app


@pytest.fixture
def settings(tmp_path):
    cfg = Config()
    cfg.DB_PATH = str(tmp_path / "api.db")
    cfg.EXTRACTION_STRATEGY = "sample"
    cfg.EBAY_APP_ID = ""
    cfg.FALLBACK_TO_SAMPLE = False
    cfg.DRAIN_BATCH_SIZE = 5
    cfg.DRAIN_PAUSE_SECONDS = 0
    cfg.CRON_SECRET = ""
    return cfg


def _client(settings):
    return TestClient(create_app(settings))


USER = {"X-User-Id": "user-1"}


def test_health(settings):
    with _client(settings) as client:
        r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["database"] == "connected"


def test_start_requires_user(settings):
    with _client(settings) as client:
        r = client.post("/api/scrape/start", json={"keyword": "vase"})
    assert r.status_code == 401


def test_start_rejects_empty_keyword(settings):
    with _client(settings) as client:
        assert client.post("/api/scrape/start", json={"keyword": "  "}, headers=USER).status_code == 400
        assert client.post("/api/scrape/start", json={}, headers=USER).status_code == 400
        assert client.post("/api/scrape/start", json={"keyword": "x", "mode": "bogus"},
                           headers=USER).status_code == 422
        assert client.get("/api/scrape/status", headers=USER).status_code == 404


def test_start_then_results(settings):
    with _client(settings) as client:
        r = client.post("/api/scrape/start", json={"keyword": "Abstract Painting"}, headers=USER)
        assert r.status_code == 202
        body = r.json()
        assert body["keyword"] == "abstract painting"
        assert body["status"] == "pending"
        job_id = body["job_id"]

    # lifespan shutdown waits for background jobs
    with _client(settings) as client:
        status = client.get("/api/scrape/status", params={"job_id": job_id}, headers=USER).json()
        assert status["status"] == "completed"
        assert status["items_found"] == 15

        latest = client.get("/api/scrape/status", headers=USER).json()
        assert latest["id"] == job_id

        results = client.get("/api/scrape/results", params={"job_id": job_id}, headers=USER).json()
        assert results["total"] == 15
        assert results["job"]["id"] == job_id
        assert all(item["source"] == "sample" for item in results["items"])

        other = client.get("/api/scrape/status", params={"job_id": job_id}, headers={"X-User-Id": "someone"})
        assert other.status_code == 404

        csv = client.get("/api/export/csv", headers=USER)
        assert csv.status_code == 200
        assert csv.headers["content-type"].startswith("text/csv")
        lines = csv.text.strip().splitlines()
        assert "item_url" in lines[0]
        assert len(lines) == 16


def test_quota_limit_returns_403(settings):
    with _client(settings) as client:
        for i in range(5):
            assert client.post("/api/scrape/start", json={"keyword": f"vase {i}"}, headers=USER).status_code == 202
        r = client.post("/api/scrape/start", json={"keyword": "vase 6"}, headers=USER)
    assert r.status_code == 403
    assert "free tier" in r.json()["detail"]


def test_cron_drains_pending_jobs(settings):
    settings.CRON_SECRET = "s3cret"
    with _client(settings) as client:
        jobs = client.app.state.components.jobs
        job = jobs.create("user-1", "vase")

        assert client.get("/api/cron/scrape-queue").status_code == 401
        assert client.get("/api/cron/scrape-queue", headers={"Authorization": "Bearer nope"}).status_code == 401

        r = client.post("/api/cron/scrape-queue", headers={"Authorization": "Bearer s3cret"})
        assert r.status_code == 200
        body = r.json()
        assert [x["job_id"] for x in body["results"]] == [job.id]
        assert body["results"][0]["success"] is True
        assert jobs.get(job.id).status.value == "completed"

        again = client.get("/api/cron/scrape-queue", headers={"Authorization": "Bearer s3cret"}).json()
        assert again["results"] == []
        assert again["message"] == "No pending jobs"
