"""Integration tests for the FastAPI API surface.

Each test builds the real application with ``create_app`` against a
temporary SQLite file, ChromaDB directory and object-store root, and runs
it through ``TestClient`` so the lifespan wires every component.  The
``worker_client`` fixture additionally runs the embedded worker pool, so
jobs created over HTTP are processed end to end with mock embeddings.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import pytest
from fastapi.testclient import TestClient

from agentkb.config.settings import Settings
from agentkb.main import create_app

AGENT = "agent-1"


# ============================================================================
# Fixtures
# ============================================================================


def _settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "database_path": str(tmp_path / "agentkb.db"),
        "chromadb_persist_dir": str(tmp_path / "chroma"),
        "object_store_root": str(tmp_path / "blobs"),
        "openai_api_key": "",
        "embedding_dimension": 8,
        "queue_poll_interval_seconds": 0.05,
        "public_base_url": "http://testserver",
        "run_embedded_worker": False,
        "worker_shutdown_grace_seconds": 2.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def client(tmp_path: Path) -> Iterator[TestClient]:
    with TestClient(create_app(_settings(tmp_path))) as test_client:
        yield test_client


@pytest.fixture
def worker_client(tmp_path: Path) -> Iterator[TestClient]:
    app = create_app(_settings(tmp_path, run_embedded_worker=True, job_concurrency=2))
    with TestClient(app) as test_client:
        yield test_client


def _create_text(client: TestClient, content: str = "Hello world.", name: str = "FAQ") -> dict:
    response = client.post(
        f"/api/v1/agents/{AGENT}/sources/text",
        json={"name": name, "content": content},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _wait_for_job(client: TestClient, job_id: str, timeout: float = 15.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/api/v1/jobs/{job_id}").json()
        if job["status"] in ("completed", "failed", "cancelled"):
            return job
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish within {timeout}s")


# ============================================================================
# Source creation
# ============================================================================


class TestCreateSources:
    def test_text_source(self, client: TestClient) -> None:
        body = _create_text(client, content="Opening hours are 9-5.")

        source, job = body["source"], body["job"]
        assert source["type"] == "text"
        assert source["status"] == "pending"
        assert source["namespace"] == f"agent_{AGENT}"
        assert source["config"]["content"] == "Opening hours are 9-5."
        assert source["config"]["content_length"] == 22
        assert job["type"] == "process_text"
        assert job["status"] == "pending"
        assert job["data_source_id"] == source["id"]
        assert job["attempts"] == 0

    def test_text_preview_is_truncated(self, client: TestClient) -> None:
        body = _create_text(client, content="a" * 1000)
        config = body["source"]["config"]
        assert len(config["content"]) == 200
        assert config["content_length"] == 1000

    def test_empty_text_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            f"/api/v1/agents/{AGENT}/sources/text", json={"name": "blank", "content": ""}
        )
        assert response.status_code == 422

    def test_website_source(self, client: TestClient) -> None:
        response = client.post(
            f"/api/v1/agents/{AGENT}/sources/website",
            json={"url": "https://example.com/docs", "crawl_subpages": True, "max_pages": 3},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["source"]["type"] == "website"
        assert body["source"]["config"]["max_pages"] == 3
        assert body["source"]["config"]["crawl_subpages"] is True
        assert body["job"]["type"] == "crawl_website"

    def test_website_max_pages_is_bounded(self, client: TestClient) -> None:
        response = client.post(
            f"/api/v1/agents/{AGENT}/sources/website",
            json={"url": "https://example.com", "max_pages": 101},
        )
        assert response.status_code == 422

    def test_file_upload(self, client: TestClient) -> None:
        response = client.post(
            f"/api/v1/agents/{AGENT}/sources/file",
            files={"file": ("menu.csv", b"dish,price\nsoup,4\n", "text/csv")},
            data={"priority": "10"},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["source"]["type"] == "file"
        assert body["source"]["name"] == "menu.csv"
        assert body["source"]["config"]["mime_type"] == "text/csv"
        assert body["job"]["priority"] == 10

    def test_unsupported_file_type(self, client: TestClient) -> None:
        response = client.post(
            f"/api/v1/agents/{AGENT}/sources/file",
            files={"file": ("logo.png", b"\x89PNG\r\n", "image/png")},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ContentExtractionError"

    def test_oversized_upload(self, tmp_path: Path) -> None:
        app = create_app(_settings(tmp_path, max_upload_bytes=64))
        with TestClient(app) as small_client:
            response = small_client.post(
                f"/api/v1/agents/{AGENT}/sources/file",
                files={"file": ("big.txt", b"x" * 65, "text/plain")},
            )
        assert response.status_code == 413


# ============================================================================
# Source queries and maintenance
# ============================================================================


class TestSourceQueries:
    def test_list_and_get(self, client: TestClient) -> None:
        created = _create_text(client)
        source_id = created["source"]["id"]

        listing = client.get(f"/api/v1/agents/{AGENT}/sources").json()
        assert listing["total"] == 1
        assert listing["sources"][0]["id"] == source_id

        assert client.get(f"/api/v1/agents/{AGENT}/sources/{source_id}").json()["id"] == source_id
        assert client.get("/api/v1/agents/other/sources").json()["total"] == 0

    def test_other_agents_source_is_not_found(self, client: TestClient) -> None:
        source_id = _create_text(client)["source"]["id"]
        response = client.get(f"/api/v1/agents/other/sources/{source_id}")
        assert response.status_code == 404
        assert response.json()["error"] == "DataSourceNotFoundError"

    def test_reprocess_while_busy_conflicts(self, client: TestClient) -> None:
        source_id = _create_text(client)["source"]["id"]
        response = client.post(f"/api/v1/agents/{AGENT}/sources/{source_id}/reprocess")
        assert response.status_code == 409
        assert response.json()["error"] == "SourceBusyError"

    def test_delete_source(self, client: TestClient) -> None:
        created = _create_text(client)
        source_id, job_id = created["source"]["id"], created["job"]["id"]

        response = client.delete(f"/api/v1/agents/{AGENT}/sources/{source_id}")
        assert response.status_code == 200
        assert response.json()["source_id"] == source_id

        assert client.get(f"/api/v1/agents/{AGENT}/sources/{source_id}").status_code == 404
        assert client.get(f"/api/v1/jobs/{job_id}").json()["status"] == "cancelled"


# ============================================================================
# Jobs
# ============================================================================


class TestJobs:
    def test_get_job_and_listings(self, client: TestClient) -> None:
        created = _create_text(client)
        source_id, job_id = created["source"]["id"], created["job"]["id"]

        assert client.get(f"/api/v1/jobs/{job_id}").json()["status"] == "pending"

        agent_jobs = client.get(f"/api/v1/agents/{AGENT}/jobs").json()
        assert [j["id"] for j in agent_jobs["jobs"]] == [job_id]
        pending = client.get(f"/api/v1/agents/{AGENT}/jobs", params={"status": "completed"}).json()
        assert pending["total"] == 0

        source_jobs = client.get(f"/api/v1/agents/{AGENT}/sources/{source_id}/jobs").json()
        assert source_jobs["total"] == 1

    def test_missing_job_returns_error_body(self, client: TestClient) -> None:
        response = client.get("/api/v1/jobs/missing")
        assert response.status_code == 404
        assert response.json() == {"error": "JobNotFoundError", "detail": "Job missing not found"}

    def test_cancel_then_cancel_again(self, client: TestClient) -> None:
        created = _create_text(client)
        job_id, source_id = created["job"]["id"], created["source"]["id"]

        cancelled = client.delete(f"/api/v1/jobs/{job_id}")
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["error_message"] == "Cancelled by user"

        source = client.get(f"/api/v1/agents/{AGENT}/sources/{source_id}").json()
        assert source["status"] == "failed"
        assert source["error_message"] == "Processing cancelled"

        again = client.delete(f"/api/v1/jobs/{job_id}")
        assert again.status_code == 409
        assert again.json()["error"] == "InvalidJobStateError"

    def test_retry_requires_failed_job(self, client: TestClient) -> None:
        job_id = _create_text(client)["job"]["id"]
        assert client.post(f"/api/v1/jobs/{job_id}/retry").status_code == 409

    def test_queue_health_counts_waiting_jobs(self, client: TestClient) -> None:
        _create_text(client)
        health = client.get("/api/v1/queue/health").json()
        assert health["healthy"] is True
        assert health["waiting"] == 1
        assert health["dead"] == 0
        assert health["worker"]["running"] is False


# ============================================================================
# Realtime, uploads and introspection
# ============================================================================


class TestRealtime:
    def test_channel_info(self, client: TestClient) -> None:
        job_info = client.get("/api/v1/realtime/jobs/j1/subscribe").json()
        assert job_info == {
            "channel": "job_j1",
            "event": "job_status_update",
            "websocket_path": "/ws/jobs/j1",
        }
        agent_info = client.get(f"/api/v1/realtime/agents/{AGENT}/subscribe").json()
        assert agent_info["channel"] == f"agent_{AGENT}_sources"
        assert agent_info["event"] == "source_status_update"

    def test_job_websocket_sends_snapshot(self, client: TestClient) -> None:
        job_id = _create_text(client)["job"]["id"]
        with client.websocket_connect(f"/ws/jobs/{job_id}") as ws:
            message = ws.receive_json()
        assert message["event"] == "job_status_update"
        assert message["channel"] == f"job_{job_id}"
        assert message["data"]["status"] == "pending"

    def test_agent_websocket_sends_sources_snapshot(self, client: TestClient) -> None:
        source_id = _create_text(client)["source"]["id"]
        with client.websocket_connect(f"/ws/agents/{AGENT}/sources") as ws:
            message = ws.receive_json()
        assert message["event"] == "sources_snapshot"
        assert [s["id"] for s in message["data"]["sources"]] == [source_id]


class TestUploads:
    def test_presigned_upload_round_trip(self, client: TestClient) -> None:
        presigned = client.post(
            "/api/v1/uploads/presign",
            json={"agent_id": AGENT, "file_name": "notes.txt", "content_type": "text/plain"},
        ).json()
        assert presigned["method"] == "PUT"
        assert presigned["key"].startswith(f"uploads/{AGENT}/")

        url = urlsplit(presigned["url"])
        put = client.put(
            f"{url.path}?{url.query}",
            content=b"Notes uploaded directly.",
            headers={"content-type": "text/plain"},
        )
        assert put.status_code == 200, put.text
        assert put.json()["size"] == len(b"Notes uploaded directly.")

        created = client.post(
            f"/api/v1/agents/{AGENT}/sources/file/uploaded",
            json={"storage_key": presigned["key"], "file_name": "notes.txt"},
        )
        assert created.status_code == 201
        assert created.json()["source"]["config"]["mime_type"] == "text/plain"

    def test_presigned_download_serves_stored_file(self, client: TestClient) -> None:
        presigned = client.post(
            "/api/v1/uploads/presign",
            json={"agent_id": AGENT, "file_name": "guide.txt", "content_type": "text/plain"},
        ).json()
        upload = urlsplit(presigned["url"])
        client.put(
            f"{upload.path}?{upload.query}",
            content=b"Download me.",
            headers={"content-type": "text/plain"},
        )

        response = client.get("/api/v1/uploads/presign-download", params={"key": presigned["key"]})
        assert response.status_code == 200
        body = response.json()
        assert body["method"] == "GET"
        assert body["key"] == presigned["key"]

        download = urlsplit(body["url"])
        fetched = client.get(f"{download.path}?{download.query}")
        assert fetched.status_code == 200
        assert fetched.content == b"Download me."

    def test_presigned_download_of_missing_key_is_404(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/uploads/presign-download", params={"key": f"uploads/{AGENT}/nothing.txt"}
        )
        assert response.status_code == 404

    def test_bad_signature_is_forbidden(self, client: TestClient) -> None:
        response = client.get(
            f"/api/v1/files/uploads/{AGENT}/x.txt",
            params={"expires": int(time.time()) + 60, "signature": "0" * 64},
        )
        assert response.status_code == 403

    def test_uploaded_key_must_exist(self, client: TestClient) -> None:
        response = client.post(
            f"/api/v1/agents/{AGENT}/sources/file/uploaded",
            json={"storage_key": f"uploads/{AGENT}/none.txt", "file_name": "none.txt"},
        )
        assert response.status_code == 500
        assert response.json()["error"] == "ObjectStoreError"


class TestIntrospection:
    def test_health(self, client: TestClient) -> None:
        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert body["providers"]["embeddings"]["mock"] is True
        assert body["providers"]["embeddings"]["dimension"] == 8
        assert body["providers"]["vector_index"] == "chromadb"
        assert body["providers"]["object_store"] == "local"

    def test_vector_stats_on_empty_index(self, client: TestClient) -> None:
        body = client.get("/api/v1/vectors/stats").json()
        assert body["provider"] == "chromadb"
        assert body["total_vector_count"] == 0


# ============================================================================
# End to end with the embedded worker
# ============================================================================


class TestEmbeddedWorker:
    def test_text_source_is_ingested(self, worker_client: TestClient) -> None:
        created = _create_text(worker_client, content="Hello world.")

        job = _wait_for_job(worker_client, created["job"]["id"])

        assert job["status"] == "completed"
        assert job["progress"]["percent"] == 100
        assert job["result"]["total_chunks"] == 1
        assert job["result"]["mock_embeddings"] is True
        source = worker_client.get(
            f"/api/v1/agents/{AGENT}/sources/{created['source']['id']}"
        ).json()
        assert source["status"] == "completed"
        assert source["char_count"] == 12
        assert source["chunk_count"] == 1

        stats = worker_client.get("/api/v1/vectors/stats").json()
        assert stats["total_vector_count"] == 1

    def test_reprocess_keeps_vector_count(self, worker_client: TestClient) -> None:
        created = _create_text(worker_client, content="Short note about parking.")
        source_id = created["source"]["id"]
        _wait_for_job(worker_client, created["job"]["id"])

        again = worker_client.post(f"/api/v1/agents/{AGENT}/sources/{source_id}/reprocess")
        assert again.status_code == 202
        assert _wait_for_job(worker_client, again.json()["id"])["status"] == "completed"

        assert worker_client.get("/api/v1/vectors/stats").json()["total_vector_count"] == 1

    def test_corrupt_pdf_fails_then_retry_creates_new_job(
        self, worker_client: TestClient
    ) -> None:
        created = worker_client.post(
            f"/api/v1/agents/{AGENT}/sources/file",
            files={"file": ("broken.pdf", b"this is not a pdf", "application/pdf")},
        ).json()

        job = _wait_for_job(worker_client, created["job"]["id"])
        assert job["status"] == "failed"
        assert job["error_message"]
        source = worker_client.get(
            f"/api/v1/agents/{AGENT}/sources/{created['source']['id']}"
        ).json()
        assert source["status"] == "failed"
        assert worker_client.get("/api/v1/vectors/stats").json()["total_vector_count"] == 0

        retried = worker_client.post(f"/api/v1/jobs/{job['id']}/retry")
        assert retried.status_code == 202
        assert retried.json()["id"] != job["id"]
        assert retried.json()["data_source_id"] == created["source"]["id"]
