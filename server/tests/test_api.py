from __future__ import annotations

import base64
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import FakeProvider, no_sleep, reply
from studio.main import create_app
from studio.models.schemas import HistoryRecord, JobStatus
from studio.services.credentials import StaticCredentialProvider
from studio.services.history import HistoryLog
from studio.services.orchestration import GenerationOrchestrator
from studio.services.storage import MemoryStore

SUBMIT_PATH = "/api/v3/kwaivgi/kling-video-o1-std/image-to-video"
AUDIO = {"filename": "take1.mp3", "content": base64.b64encode(b"ID3 audio").decode()}


def _client(provider: FakeProvider, credentials) -> TestClient:  # noqa: ANN001
    store = MemoryStore()
    orchestrator = GenerationOrchestrator(
        credentials,
        HistoryLog(store),
        transport=provider.transport(),
        poll_interval=0,
        max_attempts=3,
        sleep=no_sleep,
    )
    return TestClient(create_app(store=store, orchestrator=orchestrator))


@pytest.fixture
def client(provider, credentials):  # noqa: ANN001, ANN201
    with _client(provider, credentials) as test_client:
        yield test_client


def test_root_health(client) -> None:  # noqa: ANN001
    assert client.get("/").json() == {"service": "studio-jobs", "status": "ok"}


def test_submit_returns_job_id(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", SUBMIT_PATH, reply(200, json={"id": "vid-1"}))
    provider.add("GET", "/api/v3/predictions/vid-1/result", reply(202))

    response = client.post("/jobs/image-to-video", json={"image": "aW1hZ2U=", "prompt": "dog in park"})

    assert response.status_code == 202
    body = response.json()
    assert body["job"]["id"] == "vid-1"
    assert body["accepted_without_id"] is False
    assert client.get("/jobs/vid-1").status_code == 200


def test_submit_without_identifier(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", SUBMIT_PATH, reply(200, json={"message": "queued"}))

    body = client.post("/jobs/image-to-video", json={"image": "aW1hZ2U=", "prompt": "dog in park"}).json()

    assert body["accepted_without_id"] is True
    assert body["job"] is None


def test_submit_rejection_maps_to_bad_gateway(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", SUBMIT_PATH, reply(400, json={"message": "image is required"}))

    response = client.post("/jobs/image-to-video", json={"image": "aW1hZ2U=", "prompt": "dog in park"})

    assert response.status_code == 502
    assert response.json()["detail"] == "image is required"


def test_missing_credentials_is_bad_request(provider) -> None:  # noqa: ANN001
    with _client(provider, StaticCredentialProvider({})) as test_client:
        response = test_client.post("/jobs/image-to-video", json={"image": "aW1hZ2U=", "prompt": "p"})

    assert response.status_code == 400
    assert "Settings menu" in response.json()["detail"]
    assert provider.calls == []


def test_invalid_payload_is_rejected_before_submission(client, provider) -> None:  # noqa: ANN001
    response = client.post("/jobs/image-to-video", json={"image": "aW1hZ2U=", "prompt": "p", "duration": 7})

    assert response.status_code == 422
    assert provider.calls == []


def test_unknown_job_is_not_found(client) -> None:  # noqa: ANN001
    assert client.get("/jobs/nope").status_code == 404
    assert client.post("/jobs/nope/cancel").status_code == 404
    assert client.delete("/jobs/nope").status_code == 204


def test_history_lists_newest_first(client) -> None:  # noqa: ANN001
    history: HistoryLog = client.app.state.history
    for index in range(2):
        history.append(
            HistoryRecord(
                id=f"vid-{index}",
                status=JobStatus.COMPLETED,
                created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
                outputs=["https://x/v.mp4"],
            )
        )

    assert [entry["id"] for entry in client.get("/history/").json()] == ["vid-1", "vid-0"]


def test_saving_credentials(client) -> None:  # noqa: ANN001
    assert client.put("/settings/credentials/wavespeed", json={"api_key": " ws-new "}).status_code == 204
    assert client.get("/settings/credentials").json()["wavespeed"] is True
    assert client.app.state.store.get("wavespeedApiKey") == "ws-new"
    assert client.put("/settings/credentials/openai", json={"api_key": "x"}).status_code == 404


def test_voice_clone_phase_flow(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", "/v1/voices/pvc", reply(200, json={"voice_id": "v1"}))
    provider.add("POST", "/v1/voices/pvc/v1/samples", reply(500, json={"detail": {"message": "storage offline"}}))

    created = client.post("/voice-clones/", json={"name": "Narrator"})
    assert created.status_code == 201
    run = created.json()
    assert run["next_phase"] == "upload_samples"
    assert run["message"] is None
    run_id = run["run_id"]

    skipped = client.post(f"/voice-clones/{run_id}/phases", json={"phase": "train"})
    assert skipped.status_code == 409

    failed = client.post(f"/voice-clones/{run_id}/phases", json={"input": [AUDIO]})
    assert failed.status_code == 502
    assert failed.json()["detail"] == "storage offline"

    state = client.get(f"/voice-clones/{run_id}").json()
    assert state["terminal"] is True
    assert state["state"] == "failed"
    assert state["failed_phase"] == "upload_samples"
    assert state["current_phase"] == 1
    assert state["message"] == "upload_samples: storage offline"


def test_voice_clone_cancel(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", "/v1/voices/pvc", reply(200, json={"voice_id": "v1"}))
    run_id = client.post("/voice-clones/", json={"name": "Narrator"}).json()["run_id"]

    cancelled = client.post(f"/voice-clones/{run_id}/cancel").json()
    assert cancelled["state"] == "cancelled"
    assert cancelled["message"] == "Cancelled by the user."
    assert client.post(f"/voice-clones/{run_id}/cancel").json()["state"] == "cancelled"
    assert client.delete(f"/voice-clones/{run_id}").status_code == 204
    assert client.get(f"/voice-clones/{run_id}").status_code == 404


def test_voice_clone_bad_input_is_a_conflict_and_keeps_the_run(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", "/v1/voices/pvc", reply(200, json={"voice_id": "v1"}))
    provider.add("POST", "/v1/voices/pvc/v1/samples", reply(200, json={"samples": [{"sample_id": "s1"}]}))
    run_id = client.post("/voice-clones/", json={"name": "Narrator"}).json()["run_id"]

    empty = client.post(f"/voice-clones/{run_id}/phases", json={"input": []})
    assert empty.status_code == 409
    assert empty.json()["detail"] == "Please upload at least one audio file."

    state = client.get(f"/voice-clones/{run_id}").json()
    assert state["terminal"] is False
    assert state["next_phase"] == "upload_samples"

    uploaded = client.post(f"/voice-clones/{run_id}/phases", json={"input": [AUDIO]})
    assert uploaded.status_code == 200
    assert uploaded.json()["artifacts"]["upload_samples"] == ["s1"]


def test_veo_submission_is_not_tracked(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", "/api/v1/veo/generate", reply(200, json={"code": 200, "data": {"taskId": "veo-1"}}))

    response = client.post(
        "/jobs/veo",
        json={"prompt": "a lighthouse at dusk", "image_urls": ["https://img/a.png"], "aspect_ratio": "9:16"},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["job"]["id"] == "veo-1"
    assert body["message"] == "Task veo-1 submitted."
    assert client.get("/jobs/veo-1").status_code == 404


def test_veo_requires_an_image_url(client, provider) -> None:  # noqa: ANN001
    response = client.post("/jobs/veo", json={"prompt": "waves", "image_urls": ["  "]})

    assert response.status_code == 422
    assert provider.calls == []


def test_provider_history_skips_malformed_items(client, provider) -> None:  # noqa: ANN001
    items = [
        {"id": "p1", "model": "kwaivgi/kling-video-o1-std/image-to-video"},
        "not-a-prediction",
        {"id": "p2", "model": "wavespeed-ai/flux-dev"},
        None,
    ]
    provider.add("POST", "/api/v3/predictions", reply(200, json={"data": {"items": items}}))

    response = client.get("/history/provider")

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == ["p1"]


def test_provider_history_with_non_json_body_is_bad_gateway(client, provider) -> None:  # noqa: ANN001
    provider.add("POST", "/api/v3/predictions", reply(200, content=b"<html>maintenance</html>"))

    response = client.get("/history/provider")

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to fetch history: response was not JSON"


def test_balance(client, provider) -> None:  # noqa: ANN001
    provider.add("GET", "/api/v3/balance", reply(200, json={"code": 200, "data": {"balance": 12.5}}))

    assert client.get("/settings/balance").json() == {"balance": 12.5}


def test_balance_without_key_is_null(provider) -> None:  # noqa: ANN001
    with _client(provider, StaticCredentialProvider({})) as test_client:
        assert test_client.get("/settings/balance").json() == {"balance": None}
    assert provider.calls == []


def test_malformed_balance_is_bad_gateway(client, provider) -> None:  # noqa: ANN001
    provider.add("GET", "/api/v3/balance", reply(200, json={"data": {"balance": "lots"}}))

    response = client.get("/settings/balance")

    assert response.status_code == 502
    assert response.json()["detail"] == "Invalid balance data received from API."
