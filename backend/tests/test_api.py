"""End-to-end tests for the HTTP gateway."""

from __future__ import annotations

import time
from pathlib import Path

from fastapi.testclient import TestClient


def _two_files():
    return [
        ("files", ("a.txt", b"a", "text/plain")),
        ("files", ("b.txt", b"b", "text/plain")),
    ]


def test_health(client: TestClient):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_startup_creates_upload_dir(client: TestClient, gateway_settings):
    assert Path(gateway_settings.UPLOAD_DIR).is_dir()


def test_upload_runs_both_steps_and_returns_download_links(client: TestClient, gateway_settings):
    resp = client.post("/api/upload", files=_two_files())

    assert resp.status_code == 200, resp.text
    body = resp.json()
    run_id = body["run_id"]
    assert body["smart"] == f"/api/download/{run_id}/memories.jsonl"
    assert body["finetune"] == f"/api/download/{run_id}/finetune_data.jsonl"

    combined = Path(gateway_settings.UPLOAD_DIR) / run_id / "data.txt"
    assert combined.read_bytes() == b"a\n\nb\n\n"

    smart = client.get(body["smart"])
    final = client.get(body["finetune"])
    assert smart.content == b"a\n\nb\n\n"
    assert final.status_code == 200
    assert final.content == b"a\n\nb\n\n"
    assert final.headers["content-disposition"] == 'attachment; filename="finetune_data.jsonl"'


def test_uploaded_parts_are_kept_with_timestamp_prefix(client: TestClient, gateway_settings):
    body = client.post("/api/upload", files=_two_files()).json()

    workspace = Path(gateway_settings.UPLOAD_DIR) / body["run_id"]
    uploaded = sorted(p.name.split("-", 1)[1] for p in workspace.iterdir() if "-" in p.name)
    assert uploaded == ["a.txt", "b.txt"]


def test_parts_with_the_same_name_are_all_combined(client: TestClient, gateway_settings, monkeypatch):
    monkeypatch.setattr(time, "time", lambda: 1718000000.0)
    files = [
        ("files", ("notes.txt", b"a", "text/plain")),
        ("files", ("notes.txt", b"b", "text/plain")),
    ]

    body = client.post("/api/upload", files=files).json()

    assert client.get(body["finetune"]).content == b"a\n\nb\n\n"
    workspace = Path(gateway_settings.UPLOAD_DIR) / body["run_id"]
    assert (workspace / "1718000000000-notes.txt").read_bytes() == b"a"
    assert (workspace / "1718000000000-1-notes.txt").read_bytes() == b"b"


def test_each_upload_gets_its_own_workspace(client: TestClient):
    first = client.post("/api/upload", files=[("files", ("one.txt", b"one", "text/plain"))]).json()
    second = client.post("/api/upload", files=[("files", ("two.txt", b"two", "text/plain"))]).json()

    assert first["run_id"] != second["run_id"]
    assert client.get(first["finetune"]).content == b"one\n\n"
    assert client.get(second["finetune"]).content == b"two\n\n"


def test_shared_workspace_mode_uses_fixed_paths(client: TestClient, gateway_settings, monkeypatch):
    monkeypatch.setattr(gateway_settings, "ISOLATE_RUNS", False)

    resp = client.post("/api/upload", files=_two_files())

    assert resp.status_code == 200, resp.text
    assert resp.json()["smart"] == "/api/download/memories.jsonl"
    assert resp.json()["finetune"] == "/api/download/finetune_data.jsonl"
    assert client.get("/api/download/finetune_data.jsonl").content == b"a\n\nb\n\n"


def test_first_step_failure_returns_diagnostic_and_skips_second(
    client: TestClient, gateway_settings, monkeypatch, failing_script, counting_copy_script
):
    second_script, counter = counting_copy_script
    monkeypatch.setattr(gateway_settings, "SMART_SCRIPT", failing_script(["bad input\n", "line 2"]).name)
    monkeypatch.setattr(gateway_settings, "FINETUNE_SCRIPT", second_script.name)

    resp = client.post("/api/upload", files=_two_files())

    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "Error generating smart JSONL:\nbad input\nline 2"
    assert not counter.exists()


def test_second_step_failure_reports_finetune_error(
    client: TestClient, gateway_settings, monkeypatch, failing_script
):
    monkeypatch.setattr(gateway_settings, "FINETUNE_SCRIPT", failing_script(["schema mismatch"], code=4).name)

    resp = client.post("/api/upload", files=_two_files())

    assert resp.status_code == 500
    assert resp.text == "Error preparing fine-tune JSONL:\nschema mismatch"


def test_upload_without_files_is_rejected(client: TestClient):
    resp = client.post("/api/upload", data={"other": "x"})

    assert resp.status_code == 422


def test_download_missing_file_is_404(client: TestClient):
    resp = client.get("/api/download/never-written.jsonl")

    assert resp.status_code == 404
    assert resp.text == "File not found: never-written.jsonl"


def test_download_missing_run_artifact_is_404(client: TestClient):
    resp = client.get("/api/download/unknown-run/memories.jsonl")

    assert resp.status_code == 404
    assert resp.text == "File not found: unknown-run/memories.jsonl"


def test_cors_preflight_allows_any_origin(client: TestClient):
    resp = client.options(
        "/api/upload",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] in ("*", "https://example.com")


def test_download_quotes_awkward_filenames(client: TestClient, gateway_settings):
    (Path(gateway_settings.UPLOAD_DIR) / 'a"b.txt').write_bytes(b"x")

    resp = client.get("/api/download/a%22b.txt")

    assert resp.status_code == 200
    assert resp.content == b"x"
    assert resp.headers["content-disposition"] == "attachment; filename*=utf-8''a%22b.txt"
