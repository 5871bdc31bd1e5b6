from __future__ import annotations

import asyncio
import importlib
import json
import sys

import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

PIPED_OK = {
    "title": "T",
    "thumbnailUrl": "https://img.test/t.jpg",
    "duration": 125,
    "uploader": "U",
    "videoStreams": [{"videoOnly": False, "quality": "720p", "url": "http://x/v"}],
    "audioStreams": [{"mimeType": "audio/mp4", "url": "http://x/a"}],
}

ECHO_ARGV = """
import json
sys.stdout.buffer.write(json.dumps(sys.argv[1:]).encode("utf-8"))
sys.stdout.buffer.flush()
"""


def _load_api(monkeypatch, registry, *, session=None, binary="yt-dlp"):
    sys.modules.pop("api.main", None)
    module = importlib.import_module("api.main")
    module.app.router.on_startup.clear()
    module.app.router.on_shutdown.clear()
    module.app.state.registry = registry
    module.app.state.http_session = session
    module.app.state.extractor_binary = binary
    return module


@pytest.fixture
def piped_registry(make_registry):
    return make_registry(
        {
            "name": "pip",
            "kind": "http_mirror",
            "family": "piped",
            "endpoint_template": "https://pip.test/streams/{video_id}",
            "request_headers": {"Authorization": "Bearer hunter2"},
        },
        {"name": "cli", "kind": "process_extractor", "timeout_ms": 20000},
    )


def test_info_without_url_is_400(monkeypatch, piped_registry) -> None:
    module = _load_api(monkeypatch, piped_registry)
    client = TestClient(module.app)

    for path in ("/api/info", "/api/info?url=", "/api/info?url=%20%20"):
        response = client.get(path)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid URL"}


def test_info_returns_canonical_record(monkeypatch, piped_registry, fake_session, fake_response) -> None:
    session = fake_session({"https://pip.test/streams/abc123": fake_response(payload=PIPED_OK)})
    module = _load_api(monkeypatch, piped_registry, session=session)
    client = TestClient(module.app)

    response = client.get("/api/info", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "T"
    assert body["thumbnail"] == "https://img.test/t.jpg"
    assert body["duration"] == "2:05"
    assert body["author"] == "U"
    assert body["source"] == "pip"
    assert [(f["quality"], f["type"]) for f in body["formats"]] == [("720p", "mp4"), ("Highest", "mp3")]
    assert body["formats"][1]["isAudio"] is True
    assert len(session.calls) == 1


def test_info_reports_last_failure_when_every_provider_fails(
    monkeypatch, piped_registry, fake_session, fake_response, fake_ytdlp
) -> None:
    binary = fake_ytdlp(
        """
        sys.stderr.write("ERROR: [youtube] abc123: Private video\\n")
        sys.exit(1)
        """
    )
    session = fake_session({"https://pip.test/streams/abc123": fake_response(status_code=503)})
    module = _load_api(monkeypatch, piped_registry, session=session, binary=binary)
    client = TestClient(module.app)

    response = client.get("/api/info", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to fetch video info"
    assert "Private video" in body["details"]


def test_download_rejects_missing_url_and_bad_type(monkeypatch, piped_registry) -> None:
    module = _load_api(monkeypatch, piped_registry)
    client = TestClient(module.app)

    assert client.get("/api/download").status_code == 400
    response = client.get("/api/download", params={"url": "https://youtu.be/abc123", "type": "avi"})
    assert response.status_code == 400
    assert "type must be one of" in response.json()["error"]


def test_download_redirects_to_direct_url(monkeypatch, piped_registry) -> None:
    module = _load_api(monkeypatch, piped_registry)
    client = TestClient(module.app)

    response = client.get(
        "/api/download",
        params={"url": "https://youtu.be/abc123", "type": "mp4", "direct": "https://cdn.test/v.mp4"},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "https://cdn.test/v.mp4"


def test_download_streams_extractor_stdout(monkeypatch, piped_registry, fake_ytdlp) -> None:
    module = _load_api(monkeypatch, piped_registry, binary=fake_ytdlp(ECHO_ARGV))
    client = TestClient(module.app)

    response = client.get(
        "/api/download",
        params={"url": "https://youtu.be/abc123", "type": "mp4", "quality": "480p"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("video/mp4")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="video-')
    assert disposition.endswith('.mp4"')
    argv = json.loads(response.content)
    assert argv[:2] == ["--output", "-"]
    assert "bestvideo[height<=480]+bestaudio/best[height<=480]" in argv
    assert argv[-1] == "https://youtu.be/abc123"


def test_download_audio_sets_mp3_headers(monkeypatch, piped_registry, fake_ytdlp) -> None:
    module = _load_api(monkeypatch, piped_registry, binary=fake_ytdlp(ECHO_ARGV))
    client = TestClient(module.app)

    response = client.get("/api/download", params={"url": "https://youtu.be/abc123", "type": "mp3"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("audio/mpeg")
    assert response.headers["content-disposition"].endswith('.mp3"')
    assert "--extract-audio" in json.loads(response.content)


def test_download_missing_binary_is_500(monkeypatch, piped_registry, tmp_path) -> None:
    module = _load_api(monkeypatch, piped_registry, binary=str(tmp_path / "no-such-yt-dlp"))
    client = TestClient(module.app)

    response = client.get("/api/download", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to download video"


def test_download_failure_before_bytes_is_500(monkeypatch, piped_registry, fake_ytdlp) -> None:
    binary = fake_ytdlp(
        """
        sys.stderr.write("ERROR: Requested format is not available\\n")
        sys.exit(1)
        """
    )
    module = _load_api(monkeypatch, piped_registry, binary=binary)
    client = TestClient(module.app)

    response = client.get("/api/download", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 500
    assert "Requested format is not available" in response.json()["details"]


def test_providers_endpoint_hides_request_headers(monkeypatch, piped_registry) -> None:
    module = _load_api(monkeypatch, piped_registry)
    client = TestClient(module.app)

    response = client.get("/api/providers")

    assert response.status_code == 200
    assert "hunter2" not in response.text
    assert [p["name"] for p in response.json()["providers"]] == ["pip", "cli"]


def test_version_endpoint(monkeypatch, piped_registry) -> None:
    module = _load_api(monkeypatch, piped_registry)
    response = TestClient(module.app).get("/api/version")
    assert response.status_code == 200
    assert response.json()["app_version"]


def test_startup_opens_shared_session_and_shutdown_closes_it(monkeypatch, tmp_path) -> None:
    import logging

    import requests

    import engine.paths

    monkeypatch.delenv("MEDIAFETCH_PROVIDERS_CONFIG", raising=False)
    monkeypatch.setattr(engine.paths, "CONFIG_DIR", tmp_path)
    sys.modules.pop("api.main", None)
    module = importlib.import_module("api.main")
    monkeypatch.setattr(module, "LOG_DIR", tmp_path / "logs")
    root = logging.getLogger("")
    before = list(root.handlers)
    level = root.level

    try:
        asyncio.run(module.startup())
        session = module.app.state.http_session
        assert isinstance(session, requests.Session)
        mirror = next(module.app.state.registry.mirrors())
        assert module._build_resolver()._build_provider(mirror)._http is session

        asyncio.run(module.shutdown())
        assert module.app.state.http_session is None
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)
        sys.modules.pop("api.main", None)
