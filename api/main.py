#!/usr/bin/env python3
import json
import logging
import os

import anyio
import requests
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse

from config.settings import APP_NAME, APP_VERSION
from engine.errors import AllProvidersExhausted, ExtractorError
from engine.extractor import resolve_ytdlp_binary
from engine.paths import LOG_DIR, ensure_dir
from engine.registry import load_registry
from engine.resolver import MetadataResolver
from engine.streaming import format_from_request, open_extractor_stream, plan_download, relay

LOG_FILENAME = "mediafetch.log"


def _env_or_default(name, default):
    value = os.environ.get(name)
    return value if value else default


def _setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, LOG_FILENAME)
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


def _error_response(status_code, error, details=None):
    body = {"error": error}
    if details is not None:
        body["details"] = details
    return SafeJSONResponse(body, status_code=status_code)


app = FastAPI(
    title=APP_NAME,
    description="Mediafetch API: resolve media metadata across fallback providers and stream downloads.",
    default_response_class=SafeJSONResponse,
)


@app.on_event("startup")
async def startup():
    _setup_logging(LOG_DIR)
    app.state.registry = load_registry()
    app.state.extractor_binary = resolve_ytdlp_binary()
    app.state.http_session = requests.Session()
    logging.info(
        "%s v%s started providers=%s extractor=%s",
        APP_NAME,
        APP_VERSION,
        [p.name for p in app.state.registry.providers],
        app.state.extractor_binary,
    )


@app.on_event("shutdown")
async def shutdown():
    session = getattr(app.state, "http_session", None)
    if session is not None:
        session.close()
        app.state.http_session = None


def _build_resolver():
    return MetadataResolver(
        app.state.registry,
        session=getattr(app.state, "http_session", None),
        extractor_binary=getattr(app.state, "extractor_binary", None),
    )


@app.get("/api/version")
async def api_version():
    return {"app_version": APP_VERSION}


@app.get("/api/providers")
async def api_providers():
    return app.state.registry.describe()


@app.get("/api/info")
async def api_info(url: str | None = Query(default=None)):
    url = (url or "").strip()
    if not url:
        return _error_response(400, "Invalid URL")

    resolver = _build_resolver()
    try:
        info = await anyio.to_thread.run_sync(resolver.resolve, url)
    except AllProvidersExhausted as exc:
        logging.error("Metadata resolution failed url=%s attempts=%d", url, len(exc.attempts))
        return _error_response(500, "Failed to fetch video info", str(exc))
    return info.to_payload()


@app.get("/api/download")
async def api_download(
    url: str | None = Query(default=None),
    media_type: str = Query(default="mp4", alias="type"),
    quality: str | None = Query(default=None),
    direct: str | None = Query(default=None),
):
    url = (url or "").strip()
    if not url:
        return _error_response(400, "Invalid URL")
    try:
        fmt = format_from_request((media_type or "").strip().lower(), quality, direct)
    except ValueError as exc:
        return _error_response(400, str(exc))

    plan = plan_download(url, fmt, binary=getattr(app.state, "extractor_binary", None))
    if plan.is_redirect:
        logging.info("Download redirected to provider-hosted stream url=%s", url)
        return RedirectResponse(plan.redirect_url, status_code=307)

    logging.info("Download requested url=%s type=%s quality=%s", url, plan.media_type, fmt.quality_label)
    try:
        process, first_chunk = await open_extractor_stream(plan.argv)
    except ExtractorError as exc:
        logging.error("Download failed before streaming url=%s: %s", url, exc)
        return _error_response(500, "Failed to download video", str(exc))

    headers = {"Content-Disposition": f'attachment; filename="{plan.filename}"'}
    return StreamingResponse(relay(process, first_chunk), media_type=plan.content_type, headers=headers)


if __name__ == "__main__":
    import uvicorn

    host = _env_or_default("MEDIAFETCH_HOST", "127.0.0.1")
    port = int(_env_or_default("MEDIAFETCH_PORT", "8000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
