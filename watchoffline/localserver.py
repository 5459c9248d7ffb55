# watchoffline/localserver.py
from __future__ import annotations

import html
import logging
import os
from typing import List

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from .ranges import CHUNK_SIZE, LocalSource, ranged_response
from .utils import decode_raw_segments, encode_segments, guess_content_type, split_path

log = logging.getLogger("localserver")

router = APIRouter(tags=["local"])

# ───────────────────────── Helpers ─────────────────────────

def _norm(p: str) -> str:
    return os.path.normcase(os.path.realpath(p))

def allowed(path: str, roots: List[str]) -> bool:
    """True when the canonical path sits inside one of the canonical roots."""
    path_nc = _norm(path)
    for r in roots:
        r_nc = _norm(r)
        try:
            common = os.path.commonpath([path_nc, r_nc])
        except ValueError:
            # different drive letters on Windows
            continue
        if common == r_nc:
            return True
    return False

def local_url(port: int, abs_path: str) -> str:
    return f"http://127.0.0.1:{port}/{encode_segments(split_path(abs_path))}"

def _listing(path: str) -> str:
    names = sorted(os.listdir(path), key=lambda n: n.lower())
    items = []
    for name in names:
        full = os.path.join(path, name)
        href = "/" + encode_segments(split_path(full))
        label = html.escape(name + ("/" if os.path.isdir(full) else ""))
        items.append(f'<li><a href="{href}">{label}</a></li>')
    return f"<html><body><h3>{html.escape(path)}</h3><ul>{''.join(items)}</ul></body></html>"

# ───────────────────────── Routes ─────────────────────────

@router.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    return "ok"

@router.get("/{rest:path}")
async def serve_path(request: Request) -> Response:
    raw = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    try:
        segments = decode_raw_segments(raw)
    except UnicodeDecodeError:
        raise HTTPException(400, "Bad path encoding")

    path = os.path.realpath(os.sep + os.sep.join(segments))
    roots: List[str] = request.app.state.roots
    if not allowed(path, roots):
        log.warning("rejected path outside roots: %s", path)
        raise HTTPException(403, "Forbidden")
    if not os.path.exists(path):
        raise HTTPException(404, "File not found")
    if os.path.isdir(path):
        try:
            return HTMLResponse(_listing(path))
        except PermissionError:
            raise HTTPException(403, "Permission denied")

    try:
        size = os.path.getsize(path)
        source = LocalSource(path)
    except PermissionError:
        raise HTTPException(403, "Permission denied")
    except OSError as e:
        log.exception("cannot open %s", path)
        return PlainTextResponse(f"Server error: {e}", status_code=500)

    return ranged_response(
        source,
        size,
        request.headers.get("range"),
        request,
        guess_content_type(path),
        request.app.state.chunk_size,
    )

# ───────────────────────── App ─────────────────────────

def create_local_app(roots: List[str], chunk_size: int = CHUNK_SIZE) -> FastAPI:
    app = FastAPI(title="WatchOffline local files", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.roots = [os.path.realpath(r) for r in roots]
    app.state.chunk_size = chunk_size
    app.include_router(router)
    return app
