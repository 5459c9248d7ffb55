# watchoffline/gateway.py
from __future__ import annotations

import logging
from typing import List

from anyio import to_thread
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response

from .errors import AuthMissing, RemoteUnreachable
from .ranges import CHUNK_SIZE, RemoteSource, ranged_response
from .smb import ShareConnector
from .utils import decode_raw_segments, guess_content_type
from .vault import CredentialVault

log = logging.getLogger("gateway")

NAMESPACE = "smb"
_USAGE = f"Expected /{NAMESPACE}/<serverId>/<share>/<path>"

router = APIRouter(tags=["gateway"])


# ───────────────────────── Helpers ─────────────────────────

def _request_segments(request: Request) -> List[str]:
    raw = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    try:
        segments = decode_raw_segments(raw)
    except UnicodeDecodeError:
        raise HTTPException(400, "Bad path encoding")
    if len(segments) < 4 or segments[0] != NAMESPACE:
        raise HTTPException(400, _USAGE)
    for seg in segments[1:]:
        # each segment was decoded on its own; a separator here came from %2F / %5C
        if "/" in seg or "\\" in seg or seg in (".", ".."):
            raise HTTPException(400, "Invalid path segment")
    return segments


# ───────────────────────── Routes ─────────────────────────

@router.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    return "ok"


@router.get("/debug", response_class=PlainTextResponse)
async def debug(request: Request) -> str:
    vault: CredentialVault = request.app.state.vault
    snap = await vault.debug_snapshot()
    lines = [
        f"cachedServerIds={','.join(snap['server_ids'])}",
        f"lastServerId={snap['last_server_id'] or ''}",
    ]
    for s in snap["servers"]:
        lines.append(f"{s['id']} -> {s['host'] or '?'} share={s['last_share'] or ''}")
    return "\n".join(lines) + "\n"


@router.get(f"/{NAMESPACE}")
@router.get(f"/{NAMESPACE}/{{rest:path}}")
async def proxy(request: Request) -> Response:
    _, server_id, share, *parts = _request_segments(request)
    rel_path = "/".join(parts)

    vault: CredentialVault = request.app.state.vault
    try:
        cred = await vault.require(server_id)
    except AuthMissing as e:
        log.warning("%s", e)
        raise HTTPException(401, str(e))
    except Exception as e:
        log.exception("credential lookup failed for %s", server_id)
        return PlainTextResponse(f"SMB error: {e}", status_code=500)

    connector: ShareConnector = request.app.state.connector
    try:
        remote = await to_thread.run_sync(connector.open_file, cred, share, rel_path)
    except RemoteUnreachable as e:
        log.warning("open failed %s/%s on %s: %s", share, rel_path, cred.target, e)
        raise HTTPException(404, f"Not found: {share}/{rel_path}")
    except Exception as e:
        log.exception("unexpected SMB failure for %s/%s", share, rel_path)
        return PlainTextResponse(f"SMB error: {e}", status_code=500)

    try:
        return ranged_response(
            RemoteSource(remote),
            remote.size,
            request.headers.get("range"),
            request,
            guess_content_type(rel_path),
            request.app.state.chunk_size,
        )
    except Exception as e:
        await to_thread.run_sync(remote.close)
        log.exception("response setup failed for %s/%s", share, rel_path)
        return PlainTextResponse(f"SMB error: {e}", status_code=500)


# ───────────────────────── App ─────────────────────────

def create_gateway_app(vault: CredentialVault, connector: ShareConnector,
                       chunk_size: int = CHUNK_SIZE) -> FastAPI:
    app = FastAPI(title="WatchOffline gateway", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.vault = vault
    app.state.connector = connector
    app.state.chunk_size = chunk_size
    app.include_router(router)
    return app
