# watchoffline/importer.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union
from urllib.parse import quote

from .classify import RawMediaItem, classify, plan_batch
from .covers import CoverResolver, build_query, poster_or_placeholder
from .errors import NoSourcesFound, RemoteUnreachable
from .gateway import NAMESPACE
from .localserver import allowed, local_url
from .playlists import PlaylistRepository
from .smb import ShareConnector
from .utils import encode_segments, pretty_title, split_path
from .vault import CredentialVault, ServerCredential
from .walker import list_local_videos, list_remote_videos

log = logging.getLogger("importer")


# ───────────────────────── Events ─────────────────────────

@dataclass(frozen=True)
class ImportProgress:
    message: str


@dataclass(frozen=True)
class ImportDone:
    count: int


@dataclass(frozen=True)
class ImportFailed:
    message: str


ImportEvent = Union[ImportProgress, ImportDone, ImportFailed]
ImportResult = Union[ImportDone, ImportFailed]
Progress = Callable[[str], None]
Entry = Tuple[str, str]  # (path used for grouping, playable url)


@dataclass
class CoverOptions:
    api_url: str = ""
    timeout: float = 3.5
    workers: int = 16
    placeholder: str = ""


def proxy_url(port: int, server_id: str, share: str, path: str) -> str:
    return (
        f"http://127.0.0.1:{port}/{NAMESPACE}/{quote(server_id, safe='')}/"
        f"{quote(share, safe='')}/{encode_segments(split_path(path))}"
    )


# ───────────────────────── Base run ─────────────────────────

class _ImportRun:
    """Walk, look up covers, classify and store, reporting through events.

    The blocking part of a run happens on one worker thread. Events always
    reach ``on_event`` on the event loop that called ``run``.
    """

    def __init__(self, repo: PlaylistRepository, covers: CoverOptions,
                 ensure_server: Optional[Callable[[], Awaitable[bool]]] = None):
        self.repo = repo
        self.covers = covers
        self.ensure_server = ensure_server

    async def _collect(self, progress: Progress) -> List[RawMediaItem]:
        raise NotImplementedError

    def _build_items(self, entries: Sequence[Entry], progress: Progress) -> List[RawMediaItem]:
        queries: Dict[str, str] = {path: build_query(path) for path, _ in entries}
        resolver = CoverResolver(self.covers.api_url, self.covers.timeout)
        try:
            if resolver.api_url:
                progress(f"Looking up covers for {len(set(queries.values()))} titles")
            found = resolver.resolve_many(queries.values(), self.covers.workers)
        finally:
            resolver.close()

        items = []
        for path, url in entries:
            meta = found.get(queries[path])
            items.append(RawMediaItem(
                path=path,
                title=(meta.matched_id if meta and meta.matched_id else pretty_title(path)),
                poster_url=poster_or_placeholder(meta, self.covers.placeholder),
                playable_url=url,
                skip_seconds=(meta.skip_seconds or 0) if meta else 0,
                delay_seconds=(meta.delay_seconds or 0) if meta else 0,
            ))
        return items

    async def run(self, on_event: Optional[Callable[[ImportEvent], None]] = None) -> ImportResult:
        loop = asyncio.get_running_loop()

        def emit(event: ImportEvent) -> None:
            if on_event is not None:
                on_event(event)

        def progress(message: str) -> None:
            log.info("%s", message)
            loop.call_soon_threadsafe(emit, ImportProgress(message))

        result: ImportResult
        try:
            if self.ensure_server is not None and not await self.ensure_server():
                raise RemoteUnreachable("Streaming server could not start")
            items = await self._collect(progress)
            playlists = classify(items)
            batch = plan_batch(playlists, await self.repo.names())
            added = 0
            for p in batch:
                if await self.repo.add(p.file_name, p.videos):
                    added += 1
            log.info("Import finished: %d new of %d playlists", added, len(playlists))
            result = ImportDone(added)
        except (NoSourcesFound, RemoteUnreachable) as e:
            log.warning("Import stopped: %s", e)
            result = ImportFailed(str(e))
        except Exception as e:
            log.exception("Import crashed")
            result = ImportFailed(f"Import failed: {e}")
        emit(result)
        return result

    def start(self, on_progress: Callable[[str], None], on_done: Callable[[int], None],
              on_error: Callable[[str], None]) -> "asyncio.Task[ImportResult]":
        def dispatch(event: ImportEvent) -> None:
            if isinstance(event, ImportProgress):
                on_progress(event.message)
            elif isinstance(event, ImportDone):
                on_done(event.count)
            else:
                on_error(event.message)

        return asyncio.ensure_future(self.run(dispatch))


# ───────────────────────── Remote shares ─────────────────────────

class ShareImporter(_ImportRun):
    def __init__(self, vault: CredentialVault, repo: PlaylistRepository, connector: ShareConnector,
                 gateway_port: int, covers: CoverOptions,
                 ensure_server: Optional[Callable[[], Awaitable[bool]]] = None):
        super().__init__(repo, covers, ensure_server)
        self.vault = vault
        self.connector = connector
        self.gateway_port = gateway_port

    async def _targets(self) -> List[Tuple[ServerCredential, str]]:
        targets = []
        for sid in await self.vault.list_known_server_ids():
            cred = await self.vault.load(sid)
            if cred is None:
                log.warning("Server %s is indexed but has no readable credentials", sid)
                continue
            for share in await self.vault.saved_shares(sid):
                targets.append((cred, share))
        return targets

    async def _collect(self, progress: Progress) -> List[RawMediaItem]:
        targets = await self._targets()
        if not targets:
            raise NoSourcesFound("No saved shares. Connect to a server first.")
        return await asyncio.to_thread(self._scan, targets, progress)

    def _scan(self, targets: List[Tuple[ServerCredential, str]], progress: Progress) -> List[RawMediaItem]:
        entries: List[Entry] = []
        seen: Set[str] = set()
        for cred, share in targets:
            progress(f"Scanning {share} on {cred.host}")
            try:
                session = self.connector.open_share(cred, share)
            except Exception as e:
                log.warning("Cannot open %s on %s: %s", share, cred.target, e)
                progress(f"Cannot open {share} on {cred.host}: {e}")
                continue
            try:
                files = list_remote_videos(session)
            finally:
                session.close()
            progress(f"{len(files)} videos in {share}")
            for path in files:
                url = proxy_url(self.gateway_port, cred.server_id, share, path)
                if url not in seen:
                    seen.add(url)
                    entries.append((path, url))
        if not entries:
            raise NoSourcesFound("No videos found on the saved shares")
        return self._build_items(entries, progress)


# ───────────────────────── Local device ─────────────────────────

class DeviceImporter(_ImportRun):
    def __init__(self, roots: Sequence[str], repo: PlaylistRepository, local_port: int,
                 covers: CoverOptions, ensure_server: Optional[Callable[[], Awaitable[bool]]] = None):
        super().__init__(repo, covers, ensure_server)
        self.roots = list(roots)
        self.local_port = local_port

    async def _collect(self, progress: Progress) -> List[RawMediaItem]:
        if not self.roots:
            raise NoSourcesFound("No local folders configured")
        return await asyncio.to_thread(self._scan, progress)

    def _scan(self, progress: Progress) -> List[RawMediaItem]:
        entries: List[Entry] = []
        seen: Set[str] = set()
        for root in self.roots:
            progress(f"Scanning {root}")
            # grouping paths start at the root folder's own name
            base = os.path.dirname(os.path.realpath(root))
            for path in list_local_videos(root):
                if path in seen or not allowed(path, self.roots):
                    continue
                seen.add(path)
                rel = os.path.relpath(path, base).replace(os.sep, "/")
                entries.append((rel, local_url(self.local_port, path)))
        if not entries:
            raise NoSourcesFound("No videos found")
        progress(f"{len(entries)} videos found")
        return self._build_items(entries, progress)
