# watchoffline/playlists.py
from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy import Text, delete, select, type_coerce
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import PlaylistRecord
from .schemas import Playlist, VideoItem

log = logging.getLogger("playlists")

# raw JSON text; each row is decoded on its own
_RAW_VIDEOS = type_coerce(PlaylistRecord.videos, Text)


def _records(videos: Iterable[VideoItem]) -> List[dict]:
    return [v.to_record() for v in videos]


class PlaylistRepository:
    """Named video collections. ``file_name`` is the only identity.

    Every mutation commits before returning.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], placeholder: str):
        self._sessionmaker = sessionmaker
        self.placeholder = placeholder

    # ---- reads ----
    def _to_playlist(self, file_name: str, text: Optional[str]) -> Optional[Playlist]:
        try:
            raw = json.loads(text) if text is not None else None
        except (TypeError, ValueError) as e:
            log.warning("Playlist %s is not valid JSON, skipping: %s", file_name, e)
            return None
        if not isinstance(raw, list):
            log.warning("Playlist %s has a corrupt video list, skipping", file_name)
            return None
        videos: List[VideoItem] = []
        for i, entry in enumerate(raw):
            if not isinstance(entry, dict):
                log.warning("Playlist %s item %d is not an object, skipping", file_name, i)
                continue
            try:
                videos.append(VideoItem.from_record(entry, self.placeholder))
            except ValidationError as e:
                log.warning("Playlist %s item %d invalid: %s", file_name, i, e.errors()[0]["msg"])
            except (TypeError, AttributeError) as e:
                log.warning("Playlist %s item %d unreadable: %s", file_name, i, e)
        return Playlist(file_name=file_name, videos=videos)

    async def list(self) -> List[Playlist]:
        try:
            async with self._sessionmaker() as db:
                rows = (await db.execute(
                    select(PlaylistRecord.file_name, _RAW_VIDEOS).order_by(PlaylistRecord.id)
                )).all()
        except SQLAlchemyError as e:
            log.error("Playlist store unreadable, treating as empty: %s", e)
            return []
        out = []
        for file_name, text in rows:
            p = self._to_playlist(file_name, text)
            if p is not None:
                out.append(p)
        return out

    async def get(self, file_name: str) -> Optional[Playlist]:
        async with self._sessionmaker() as db:
            row = (await db.execute(
                select(PlaylistRecord.file_name, _RAW_VIDEOS).where(PlaylistRecord.file_name == file_name)
            )).first()
        return self._to_playlist(row[0], row[1]) if row else None

    async def names(self) -> List[str]:
        try:
            async with self._sessionmaker() as db:
                return list((await db.execute(
                    select(PlaylistRecord.file_name).order_by(PlaylistRecord.id)
                )).scalars().all())
        except SQLAlchemyError as e:
            log.error("Playlist store unreadable, treating as empty: %s", e)
            return []

    async def exists(self, file_name: str) -> bool:
        async with self._sessionmaker() as db:
            found = (await db.execute(
                select(PlaylistRecord.id).where(PlaylistRecord.file_name == file_name)
            )).first()
        return found is not None

    # ---- writes ----
    async def add(self, file_name: str, videos: Iterable[VideoItem]) -> bool:
        """Insert unless the name is taken. Returns True when a row was written."""
        async with self._sessionmaker() as db:
            taken = (await db.execute(
                select(PlaylistRecord.id).where(PlaylistRecord.file_name == file_name)
            )).first()
            if taken is not None:
                return False
            db.add(PlaylistRecord(file_name=file_name, videos=_records(videos)))
            await db.commit()
        log.info("Added playlist %s", file_name)
        return True

    async def upsert(self, file_name: str, videos: Iterable[VideoItem]) -> None:
        async with self._sessionmaker() as db:
            row = (await db.execute(
                select(PlaylistRecord).where(PlaylistRecord.file_name == file_name)
            )).scalars().first()
            if row is None:
                db.add(PlaylistRecord(file_name=file_name, videos=_records(videos)))
            else:
                row.videos = _records(videos)
            await db.commit()

    async def remove(self, file_name: str) -> bool:
        async with self._sessionmaker() as db:
            res = await db.execute(delete(PlaylistRecord).where(PlaylistRecord.file_name == file_name))
            await db.commit()
        return (res.rowcount or 0) > 0

    async def remove_all(self) -> None:
        async with self._sessionmaker() as db:
            await db.execute(delete(PlaylistRecord))
            await db.commit()


# ───────────────────────── Legacy JSON files ─────────────────────────

def _parse_legacy(data: Any, fallback_name: str, placeholder: str) -> Optional[Playlist]:
    if isinstance(data, list):
        name, items = fallback_name, data
    elif isinstance(data, dict):
        name = str(data.get("fileName") or fallback_name)
        items = data.get("videos") or []
    else:
        return None
    videos = []
    for entry in items:
        if not isinstance(entry, dict):
            continue
        try:
            videos.append(VideoItem.from_record(entry, placeholder))
        except ValidationError:
            continue
    return Playlist(file_name=name, videos=videos)


async def load_legacy_folder(repo: PlaylistRepository, folder: str) -> int:
    """Import ``*.json`` playlists written by older clients. Returns the count added."""
    if not os.path.isdir(folder):
        return 0
    added = 0
    for name in sorted(os.listdir(folder)):
        if not name.lower().endswith(".json"):
            continue
        path = os.path.join(folder, name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Skipping unreadable playlist file %s: %s", path, e)
            continue
        playlist = _parse_legacy(data, name, repo.placeholder)
        if playlist is None or not playlist.videos:
            log.warning("Skipping playlist file without videos: %s", path)
            continue
        if await repo.add(playlist.file_name, playlist.videos):
            added += 1
    return added
