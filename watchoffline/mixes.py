# watchoffline/mixes.py
"""Shuffled aggregate playlists built from the ones already imported."""
from __future__ import annotations

import logging
import random
import re
from typing import List, Optional, Sequence, Set

from .playlists import PlaylistRepository
from .schemas import Playlist, VideoItem

log = logging.getLogger("playlists")

PREFIX = "RANDOM "

_SEASON_SUFFIX = re.compile(r"_s\d{2}$")


def is_random(name: str) -> bool:
    return name.upper().startswith(PREFIX)


def base_name(file_name: str) -> str:
    """'foo bar_s02.json' -> 'foo bar'; 'saga_matrix.json' -> 'matrix'."""
    n = file_name[:-5] if file_name.lower().endswith(".json") else file_name
    n = _SEASON_SUFFIX.sub("", n)
    if n.startswith("saga_"):
        n = n[len("saga_"):]
    return n.replace("_", " ").strip()


def unique_title(base: str, taken: Set[str]) -> str:
    if base not in taken:
        return base
    i = 2
    while f"{base} ({i})" in taken:
        i += 1
    return f"{base} ({i})"


def _mix_name(sources: Sequence[Playlist], everything: bool) -> str:
    if everything:
        return f"{PREFIX}ALL {len(sources)}"
    bases = {base_name(p.file_name) for p in sources}
    if len(bases) == 1:
        return f"{PREFIX}{bases.pop().upper()}"
    return f"{PREFIX}MIX {len(sources)}"


def shuffle_videos(videos: Sequence[VideoItem], no_skip: bool, rng: random.Random) -> List[VideoItem]:
    posters = [v.poster_url for v in videos if v.poster_url]
    poster = rng.choice(posters) if posters else None
    out = []
    for v in videos:
        update = {}
        if no_skip:
            update.update(skip_seconds=0, delay_seconds=0)
        if poster:
            update.update(poster_url=poster, background_url=poster)
        out.append(v.model_copy(update=update))
    rng.shuffle(out)
    return out


async def create_random(
    repo: PlaylistRepository,
    sources: Optional[Sequence[str]] = None,
    no_skip: bool = True,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """Store a new shuffled playlist; returns its name, or None when there is nothing to mix."""
    rng = rng or random.Random()
    stored = await repo.list()
    pool = [p for p in stored if not is_random(p.file_name)]
    everything = not sources
    if sources:
        wanted = set(sources)
        pool = [p for p in pool if p.file_name in wanted]
    videos = [v for p in pool for v in p.videos]
    if not videos:
        return None

    name = unique_title(_mix_name(pool, everything), {p.file_name for p in stored})
    await repo.add(name, shuffle_videos(videos, no_skip, rng))
    log.info("Created %s with %d videos from %d playlists", name, len(videos), len(pool))
    return name


async def reshuffle_random(repo: PlaylistRepository, name: str, rng: Optional[random.Random] = None) -> bool:
    if not is_random(name):
        return False
    current = await repo.get(name)
    if current is None:
        return False
    rng = rng or random.Random()
    videos = list(current.videos)
    rng.shuffle(videos)
    await repo.upsert(name, videos)
    return True


async def delete_random(repo: PlaylistRepository, name: str) -> bool:
    if not is_random(name):
        return False
    return await repo.remove(name)


async def delete_all_random(repo: PlaylistRepository) -> int:
    removed = 0
    for name in await repo.names():
        if is_random(name) and await repo.remove(name):
            removed += 1
    return removed
