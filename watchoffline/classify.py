# watchoffline/classify.py
"""Path-based grouping of video files into season and saga playlists.

Everything here is a pure function of its input: the same set of items
yields the same playlist names in the same order, whatever order the
walkers produced them in.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Set, Tuple, TypeVar

from .schemas import Playlist, VideoItem
from .utils import file_stem, normalize_name, split_path

T = TypeVar("T")

MOVIES_FALLBACK = "Movies"


@dataclass(frozen=True)
class RawMediaItem:
    path: str            # share-relative or root-relative, '/'-separated
    title: str
    poster_url: str
    playable_url: str
    skip_seconds: int = 0
    delay_seconds: int = 0


# -------- ordered matchers --------

def first_match(matchers: Sequence[Callable[[str], Optional[T]]], text: str) -> Optional[T]:
    for m in matchers:
        found = m(text)
        if found is not None:
            return found
    return None


def _group_int(pattern: Pattern[str], group: int = 1) -> Callable[[str], Optional[int]]:
    def match(text: str) -> Optional[int]:
        m = pattern.search(text)
        return int(m.group(group)) if m else None
    return match


def _pair(pattern: Pattern[str]) -> Callable[[str], Optional[Tuple[int, int]]]:
    def match(text: str) -> Optional[Tuple[int, int]]:
        m = pattern.search(text)
        return (int(m.group(1)), int(m.group(2))) if m else None
    return match


def _last_int(pattern: Pattern[str]) -> Callable[[str], Optional[int]]:
    def match(text: str) -> Optional[int]:
        hits = pattern.findall(text)
        return int(hits[-1]) if hits else None
    return match


# season folders: "Temporada 2", "Temp 2", "Season 2", "S02", "2"
SEASON_FOLDER_MATCHERS = [
    _group_int(re.compile(r"temporada\s*(\d{1,2})", re.I)),
    _group_int(re.compile(r"\btemp\s*(\d{1,2})", re.I)),
    _group_int(re.compile(r"\bseason\s*(\d{1,2})", re.I)),
    _group_int(re.compile(r"\bs(\d{1,2})\b", re.I)),
    _group_int(re.compile(r"^(\d{1,2})$")),
]

# (season, episode) from a file name, strongest first
SEASON_EPISODE_MATCHERS = [
    _pair(re.compile(r"(?<![a-z\d])[st](\d{1,2})\s*[._\- ]*\s*e(\d{1,3})(?!\d)", re.I)),   # S01E02, s01.e02, t1_e2
    _pair(re.compile(r"(?<![a-z\d])(\d{1,2})\s*x\s*(\d{1,3})(?!\d)", re.I)),               # 1x02
    _pair(re.compile(r"(?<![a-z\d])s(\d{1,2})[._\- ]+(\d{1,3})(?![a-z\d])", re.I)),            # S1.2
]

# episode number alone, when no season marker is present
EPISODE_ONLY_MATCHERS = [
    _last_int(re.compile(r"\b(?:ep|e|cap|c|episode)\s*0*(\d{1,3})\b", re.I)),
    _group_int(re.compile(r"[_\-\s]0*(\d{1,3})\s*$")),
    _group_int(re.compile(r"^0*(\d{1,3})$")),
]

# explicit ordering inside a saga
MOVIE_ORDER_MATCHERS = [
    _group_int(re.compile(r"\[(\d{1,3})\]")),
    _group_int(re.compile(r"^(\d{1,3})\D")),
    _group_int(re.compile(r"\b(?:part|parte)\s*(\d{1,3})\b", re.I)),
]

_PART_MARKER = re.compile(r"^(?:vol(?:ume)?\.?\s*)?(?:\d{1,2}|i{1,3}|iv|v|vi)$")
_PART_WORD = re.compile(r"\bparte?\b")


# -------- single-path parsers --------

def season_from_folder(name: str) -> Optional[int]:
    return first_match(SEASON_FOLDER_MATCHERS, normalize_name(name))


def parse_season_episode(filename: str) -> Optional[Tuple[int, int]]:
    return first_match(SEASON_EPISODE_MATCHERS, file_stem(filename))


def parse_episode(filename: str) -> Optional[int]:
    se = parse_season_episode(filename)
    if se is not None:
        return se[1]
    return first_match(EPISODE_ONLY_MATCHERS, normalize_name(file_stem(filename)))


def movie_order(filename: str) -> Optional[int]:
    return first_match(MOVIE_ORDER_MATCHERS, file_stem(filename).strip())


def looks_like_part(folder: str) -> bool:
    n = normalize_name(folder)
    return bool(_PART_MARKER.match(n) or _PART_WORD.search(n))


def series_key(path: str) -> Optional[Tuple[str, int]]:
    parts = split_path(path)
    if len(parts) < 3:
        return None
    season = season_from_folder(parts[-2])
    series = normalize_name(parts[-3])
    if season is None or not series:
        return None
    return series, season


def saga_name(path: str) -> str:
    parts = split_path(path)
    if len(parts) < 2:
        return MOVIES_FALLBACK
    if looks_like_part(parts[-2]):
        return parts[-3] if len(parts) >= 3 else MOVIES_FALLBACK
    return parts[-2]


def episode_title(season: int, episode: Optional[int], name: str) -> str:
    if episode is None:
        return name
    return f"S{season:02d} E{episode:02d} - {name}"


def _file_token(s: str) -> str:
    return normalize_name(s).replace("/", "_").replace("\\", "_").replace(" ", "_")


# -------- grouping --------

def _series_video(item: RawMediaItem, season: int) -> VideoItem:
    name = item.title or file_stem(item.path)
    return VideoItem(
        title=episode_title(season, parse_episode(item.path), name),
        skip_seconds=item.skip_seconds,
        delay_seconds=item.delay_seconds,
        poster_url=item.poster_url,
        background_url=item.poster_url,
        playable_url=item.playable_url,
    )


def _movie_video(item: RawMediaItem) -> VideoItem:
    return VideoItem(
        title=item.title or file_stem(item.path),
        poster_url=item.poster_url,
        background_url=item.poster_url,
        playable_url=item.playable_url,
    )


def _episode_sort(item: RawMediaItem) -> Tuple[bool, int, str]:
    ep = parse_episode(item.path)
    return (ep is None, ep or 0, item.path)


def _movie_sort(item: RawMediaItem) -> Tuple[bool, int, str, str]:
    order = movie_order(split_path(item.path)[-1] if item.path else "")
    return (order is None, order or 0, normalize_name(item.title), item.path)


def classify(items: Iterable[RawMediaItem]) -> List[Playlist]:
    ordered = sorted(items, key=lambda i: (i.path, i.playable_url))

    unique: List[RawMediaItem] = []
    seen_urls: Set[str] = set()
    for item in ordered:
        if item.playable_url in seen_urls:
            continue
        seen_urls.add(item.playable_url)
        unique.append(item)

    series: Dict[Tuple[str, int], List[RawMediaItem]] = {}
    sagas: Dict[str, List[RawMediaItem]] = {}
    for item in unique:
        key = series_key(item.path)
        if key is not None:
            series.setdefault(key, []).append(item)
        else:
            sagas.setdefault(normalize_name(saga_name(item.path)), []).append(item)

    out: List[Playlist] = []
    for (name, season) in sorted(series):
        episodes = sorted(series[(name, season)], key=_episode_sort)
        out.append(Playlist(
            file_name=f"{name}_s{season:02d}.json",
            videos=[_series_video(i, season) for i in episodes],
        ))

    for saga in sorted(sagas):
        movies = sorted(sagas[saga], key=_movie_sort)
        if len(movies) == 1:
            only = movies[0]
            file_name = f"{_file_token(only.title or file_stem(only.path))}.json"
        else:
            file_name = f"saga_{_file_token(saga)}.json"
        out.append(Playlist(file_name=file_name, videos=[_movie_video(i) for i in movies]))
    return out


# -------- names against the repository --------

def unique_name(name: str, taken: Set[str]) -> str:
    if name not in taken:
        return name
    base, dot, ext = name.rpartition(".")
    if not dot:
        base, ext = name, ""
    suffix = f".{ext}" if ext else ""
    i = 2
    while f"{base}_{i}{suffix}" in taken:
        i += 1
    return f"{base}_{i}{suffix}"


def plan_batch(playlists: Iterable[Playlist], existing: Iterable[str]) -> List[Playlist]:
    """Drop playlists already stored under the same name; suffix in-batch clashes."""
    stored = set(existing)
    taken = set(stored)
    out: List[Playlist] = []
    for p in playlists:
        if p.file_name in stored:
            continue
        name = unique_name(p.file_name, taken)
        taken.add(name)
        out.append(p if name == p.file_name else Playlist(file_name=name, videos=p.videos))
    return out
