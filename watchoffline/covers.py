# watchoffline/covers.py
from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Iterable, Optional

import requests

from .classify import parse_episode, parse_season_episode, series_key
from .schemas import CoverMetadata
from .utils import file_stem, normalize_name, split_path

log = logging.getLogger("covers")

# -------- query building --------

_SE_MARKER = re.compile(
    r"(?<![a-z\d])(?:[st]\d{1,2}\s*[._\- ]*\s*e\d{1,3}|\d{1,2}\s*x\s*\d{1,3}|s\d{1,2}[._\- ]+\d{1,3})(?!\d)",
    re.I,
)
_SEPARATORS = re.compile(r"[._\-]+")


def _clean(text: str) -> str:
    return normalize_name(_SEPARATORS.sub(" ", text))


def build_query(path: str) -> str:
    """Lookup key for one file.

    Episodes with enough context become ``"<series> sNNeMM"``; everything
    else is the cleaned-up file name.
    """
    parts = split_path(path)
    name = parts[-1] if parts else path
    stem = file_stem(name)

    key = series_key(path)
    if key is not None:
        series, season = key
        ep = parse_episode(name)
        if ep is not None:
            return f"{series} s{season:02d}e{ep:02d}"

    se = parse_season_episode(name)
    if se is not None:
        m = _SE_MARKER.search(stem)
        show = _clean(stem[: m.start()]) if m else ""
        if not show and len(parts) >= 2:
            show = _clean(parts[-2])
        if show:
            return f"{show} s{se[0]:02d}e{se[1]:02d}"

    return _clean(stem)


def poster_or_placeholder(meta: Optional[CoverMetadata], placeholder: str) -> str:
    url = (meta.poster_url or "").strip() if meta else ""
    return url or placeholder


# -------- lookups --------

class CoverResolver:
    """One outbound lookup per distinct query; lives for a single import run.

    Concurrent callers asking for the same query share one in-flight future.
    Any failure resolves to None.
    """

    def __init__(self, api_url: str, timeout: float = 3.5, session: Optional[requests.Session] = None):
        self.api_url = api_url.strip()
        self.timeout = timeout
        self._session = session or requests.Session()
        self._memo: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def _fetch(self, query: str) -> Optional[CoverMetadata]:
        try:
            r = self._session.get(self.api_url, params={"q": query}, timeout=self.timeout)
            if r.status_code != 200:
                log.info("Cover lookup %r -> HTTP %s", query, r.status_code)
                return None
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            log.warning("Cover lookup %r failed: %s", query, e)
            return None
        if not isinstance(data, dict):
            return None
        return CoverMetadata.from_api(data)

    def resolve(self, query: str) -> Optional[CoverMetadata]:
        if not query or not self.api_url:
            return None
        with self._lock:
            fut = self._memo.get(query)
            owner = fut is None
            if owner:
                fut = Future()
                self._memo[query] = fut
        if owner:
            try:
                fut.set_result(self._fetch(query))
            except Exception as e:
                log.warning("Cover lookup %r crashed: %s", query, e)
                fut.set_result(None)
        return fut.result()

    def resolve_many(self, queries: Iterable[str], workers: int = 16) -> Dict[str, Optional[CoverMetadata]]:
        distinct = sorted(set(q for q in queries if q))
        if not distinct:
            return {}
        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(distinct)))) as pool:
            results = list(pool.map(self.resolve, distinct))
        return dict(zip(distinct, results))

    def close(self) -> None:
        self._session.close()
