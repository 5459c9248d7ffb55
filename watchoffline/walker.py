# watchoffline/walker.py
from __future__ import annotations

import logging
import os
from typing import Callable, Iterable, List, Optional, Tuple

from .errors import UnreadableDirectory
from .smb import ShareSession
from .utils import is_video_file

log = logging.getLogger("walker")

ListDir = Callable[[str], Iterable[Tuple[str, bool]]]

# case-insensitive substrings of folder names never worth entering
NOISE_DIRS = (
    "system volume information",
    "$recycle.bin",
    "recycler",
    "recycled",
    ".trash",
    "#recycle",
    "@eadir",
    "lost+found",
    "$windows.~bt",
)

# local storage areas owned by other apps or the OS
_LOCAL_PRIVATE = ("/android/data", "/android/obb")


def is_noise_dir(name: str) -> bool:
    n = name.lower()
    return any(token in n for token in NOISE_DIRS)


def _join(base: str, name: str, sep: str) -> str:
    if not base:
        return name
    return base.rstrip(sep) + sep + name


def walk_video_files(
    root: str,
    list_dir: ListDir,
    sep: str = "/",
    skip_dir: Optional[Callable[[str, str], bool]] = None,
) -> List[str]:
    """Depth-first listing of video files under ``root``.

    ``list_dir`` yields ``(name, is_dir)`` pairs. A directory that fails to
    list is logged and skipped; its siblings are still visited.
    """
    found: List[str] = []
    seen = set()
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(list_dir(current), key=lambda e: e[0].lower())
        except (UnreadableDirectory, OSError) as e:
            log.warning("Cannot list %s: %s", current or "/", e)
            continue
        subdirs = []
        for name, is_dir in entries:
            if name in (".", "..") or not name:
                continue
            full = _join(current, name, sep)
            if is_dir:
                if is_noise_dir(name) or (skip_dir and skip_dir(full, name)):
                    continue
                subdirs.append(full)
            elif is_video_file(name) and full not in seen:
                seen.add(full)
                found.append(full)
        # reversed so the stack pops them in listing order
        stack.extend(reversed(subdirs))
    return found


# ───────────────────────── Remote ─────────────────────────

def list_remote_videos(share: ShareSession, root: str = "") -> List[str]:
    """Share-relative paths, '/'-separated."""
    return walk_video_files(root.strip("/\\"), share.list_dir, sep="/")


# ───────────────────────── Local ─────────────────────────

def _scandir(path: str) -> List[Tuple[str, bool]]:
    with os.scandir(path) as it:
        return [(e.name, e.is_dir(follow_symlinks=False)) for e in it]


def _skip_local(full: str, name: str) -> bool:
    low = full.replace("\\", "/").lower()
    if any(p in low for p in _LOCAL_PRIVATE):
        return True
    return name.startswith(".") or name.lower() == "cache"


def list_local_videos(root: str) -> List[str]:
    """Absolute canonical paths under ``root``."""
    if not os.path.isdir(root):
        log.warning("Local root missing: %s", root)
        return []
    files = walk_video_files(os.path.abspath(root), _scandir, sep=os.sep, skip_dir=_skip_local)
    return [os.path.realpath(f) for f in files]

