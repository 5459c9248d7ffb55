# watchoffline/utils.py
from __future__ import annotations
import mimetypes
import os
import re
from typing import List
from urllib.parse import quote, unquote

# =======================
# File type helpers
# =======================

VIDEO_EXTS = {
    ".mp4", ".mkv", ".avi", ".webm", ".mov", ".flv",
    ".mpg", ".mpeg", ".m4v", ".ts", ".3gp", ".wmv",
}

def is_video_file(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in VIDEO_EXTS

_MIME = {
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".ts": "video/mp2t",
}

def guess_content_type(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    if ext in _MIME:
        return _MIME[ext]
    ct, _ = mimetypes.guess_type(path)
    return ct or "application/octet-stream"

# =======================
# Names
# =======================

_WS_RE = re.compile(r"\s+")

def normalize_name(s: str) -> str:
    """Trimmed, underscores as spaces, collapsed whitespace, lower case."""
    if not s:
        return ""
    return _WS_RE.sub(" ", s.strip().replace("_", " ")).strip().lower()

def file_stem(path: str) -> str:
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    return name.rsplit(".", 1)[0] if "." in name else name

_SEP_RE = re.compile(r"[._]+")

def pretty_title(path: str) -> str:
    """'the.office.s01e02_720p' -> 'The Office S01e02 720p'."""
    t = _SEP_RE.sub(" ", file_stem(path))
    t = _WS_RE.sub(" ", t).strip()
    return " ".join(w[:1].upper() + w[1:] for w in t.split(" ")) if t else ""

# =======================
# URL path segments
# =======================

def split_path(path: str) -> List[str]:
    return [p for p in path.replace("\\", "/").split("/") if p]

def encode_segments(segments: List[str]) -> str:
    # quote() leaves nothing but unreserved characters; spaces become %20
    return "/".join(quote(s, safe="") for s in segments)

def decode_raw_segments(raw_path: bytes) -> List[str]:
    """Split an undecoded request path on '/' first, then decode each piece.

    An encoded separator inside a segment stays inside that segment so the
    caller can reject it.
    """
    text = raw_path.decode("latin-1").split("?", 1)[0]
    return [unquote(p, encoding="utf-8", errors="strict") for p in text.split("/") if p]
