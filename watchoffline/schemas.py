# watchoffline/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Stored record key -> model field. Older playlists used the second spelling.
_RECORD_KEYS: Dict[str, str] = {
    "title": "title",
    "skip": "skip_seconds",
    "skipToSecond": "skip_seconds",
    "delaySkip": "delay_seconds",
    "delaySeconds": "delay_seconds",
    "cardImageUrl": "poster_url",
    "imgSml": "poster_url",
    "backgroundImageUrl": "background_url",
    "imgBig": "background_url",
    "videoUrl": "playable_url",
    "videoSrc": "playable_url",
}

# current spelling first; it wins when a record carries both
_PREFERRED = ("title", "skip", "delaySkip", "cardImageUrl", "backgroundImageUrl", "videoUrl")


def normalize_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map a stored VideoItem dict (any key generation) onto model field names."""
    out: Dict[str, Any] = {}
    for key in _PREFERRED:
        if raw.get(key) not in (None, ""):
            out[_RECORD_KEYS[key]] = raw[key]
    for key, field in _RECORD_KEYS.items():
        if field not in out and raw.get(key) not in (None, ""):
            out[field] = raw[key]
    return out


def _url(value: Any) -> str:
    # anything but a string counts as missing
    return value.strip() if isinstance(value, str) else ""


class VideoItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    skip_seconds: int = Field(default=0, ge=0)
    delay_seconds: int = Field(default=0, ge=0)
    poster_url: str
    background_url: str
    playable_url: str = Field(min_length=1)

    @field_validator("skip_seconds", "delay_seconds", mode="before")
    @classmethod
    def _non_negative(cls, v: Any) -> int:
        try:
            return max(0, int(v or 0))
        except (TypeError, ValueError):
            return 0

    @classmethod
    def from_record(cls, raw: Dict[str, Any], placeholder: str) -> "VideoItem":
        data = normalize_record(raw)
        poster = _url(data.get("poster_url")) or placeholder
        data["poster_url"] = poster
        data["background_url"] = _url(data.get("background_url")) or poster
        return cls(**data)

    def to_record(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "skip": self.skip_seconds,
            "delaySkip": self.delay_seconds,
            "cardImageUrl": self.poster_url,
            "backgroundImageUrl": self.background_url,
            "videoUrl": self.playable_url,
        }


class Playlist(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    videos: List[VideoItem] = Field(default_factory=list)


class CoverMetadata(BaseModel):
    matched_id: Optional[str] = None
    kind: Optional[str] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    skip_seconds: Optional[int] = None
    delay_seconds: Optional[int] = None
    poster_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CoverMetadata":
        def _int(v: Any) -> Optional[int]:
            try:
                return int(v) if v is not None else None
            except (TypeError, ValueError):
                return None

        return cls(
            matched_id=(str(data["id"]).strip() or None) if data.get("id") is not None else None,
            kind=data.get("type"),
            season=_int(data.get("season")),
            episode=_int(data.get("episode")),
            skip_seconds=_int(data.get("skipSeconds")),
            delay_seconds=_int(data.get("delaySeconds")),
            poster_url=_url(data.get("url")) or None,
        )
