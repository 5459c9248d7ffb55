# watchoffline/models.py
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import String, Integer, Text, JSON, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


# ---- Credential vault ----
class VaultEntry(Base):
    """One encrypted value. Keys are plain; values are Fernet tokens."""
    __tablename__ = "vault_entries"
    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ---- Playlists ----
class PlaylistRecord(Base):
    __tablename__ = "playlists"
    # insertion order is the listing order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_name: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    # raw VideoItem dicts; read back through the legacy alias mapping
    videos: Mapped[List[dict[str, Any]]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
