"""Shared fixtures: a throwaway database, a vault key and an in-memory share."""
from typing import Dict, List, Optional, Set

import pytest
from cryptography.fernet import Fernet

from watchoffline.database import create_engine_for, init_db, make_sessionmaker
from watchoffline.errors import RemoteUnreachable
from watchoffline.playlists import PlaylistRepository
from watchoffline.vault import CredentialVault, ServerCredential

PLACEHOLDER = "https://img.test/placeholder.png"


# ============ In-memory share ============

class MemoryFile:
    def __init__(self, data: bytes, events: List[str], max_read: int = 7000):
        self.data = data
        self.size = len(data)
        self.events = events
        self.max_read = max_read
        self.closed = 0

    def read(self, offset: int, length: int) -> bytes:
        return self.data[offset: offset + min(length, self.max_read)]

    def close(self) -> None:
        self.closed += 1
        self.events.append("closed")


class MemoryShare:
    def __init__(self, files: Dict[str, bytes], broken: Set[str]):
        self.files = files
        self.broken = broken
        self.closed = False

    def list_dir(self, path: str):
        path = path.strip("/")
        if path in self.broken:
            raise OSError(f"access denied: {path}")
        prefix = f"{path}/" if path else ""
        children = {}
        for f in self.files:
            if not f.startswith(prefix):
                continue
            head, _, rest = f[len(prefix):].partition("/")
            children[head] = children.get(head, False) or bool(rest)
        return [(".", True), ("..", True)] + sorted(children.items())

    def close(self) -> None:
        self.closed = True


class MemoryConnector:
    """Stands in for SmbConnector. ``shares`` maps share name -> {path: bytes}."""

    def __init__(self, shares: Dict[str, Dict[str, bytes]], broken: Optional[Set[str]] = None):
        self.shares = shares
        self.broken = broken or set()
        self.events: List[str] = []
        self.opened: List[MemoryFile] = []
        self.sessions: List[MemoryShare] = []
        self.bad_password = "wrong"

    def open_file(self, cred: ServerCredential, share: str, path: str) -> MemoryFile:
        files = self.shares.get(share)
        if files is None or path not in files:
            raise RemoteUnreachable(f"{share}/{path} not found")
        f = MemoryFile(files[path], self.events)
        self.opened.append(f)
        return f

    def open_share(self, cred: ServerCredential, share: str) -> MemoryShare:
        if share not in self.shares:
            raise RemoteUnreachable(f"no share {share}")
        s = MemoryShare(self.shares[share], self.broken)
        self.sessions.append(s)
        return s

    def test_login(self, cred: ServerCredential) -> None:
        if cred.creds.password == self.bad_password:
            raise RemoteUnreachable("logon failure")

    def test_share_access(self, cred: ServerCredential, share: str) -> None:
        s = self.open_share(cred, share)
        try:
            s.list_dir("")
        finally:
            s.close()


# ============ Database Fixtures ============

@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def vault(sessionmaker):
    return CredentialVault(sessionmaker, Fernet(Fernet.generate_key()))


@pytest.fixture
def repo(sessionmaker):
    return PlaylistRepository(sessionmaker, PLACEHOLDER)


@pytest.fixture
def movie_bytes():
    return bytes(range(256)) * 1000  # 256000 bytes, every offset distinguishable mod 256
