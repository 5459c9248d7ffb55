# watchoffline/vault.py
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import AuthMissing
from .models import VaultEntry

log = logging.getLogger("vault")

_CRED_PREFIX = "cred:"
_LAST_SHARE_PREFIX = "last_share:"
_SHARES_PREFIX = "shares:"
_INDEX_KEY = "server_ids_index"
_LAST_SERVER_KEY = "last_server_id"

DEFAULT_SHARE_PORT = 445


# ───────────────────────── Identity ─────────────────────────

def make_server_id(host: str, port: int = DEFAULT_SHARE_PORT) -> str:
    """Name-based (MD5, version 3) UUID of ``host:port``.

    Byte-compatible with Java's ``UUID.nameUUIDFromBytes`` so ids saved by
    other clients of the same vault format resolve to the same entry.
    """
    digest = hashlib.md5(f"{host.strip()}:{int(port)}".encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=3))


@dataclass(frozen=True)
class ShareCredentials:
    username: str
    password: str
    domain: str = ""


@dataclass(frozen=True)
class ServerCredential:
    server_id: str
    host: str
    port: int
    creds: ShareCredentials
    last_share: Optional[str] = None

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


# ───────────────────────── Key file ─────────────────────────

def load_or_create_key(path: str) -> Fernet:
    if os.path.exists(path):
        with open(path, "rb") as f:
            key = f.read().strip()
    else:
        key = Fernet.generate_key()
        folder = os.path.dirname(os.path.abspath(path))
        os.makedirs(folder, exist_ok=True)
        with open(path, "wb") as f:
            f.write(key)
        os.chmod(path, 0o600)
        log.info("Created vault key at %s", path)
    return Fernet(key)


# ───────────────────────── Vault ─────────────────────────

class CredentialVault:
    """Encrypted key/value store for share login material.

    Every value is a Fernet token over a JSON document. A credential write,
    its index update and the ``last_server_id`` pointer commit in one
    transaction, so a crash can never leave a credential without its index
    entry.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], fernet: Fernet):
        self._sessionmaker = sessionmaker
        self._fernet = fernet
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_key_file(cls, sessionmaker: async_sessionmaker[AsyncSession], key_file: str) -> "CredentialVault":
        return cls(sessionmaker, load_or_create_key(key_file))

    # -------- encoding --------
    def _seal(self, value: Any) -> str:
        return self._fernet.encrypt(json.dumps(value).encode("utf-8")).decode("ascii")

    def _open(self, key: str, token: str) -> Any:
        try:
            return json.loads(self._fernet.decrypt(token.encode("ascii")))
        except (InvalidToken, ValueError) as e:
            log.warning("Vault entry %s unreadable: %s", key, e.__class__.__name__)
            return None

    async def _get(self, db: AsyncSession, key: str) -> Any:
        row = await db.get(VaultEntry, key)
        return None if row is None else self._open(key, row.value)

    async def _put(self, db: AsyncSession, key: str, value: Any) -> None:
        await db.merge(VaultEntry(key=key, value=self._seal(value)))

    # -------- credentials --------
    async def save(
        self,
        server_id: str,
        host: str,
        creds: ShareCredentials,
        port: int = DEFAULT_SHARE_PORT,
    ) -> None:
        doc = {
            "host": host,
            "port": int(port),
            "username": creds.username,
            "password": creds.password,
            "domain": creds.domain or "",
        }
        async with self._write_lock:
            async with self._sessionmaker() as db:
                index = set(await self._get(db, _INDEX_KEY) or [])
                index.add(server_id)
                await self._put(db, _CRED_PREFIX + server_id, doc)
                await self._put(db, _INDEX_KEY, sorted(index))
                await self._put(db, _LAST_SERVER_KEY, server_id)
                await db.commit()
        log.info("Saved credentials for %s (%s:%s)", server_id, host, port)

    async def load(self, server_id: str) -> Optional[ServerCredential]:
        async with self._sessionmaker() as db:
            doc = await self._get(db, _CRED_PREFIX + server_id)
            if not isinstance(doc, dict) or not doc.get("host"):
                return None
            last_share = await self._get(db, _LAST_SHARE_PREFIX + server_id)
        return ServerCredential(
            server_id=server_id,
            host=doc["host"],
            port=int(doc.get("port") or DEFAULT_SHARE_PORT),
            creds=ShareCredentials(
                username=doc.get("username", ""),
                password=doc.get("password", ""),
                domain=doc.get("domain") or "",
            ),
            last_share=last_share or None,
        )

    async def require(self, server_id: str) -> ServerCredential:
        cred = await self.load(server_id)
        if cred is None:
            raise AuthMissing(f"No credentials for server {server_id}")
        return cred

    async def list_known_server_ids(self) -> List[str]:
        async with self._sessionmaker() as db:
            ids = await self._get(db, _INDEX_KEY)
        return sorted(ids or [])

    async def last_server_id(self) -> Optional[str]:
        async with self._sessionmaker() as db:
            return await self._get(db, _LAST_SERVER_KEY)

    async def clear_all(self) -> None:
        async with self._write_lock:
            async with self._sessionmaker() as db:
                await db.execute(delete(VaultEntry))
                await db.commit()
        log.info("Vault cleared")

    # -------- shares --------
    async def save_last_share(self, server_id: str, share: str) -> None:
        share = share.strip().strip("/\\")
        if not share:
            return
        async with self._write_lock:
            async with self._sessionmaker() as db:
                shares = list(await self._get(db, _SHARES_PREFIX + server_id) or [])
                if share not in shares:
                    shares.append(share)
                await self._put(db, _SHARES_PREFIX + server_id, shares)
                await self._put(db, _LAST_SHARE_PREFIX + server_id, share)
                await db.commit()

    async def get_last_share(self, server_id: Optional[str] = None) -> Optional[str]:
        async with self._sessionmaker() as db:
            if server_id is None:
                server_id = await self._get(db, _LAST_SERVER_KEY)
                if not server_id:
                    return None
            return await self._get(db, _LAST_SHARE_PREFIX + server_id)

    async def saved_shares(self, server_id: str) -> List[str]:
        async with self._sessionmaker() as db:
            shares = list(await self._get(db, _SHARES_PREFIX + server_id) or [])
            last = await self._get(db, _LAST_SHARE_PREFIX + server_id)
        if last and last not in shares:
            shares.append(last)
        return shares

    # -------- diagnostics --------
    async def debug_snapshot(self) -> Dict[str, Any]:
        """Ids, hosts and share names. Never passwords."""
        ids = await self.list_known_server_ids()
        servers = []
        for sid in ids:
            cred = await self.load(sid)
            if cred is None:
                servers.append({"id": sid, "host": None, "last_share": None})
                continue
            servers.append({"id": sid, "host": cred.target, "last_share": cred.last_share})
        return {"server_ids": ids, "last_server_id": await self.last_server_id(), "servers": servers}

