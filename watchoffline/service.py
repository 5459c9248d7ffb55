# watchoffline/service.py
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from anyio import to_thread
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings, settings as default_settings
from .database import get_sessionmaker
from .errors import RemoteUnreachable
from .gateway import create_gateway_app
from .importer import CoverOptions, DeviceImporter, ImportEvent, ImportResult, ShareImporter
from .localserver import create_local_app
from .playlists import PlaylistRepository
from .schemas import Playlist
from .servers import LoopbackServer
from .smb import ShareConnector, SmbConnector
from .vault import CredentialVault, ServerCredential, ShareCredentials, make_server_id

log = logging.getLogger("importer")


class WatchOffline:
    """Everything the presentation layer talks to, wired from one Settings."""

    def __init__(
        self,
        cfg: Optional[Settings] = None,
        sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
        connector: Optional[ShareConnector] = None,
    ):
        self.cfg = cfg or default_settings
        self.sessionmaker = sessionmaker or get_sessionmaker()
        self.vault = CredentialVault.from_key_file(self.sessionmaker, self.cfg.VAULT_KEY_FILE)
        self.repo = PlaylistRepository(self.sessionmaker, self.cfg.PLACEHOLDER_POSTER)
        self.connector: ShareConnector = connector or SmbConnector()

        self.gateway = LoopbackServer(
            create_gateway_app(self.vault, self.connector, self.cfg.STREAM_CHUNK_SIZE),
            self.cfg.GATEWAY_HOST,
            "gateway",
        )
        self.local_server = LoopbackServer(
            create_local_app(self.cfg.local_roots, self.cfg.STREAM_CHUNK_SIZE),
            self.cfg.GATEWAY_HOST,
            "local files",
        )

    @property
    def covers(self) -> CoverOptions:
        return CoverOptions(
            api_url=self.cfg.COVER_API_URL,
            timeout=self.cfg.COVER_TIMEOUT,
            workers=self.cfg.COVER_WORKERS,
            placeholder=self.cfg.PLACEHOLDER_POSTER,
        )

    # ---- servers ----
    async def start_gateway(self, port: Optional[int] = None) -> bool:
        return await self.gateway.ensure_started(port or self.cfg.GATEWAY_PORT)

    async def start_local_server(self, port: Optional[int] = None) -> bool:
        return await self.local_server.ensure_started(port or self.cfg.LOCAL_SERVER_PORT)

    async def stop(self) -> None:
        await self.gateway.stop()
        await self.local_server.stop()

    # ---- library ----
    async def list_playlists(self) -> List[Playlist]:
        return await self.repo.list()

    def share_importer(self) -> ShareImporter:
        return ShareImporter(
            self.vault, self.repo, self.connector,
            self.gateway.port or self.cfg.GATEWAY_PORT,
            self.covers,
            ensure_server=self.start_gateway,
        )

    def device_importer(self, roots: Optional[Sequence[str]] = None) -> DeviceImporter:
        return DeviceImporter(
            roots if roots is not None else self.cfg.local_roots,
            self.repo,
            self.local_server.port or self.cfg.LOCAL_SERVER_PORT,
            self.covers,
            ensure_server=self.start_local_server,
        )

    async def import_from_share(self, on_event: Optional[Callable[[ImportEvent], None]] = None) -> ImportResult:
        return await self.share_importer().run(on_event)

    async def import_from_device(self, roots: Optional[Sequence[str]] = None,
                                 on_event: Optional[Callable[[ImportEvent], None]] = None) -> ImportResult:
        return await self.device_importer(roots).run(on_event)

    # ---- servers on the LAN ----
    async def connect_server(self, host: str, share: str, username: str = "", password: str = "",
                             domain: str = "", port: Optional[int] = None) -> ServerCredential:
        """Check login and share access, then remember both."""
        port = port or self.cfg.SHARE_DEFAULT_PORT
        host = host.strip()
        share = share.strip().strip("/\\")
        cred = ServerCredential(
            server_id=make_server_id(host, port),
            host=host,
            port=port,
            creds=ShareCredentials(username=username, password=password, domain=domain),
        )
        try:
            await to_thread.run_sync(self.connector.test_login, cred)
        except Exception as e:
            raise RemoteUnreachable(f"Login failed for {cred.target}: {e}") from e
        try:
            await to_thread.run_sync(self.connector.test_share_access, cred, share)
        except Exception as e:
            raise RemoteUnreachable(f"Cannot open share {share!r} on {cred.target}: {e}") from e

        await self.vault.save(cred.server_id, host, cred.creds, port)
        await self.vault.save_last_share(cred.server_id, share)
        log.info("Server %s ready with share %s", cred.target, share)
        return ServerCredential(cred.server_id, host, port, cred.creds, share)
