# watchoffline/smb.py
from __future__ import annotations

import contextlib
import logging
import uuid
from typing import Callable, List, Optional, Protocol, Tuple

from smbprotocol.connection import Connection
from smbprotocol.exceptions import NoMoreFiles
from smbprotocol.open import (
    CreateDisposition,
    CreateOptions,
    DirectoryAccessMask,
    FileAttributes,
    FileInformationClass,
    FilePipePrinterAccessMask,
    ImpersonationLevel,
    Open,
    ShareAccess,
)
from smbprotocol.session import Session
from smbprotocol.tree import TreeConnect

from .errors import RemoteUnreachable, UnreadableDirectory
from .vault import ServerCredential

log = logging.getLogger("gateway")

DirEntry = Tuple[str, bool]  # (name, is_dir)


# ───────────────────────── Interfaces ─────────────────────────

class RemoteFile(Protocol):
    size: int

    def read(self, offset: int, length: int) -> bytes: ...
    def close(self) -> None: ...


class ShareSession(Protocol):
    def list_dir(self, path: str) -> List[DirEntry]: ...
    def close(self) -> None: ...


class ShareConnector(Protocol):
    """Transport seam. The gateway and the remote walker only see this."""

    def open_file(self, cred: ServerCredential, share: str, path: str) -> RemoteFile: ...
    def open_share(self, cred: ServerCredential, share: str) -> ShareSession: ...
    def test_login(self, cred: ServerCredential) -> None: ...
    def test_share_access(self, cred: ServerCredential, share: str) -> None: ...


# ───────────────────────── Helpers ─────────────────────────

def _quiet(label: str, fn: Callable, *args) -> None:
    try:
        fn(*args)
    except Exception as e:
        log.warning("closing %s failed: %s", label, e)


def smb_path(path: str) -> str:
    return "\\".join(p for p in path.replace("\\", "/").split("/") if p)


def _username(cred: ServerCredential) -> Optional[str]:
    user = cred.creds.username
    if not user:
        return None
    return f"{cred.creds.domain}\\{user}" if cred.creds.domain else user


class _Layers:
    """Connection, session, tree and file opened in that order.

    ``close`` unwinds them innermost first, once; a failing close is logged
    and the remaining layers still close.
    """

    def __init__(self) -> None:
        self._stack = contextlib.ExitStack()
        self.conn: Optional[Connection] = None
        self.tree: Optional[TreeConnect] = None

    def connect(self, cred: ServerCredential, share: Optional[str], timeout: int) -> "_Layers":
        try:
            conn = Connection(uuid.uuid4(), cred.host, cred.port)
            conn.connect(timeout=timeout)
            self._stack.callback(_quiet, "connection", conn.disconnect)
            self.conn = conn

            session = Session(conn, _username(cred), cred.creds.password or None, require_encryption=False)
            session.connect()
            self._stack.callback(_quiet, "session", session.disconnect)

            if share:
                tree = TreeConnect(session, rf"\\{cred.host}\{share}")
                tree.connect()
                self._stack.callback(_quiet, "share", tree.disconnect)
                self.tree = tree
        except Exception as e:
            self.close()
            raise RemoteUnreachable(f"{cred.target}/{share or ''}: {e}") from e
        return self

    def push(self, label: str, fn: Callable, *args) -> None:
        self._stack.callback(_quiet, label, fn, *args)

    def close(self) -> None:
        self._stack.close()


# ───────────────────────── Files ─────────────────────────

class SmbRemoteFile:
    def __init__(self, layers: _Layers, handle: Open):
        self._layers = layers
        self._handle = handle
        self.size = int(handle.end_of_file)
        self._max_read = int(getattr(layers.conn, "max_read_size", 65536) or 65536)

    def read(self, offset: int, length: int) -> bytes:
        if offset >= self.size or length <= 0:
            return b""
        length = min(length, self._max_read, self.size - offset)
        return self._handle.read(offset, length)

    def close(self) -> None:
        self._layers.close()


class SmbShareSession:
    def __init__(self, layers: _Layers):
        self._layers = layers

    def list_dir(self, path: str) -> List[DirEntry]:
        d = Open(self._layers.tree, smb_path(path))
        try:
            d.create(
                ImpersonationLevel.Impersonation,
                DirectoryAccessMask.FILE_LIST_DIRECTORY,
                FileAttributes.FILE_ATTRIBUTE_DIRECTORY,
                ShareAccess.FILE_SHARE_READ | ShareAccess.FILE_SHARE_WRITE,
                CreateDisposition.FILE_OPEN,
                CreateOptions.FILE_DIRECTORY_FILE,
            )
        except Exception as e:
            raise UnreadableDirectory(f"{path or '/'}: {e}") from e
        out: List[DirEntry] = []
        try:
            while True:
                try:
                    batch = d.query_directory("*", FileInformationClass.FILE_DIRECTORY_INFORMATION)
                except NoMoreFiles:
                    break
                except Exception as e:
                    raise UnreadableDirectory(f"{path or '/'}: {e}") from e
                if not batch:
                    break
                for entry in batch:
                    name = entry["file_name"].get_value().decode("utf-16-le")
                    attrs = entry["file_attributes"].get_value()
                    out.append((name, bool(attrs & FileAttributes.FILE_ATTRIBUTE_DIRECTORY)))
        finally:
            _quiet("directory", d.close, False)
        return out

    def close(self) -> None:
        self._layers.close()


# ───────────────────────── Connector ─────────────────────────

class SmbConnector:
    """Fresh connection and session per call; nothing is pooled."""

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    def open_file(self, cred: ServerCredential, share: str, path: str) -> SmbRemoteFile:
        layers = _Layers().connect(cred, share, self.timeout)
        try:
            handle = Open(layers.tree, smb_path(path))
            handle.create(
                ImpersonationLevel.Impersonation,
                FilePipePrinterAccessMask.GENERIC_READ,
                FileAttributes.FILE_ATTRIBUTE_NORMAL,
                ShareAccess.FILE_SHARE_READ,
                CreateDisposition.FILE_OPEN,
                CreateOptions.FILE_NON_DIRECTORY_FILE,
            )
            layers.push("file", handle.close, False)
            return SmbRemoteFile(layers, handle)
        except Exception as e:
            layers.close()
            raise RemoteUnreachable(f"{share}/{path}: {e}") from e

    def open_share(self, cred: ServerCredential, share: str) -> SmbShareSession:
        return SmbShareSession(_Layers().connect(cred, share, self.timeout))

    def test_login(self, cred: ServerCredential) -> None:
        _Layers().connect(cred, None, self.timeout).close()

    def test_share_access(self, cred: ServerCredential, share: str) -> None:
        session = self.open_share(cred, share)
        try:
            session.list_dir("")
        finally:
            session.close()
