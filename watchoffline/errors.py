# watchoffline/errors.py
from __future__ import annotations


class WatchOfflineError(Exception):
    """Base class for failures the core reports to its callers."""


class AuthMissing(WatchOfflineError):
    """No vault entry exists for the requested server id."""


class RemoteUnreachable(WatchOfflineError):
    """Session, share or file could not be opened on the remote host."""


class UnreadableDirectory(WatchOfflineError):
    """A directory listing failed; walkers log it and move on."""


class NoSourcesFound(WatchOfflineError):
    """An import run had nothing to scan or found no video files."""
