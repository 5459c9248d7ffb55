# watchoffline/main.py
from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import logging.config
import sys
from typing import List, Optional

from .config import settings
from .database import init_db
from .discovery import discover_servers
from .errors import WatchOfflineError
from .importer import ImportDone, ImportEvent, ImportProgress
from .mixes import create_random, delete_all_random
from .playlists import load_legacy_folder
from .service import WatchOffline

APP_LOGGERS = ("gateway", "localserver", "vault", "discovery", "walker", "covers", "importer", "playlists")


def configure_logging(level: str = "INFO") -> None:
    loggers = {
        "sqlalchemy":        {"level": "WARNING", "handlers": ["console"], "propagate": False},
        "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        "sqlalchemy.pool":   {"level": "WARNING", "handlers": ["console"], "propagate": False},
        "smbprotocol":       {"level": "WARNING", "handlers": ["console"], "propagate": False},
        "zeroconf":          {"level": "WARNING", "handlers": ["console"], "propagate": False},
    }
    for name in APP_LOGGERS:
        loggers[name] = {"level": level.upper(), "handlers": ["console"], "propagate": False}
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"std": {"format": "%(asctime)s %(levelname)s  %(name)s: %(message)s"}},
        "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "std"}},
        "loggers": loggers,
    })


def _print_event(event: ImportEvent) -> None:
    if isinstance(event, ImportProgress):
        print(f"  {event.message}")
    elif isinstance(event, ImportDone):
        print(f"Done: {event.count} new playlists")
    else:
        print(f"Error: {event.message}", file=sys.stderr)


# ── Commands ──────────────────────────────────────────────────────────────────

async def _serve(core: WatchOffline, args: argparse.Namespace) -> int:
    if not await core.start_gateway(args.port):
        return 1
    if core.cfg.local_roots and not await core.start_local_server(args.local_port):
        return 1
    print(f"Gateway on http://{core.cfg.GATEWAY_HOST}:{core.gateway.port}  (Ctrl+C to stop)")
    try:
        await core.gateway.wait()
    finally:
        await core.stop()
    return 0


async def _add_server(core: WatchOffline, args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    cred = await core.connect_server(args.host, args.share, args.user, password, args.domain, args.smb_port)
    print(f"Saved {cred.target} share={cred.last_share} id={cred.server_id}")
    return 0


async def _import_share(core: WatchOffline, args: argparse.Namespace) -> int:
    try:
        result = await core.import_from_share(_print_event)
    finally:
        await core.stop()
    return 0 if isinstance(result, ImportDone) else 1


async def _import_local(core: WatchOffline, args: argparse.Namespace) -> int:
    try:
        result = await core.import_from_device(args.roots or None, _print_event)
    finally:
        await core.stop()
    return 0 if isinstance(result, ImportDone) else 1


async def _playlists(core: WatchOffline, args: argparse.Namespace) -> int:
    if args.legacy_dir:
        print(f"Imported {await load_legacy_folder(core.repo, args.legacy_dir)} legacy playlists")
    for p in await core.list_playlists():
        print(f"{p.file_name}  ({len(p.videos)} videos)")
    return 0


async def _random(core: WatchOffline, args: argparse.Namespace) -> int:
    if args.delete_all:
        print(f"Removed {await delete_all_random(core.repo)} random playlists")
        return 0
    name = await create_random(core.repo, args.sources or None, no_skip=not args.keep_skip)
    if name is None:
        print("Nothing to mix", file=sys.stderr)
        return 1
    print(f"Created {name}")
    return 0


async def _clear(core: WatchOffline, args: argparse.Namespace) -> int:
    await core.vault.clear_all()
    if args.playlists:
        await core.repo.remove_all()
    print("Cleared")
    return 0


def _discover(args: argparse.Namespace) -> int:
    servers = discover_servers(args.seconds)
    if not servers:
        print("No servers answered; enter the host manually with add-server.")
    for s in servers:
        print(f"{s.display_name:30} {s.host}:{s.port}  id={s.id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="watchoffline", description="Share-to-HTTP gateway and media library")
    sub = p.add_subparsers(dest="command")

    s = sub.add_parser("serve", help="run the loopback gateway (and local file server)")
    s.add_argument("--port", type=int, default=settings.GATEWAY_PORT)
    s.add_argument("--local-port", type=int, default=settings.LOCAL_SERVER_PORT)

    s = sub.add_parser("add-server", help="test and save share credentials")
    s.add_argument("host")
    s.add_argument("share")
    s.add_argument("--user", default="")
    s.add_argument("--password", default=None)
    s.add_argument("--domain", default="")
    s.add_argument("--smb-port", type=int, default=settings.SHARE_DEFAULT_PORT)

    s = sub.add_parser("discover", help="look for SMB hosts on the LAN")
    s.add_argument("--seconds", type=float, default=settings.DISCOVERY_SECONDS)

    sub.add_parser("import-share", help="import every saved share")

    s = sub.add_parser("import-local", help="import local folders")
    s.add_argument("roots", nargs="*")

    s = sub.add_parser("playlists", help="list stored playlists")
    s.add_argument("--legacy-dir", default=None, help="first import old *.json playlist files")

    s = sub.add_parser("random", help="build or delete shuffled playlists")
    s.add_argument("sources", nargs="*", help="playlist names; all when omitted")
    s.add_argument("--keep-skip", action="store_true")
    s.add_argument("--delete-all", action="store_true")

    s = sub.add_parser("clear", help="forget saved servers")
    s.add_argument("--playlists", action="store_true", help="also delete all playlists")
    return p


_COMMANDS = {
    "serve": _serve,
    "add-server": _add_server,
    "import-share": _import_share,
    "import-local": _import_local,
    "playlists": _playlists,
    "random": _random,
    "clear": _clear,
}


async def _run(args: argparse.Namespace) -> int:
    await init_db()
    core = WatchOffline()
    return await _COMMANDS[args.command](core, args)


def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL)
    if not args.command:
        args = build_parser().parse_args(["serve"])
    if args.command == "discover":
        return _discover(args)
    try:
        return asyncio.run(_run(args))
    except WatchOfflineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0
