# watchoffline/servers.py
from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI

log = logging.getLogger("gateway")


def is_port_available(host: str, port: int) -> bool:
    """Check if a TCP port is available for binding on the given host."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind((host, port))
        return True
    except OSError:
        return False


class LoopbackServer:
    """A uvicorn server for one app, running as a task on the caller's loop.

    Each accepted connection is handled by its own task; blocking reads are
    pushed to worker threads by the app itself.
    """

    def __init__(self, app: FastAPI, host: str, name: str):
        self.app = app
        self.host = host
        self.name = name
        self.port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and bool(self._server and self._server.started)

    async def ensure_started(self, port: int) -> bool:
        """Start on ``port``; a repeat call for the running port is a no-op."""
        async with self._lock:
            if self.running and self.port == port:
                return True
            if self.running:
                await self._stop_locked()
            if not is_port_available(self.host, port):
                log.error("%s: port %s on %s is busy", self.name, port, self.host)
                return False

            config = uvicorn.Config(
                self.app,
                host=self.host,
                port=port,
                log_level="warning",
                access_log=False,
                lifespan="off",
            )
            server = uvicorn.Server(config)
            task = asyncio.create_task(server.serve(), name=f"{self.name}-server")
            while not server.started and not task.done():
                await asyncio.sleep(0.05)
            if not server.started:
                log.error("%s failed to start on %s:%s", self.name, self.host, port)
                return False

            self._server, self._task, self.port = server, task, port
            log.info("%s listening on http://%s:%s", self.name, self.host, port)
            return True

    async def _stop_locked(self) -> None:
        server, task = self._server, self._task
        self._server = self._task = None
        self.port = None
        if server is not None:
            server.should_exit = True
        if task is not None:
            await task

    async def stop(self) -> None:
        async with self._lock:
            await self._stop_locked()

    async def wait(self) -> None:
        if self._task is not None:
            await self._task
