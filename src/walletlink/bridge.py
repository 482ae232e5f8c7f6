"""
WebSocket bridge to the browser page hosting the wallet extensions.

The page reports which extensions are injected, answers provider requests
(``enable``, ``switchNetwork``) and receives session state broadcasts.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from .errors import ProviderRejection

logger = logging.getLogger(__name__)


class BridgeError(Exception):
    """The page could not serve a provider request."""


class BrowserBridge:
    """Tracks connected pages and correlates provider requests with replies."""

    def __init__(self):
        self.active_connections: List[Any] = []
        self._extensions: Set[str] = set()
        self._pending: Dict[str, asyncio.Future] = {}
        self._tasks: Set[asyncio.Task] = set()

    # Injected environment

    def has_extension(self, name: str) -> bool:
        return name in self._extensions

    def set_extensions(self, names: Iterable[str]) -> None:
        self._extensions = {str(name) for name in names}
        logger.info(f"Injected extensions: {sorted(self._extensions)}")

    @property
    def extensions(self) -> Set[str]:
        return set(self._extensions)

    # Connections

    def attach(self, websocket) -> None:
        self.active_connections.append(websocket)
        logger.info(f"Client connected. Total connections: {len(self.active_connections)}")

    def detach(self, websocket) -> None:
        try:
            self.active_connections.remove(websocket)
        except ValueError:
            return
        logger.info(f"Client disconnected. Total connections: {len(self.active_connections)}")

        if not self.active_connections:
            self._extensions = set()
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(BridgeError("Browser page disconnected"))
            self._pending.clear()

    # Provider round-trips

    async def request(self, method: str, params: Optional[dict] = None) -> Any:
        """
        Send a provider request to the page and wait for its response.

        Parameters
        ----------
        method : str
            ``enable`` or ``switchNetwork``.
        params : Optional[dict]
            Request parameters.

        Returns
        -------
        Any
            The ``result`` field of the page's response.

        Raises
        ------
        ProviderRejection
            If the user declined the request in the wallet UI.
        BridgeError
            If no page is connected or the page reported another failure.
        """
        if not self.active_connections:
            raise BridgeError("No browser page connected")

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        websocket = self.active_connections[-1]
        try:
            await websocket.send_json(
                {"type": "request", "id": request_id, "method": method, "params": params or {}}
            )
            return await future
        finally:
            self._pending.pop(request_id, None)

    def handle_response(self, message: dict) -> None:
        """Resolve the pending request a page response belongs to."""
        request_id = message.get("id")
        future = self._pending.get(request_id)
        if future is None or future.done():
            logger.debug(f"Ignoring response for unknown or settled request {request_id}")
            return

        error = message.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            text = error.get("message") or "Request failed"
            if error.get("code") == "rejected":
                future.set_exception(ProviderRejection(text))
            else:
                future.set_exception(BridgeError(text))
            return

        future.set_result(message.get("result"))

    # Broadcast

    async def broadcast(self, payload: dict) -> None:
        """Send a message to all connected pages."""
        if not self.active_connections:
            return

        disconnected = []
        for connection in list(self.active_connections):
            try:
                await connection.send_json(payload)
            except Exception as e:
                logger.error(f"Error broadcasting to client: {e}")
                disconnected.append(connection)

        for connection in disconnected:
            self.detach(connection)

    def schedule_broadcast(self, payload: dict) -> None:
        """Broadcast from synchronous code running inside the event loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, broadcast skipped")
            return
        task = loop.create_task(self.broadcast(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
