"""
Relay between the web app and the PC screenshot client.

Both sides connect to the same numeric pairing code. JSON text frames from
one peer are forwarded to every other peer on the channel.
"""
import asyncio
import json
import re
from typing import Any, Dict, Set

from fastapi import WebSocket
from loguru import logger

from ..config import settings
from ..exceptions import InvalidPairingCodeError


def validate_pairing_code(code: str) -> str:
    if not re.fullmatch(settings.PAIRING_CODE_PATTERN, code or ""):
        raise InvalidPairingCodeError(code)
    return code


class PairingHub:
    """Tracks open sockets per pairing code."""

    def __init__(self):
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    def peers(self, code: str) -> int:
        return len(self._channels.get(code, ()))

    async def join(self, code: str, websocket: WebSocket) -> None:
        async with self._lock:
            channel = self._channels.setdefault(code, set())
            others = list(channel)
            channel.add(websocket)

        logger.info("Pairing join code={} peers={}", code, len(others) + 1)
        if others:
            await self._send(websocket, {"type": "partner_connected"})
            await self.broadcast(code, websocket, {"type": "partner_connected"})
        else:
            await self._send(websocket, {"type": "waiting_for_client"})

    async def leave(self, code: str, websocket: WebSocket) -> None:
        async with self._lock:
            channel = self._channels.get(code)
            if channel is None:
                return
            channel.discard(websocket)
            if not channel:
                del self._channels[code]

        logger.info("Pairing leave code={} peers={}", code, self.peers(code))
        await self.broadcast(code, websocket, {"type": "partner_disconnected"})

    async def broadcast(self, code: str, sender: WebSocket, payload: Any) -> int:
        """Send ``payload`` to every peer on ``code`` except ``sender``."""
        delivered = 0
        for peer in list(self._channels.get(code, ())):
            if peer is sender:
                continue
            if await self._send(peer, payload):
                delivered += 1
        return delivered

    async def relay(self, code: str, sender: WebSocket, raw: str) -> None:
        try:
            payload = json.loads(raw)
        except ValueError:
            await self._send(sender, {"type": "error", "message": "Messages must be JSON."})
            return
        await self.broadcast(code, sender, payload)

    async def _send(self, websocket: WebSocket, payload: Any) -> bool:
        try:
            await websocket.send_json(payload)
            return True
        except Exception as e:
            logger.warning("Pairing send failed: {}", e)
            return False


# Global instance
pairing_hub = PairingHub()
