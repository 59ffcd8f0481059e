"""
WebSocket relay between the web app and the PC client.
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from loguru import logger

from ...exceptions import InvalidPairingCodeError
from ...services.pairing import pairing_hub, validate_pairing_code

router = APIRouter()


@router.websocket("/{code}")
async def pairing_socket(websocket: WebSocket, code: str):
    try:
        validate_pairing_code(code)
    except InvalidPairingCodeError as e:
        logger.info("Rejected pairing socket: {}", e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    await websocket.accept()
    await pairing_hub.join(code, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await pairing_hub.relay(code, websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await pairing_hub.leave(code, websocket)
