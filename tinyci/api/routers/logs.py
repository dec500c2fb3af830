"""Live build-log WebSocket router."""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from tinyci.api.deps import get_log_registry
from tinyci.log_registry import LogSinkRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["logs"])

# Inbound frames are never expected; anything bigger is treated as abuse
MAX_MESSAGE_SIZE = 4096


@router.websocket("/logs/{build_id}")
async def build_logs(
    websocket: WebSocket,
    build_id: str,
    registry: LogSinkRegistry = Depends(get_log_registry),
) -> None:
    """Stream a build's console output.

    Text frames carry raw log chunks; the literal ``BUILD_COMPLETE`` frame
    is sent when the pipeline ends, after which the server closes the
    socket.  Output emitted before the client connects is not replayed.
    """
    await websocket.accept()
    await registry.register(build_id, websocket)
    logger.info("Log viewer attached to build %s", build_id[:8])

    try:
        while True:
            data = await websocket.receive_text()
            if len(data) > MAX_MESSAGE_SIZE:
                await websocket.close(code=1009, reason="Message too large")
                return
    except WebSocketDisconnect:
        logger.info("Log viewer left build %s", build_id[:8])
    except RuntimeError:
        # Closed by the pipeline after BUILD_COMPLETE
        logger.debug("Log socket for build %s already closed", build_id[:8])
    finally:
        await registry.discard(build_id, websocket)
