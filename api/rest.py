"""
REST API and WebSocket endpoints for value meter control.

Provides HTTP endpoints for control and WebSocket for real-time state updates.
"""
import asyncio
import logging
import queue
import threading
import time
from typing import Optional, Set
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from meter_core import SetValue, AdjustValue, QueuedAction

logger = logging.getLogger(__name__)

# Will be set by create_app()
_action_queue = None
_controller = None
_subscription = None

# Track connected WebSocket clients
_websocket_clients: Set[WebSocket] = set()
_ws_lock = threading.Lock()

# Event loop for the API server thread (set when server starts)
_api_event_loop = None


class WebSocketErrorFilter(logging.Filter):
    """Drops log records about WebSocket clients going away."""

    _NOISE = ("WebSocketDisconnect", "ConnectionClosed", "websocket.close", "Unexpected ASGI message")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(marker in message for marker in self._NOISE):
            return False
        if record.exc_info and record.exc_info[0] is not None:
            if record.exc_info[0].__name__ in ("WebSocketDisconnect", "ConnectionClosedError", "ConnectionClosedOK"):
                return False
        return True


# Pydantic models for request validation (NaN and Infinity are rejected with 422)
class ValueRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    value: float  # clamped by the controller


class AdjustRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    delta: float  # positive or negative
    precise: bool = False


class StepRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    amount: float = 1
    precise: bool = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown."""
    global _subscription
    # Register change callback for WebSocket broadcast
    _subscription = _controller.subscribe(_broadcast_state_sync)
    logger.info("API server started, WebSocket broadcast registered")
    yield
    # Cleanup
    _subscription.unsubscribe()
    _subscription = None
    logger.info("API server stopped")


def create_app(action_queue, controller) -> FastAPI:
    """
    Create FastAPI app with references to the action queue and controller.

    Args:
        action_queue: The queue.Queue for submitting meter actions
        controller: The AcceleratingValueController instance for reading state

    Returns:
        Configured FastAPI app
    """
    global _action_queue, _controller
    _action_queue = action_queue
    _controller = controller

    app = FastAPI(
        title="Value Meter API",
        description="REST API for the accelerating value meter",
        version="1.0.0",
        lifespan=lifespan
    )

    # Register routes
    app.get("/api/state")(get_state)
    app.post("/api/value")(set_value)
    app.post("/api/value/adjust")(adjust_value)
    app.post("/api/value/increase")(increase_value)
    app.post("/api/value/decrease")(decrease_value)
    app.get("/api/health")(health_check)
    app.websocket("/ws/state")(websocket_state)

    return app


def _submit_action(action) -> bool:
    """Submit an action to the queue."""
    if _action_queue is None:
        logger.error("Action queue not initialized")
        return False
    try:
        _action_queue.put_nowait(QueuedAction(action=action, timestamp=time.time()))
    except queue.Full:
        logger.warning(f"Action queue full, dropping {action}")
        return False
    return True


def _broadcast_state_sync(change=None):
    """
    Synchronous callback for value changes - schedules async broadcast.
    Called from the controller on the daemon's consumer thread.
    """
    if _api_event_loop is None or _controller is None:
        logger.debug("API event loop not ready, skipping broadcast")
        return

    with _ws_lock:
        clients = list(_websocket_clients)

    if not clients:
        return

    state = _controller.get_state()
    # Schedule broadcast in the API server's event loop
    try:
        asyncio.run_coroutine_threadsafe(_broadcast_to_all(clients, state), _api_event_loop)
    except RuntimeError as e:
        logger.debug(f"Failed to schedule WebSocket broadcast: {e}")


async def _broadcast_to_all(clients: list, state: dict):
    """Broadcast state to all WebSocket clients."""
    for ws in clients:
        await _send_state_to_client(ws, state)


async def _send_state_to_client(ws: WebSocket, state: dict):
    """Send state to a single WebSocket client."""
    try:
        await ws.send_json(state)
    except Exception as e:
        logger.debug(f"Failed to send to WebSocket client: {e}")
        with _ws_lock:
            _websocket_clients.discard(ws)


# === REST Endpoints ===

def _failed():
    return JSONResponse({"error": "Failed to submit action"}, status_code=503)


async def get_state():
    """Get current meter state."""
    if _controller is None:
        return JSONResponse({"error": "Controller not initialized"}, status_code=503)
    return _controller.get_state()


async def set_value(request: ValueRequest):
    """Set the value directly. The controller clamps it to its range."""
    if _submit_action(SetValue(target=request.value)):
        return {"status": "ok", "action": "set_value", "value": request.value}
    return _failed()


async def adjust_value(request: AdjustRequest):
    """Adjust value by delta (positive = up, negative = down)."""
    if _submit_action(AdjustValue(delta=request.delta, precise=request.precise)):
        return {"status": "ok", "action": "adjust_value", "delta": request.delta, "precise": request.precise}
    return _failed()


async def increase_value(request: Optional[StepRequest] = None):
    """Increase value by amount (default 1)."""
    request = request or StepRequest()
    if _submit_action(AdjustValue(delta=request.amount, precise=request.precise)):
        return {"status": "ok", "action": "increase", "amount": request.amount, "precise": request.precise}
    return _failed()


async def decrease_value(request: Optional[StepRequest] = None):
    """Decrease value by amount (default 1)."""
    request = request or StepRequest()
    if _submit_action(AdjustValue(delta=-request.amount, precise=request.precise)):
        return {"status": "ok", "action": "decrease", "amount": request.amount, "precise": request.precise}
    return _failed()


async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "value": _controller.value if _controller else None,
    }


# === WebSocket Endpoint ===

async def websocket_state(websocket: WebSocket):
    """WebSocket endpoint for real-time state updates."""
    await websocket.accept()

    with _ws_lock:
        _websocket_clients.add(websocket)
    logger.info(f"WebSocket client connected. Total: {len(_websocket_clients)}")

    # Send current state immediately
    if _controller:
        await websocket.send_json(_controller.get_state())

    try:
        # Keep connection alive, ignore incoming messages
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        with _ws_lock:
            _websocket_clients.discard(websocket)
        logger.info(f"WebSocket client disconnected. Total: {len(_websocket_clients)}")


def start_api_server(action_queue, controller, host: str = "0.0.0.0", port: int = 8080):
    """
    Start the API server in a background thread.

    Args:
        action_queue: The queue.Queue for submitting meter actions
        controller: The AcceleratingValueController instance
        host: Bind address (default: 0.0.0.0)
        port: Port number (default: 8080)

    Returns:
        The server thread
    """
    import uvicorn

    app = create_app(action_queue, controller)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",  # Reduce uvicorn noise
        access_log=False,
    )
    server = uvicorn.Server(config)

    def run_server():
        global _api_event_loop
        # Create new event loop for this thread
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _api_event_loop = loop  # Store for cross-thread WebSocket broadcasts
        loop.run_until_complete(server.serve())

    thread = threading.Thread(target=run_server, name="APIServerThread", daemon=True)
    thread.start()
    logger.info(f"API server starting on http://{host}:{port}")

    return thread
