"""
FastAPI Application - Pair Dashboard API

HTTP and WebSocket adapter around the DashboardController. The presentation
layer selects a pair (and optionally a connected wallet), then reads or
subscribes to the three fetch groups:

    pair       pair overview + daily/hourly series + position statistics
    swaps      latest swaps + latest mints/burns
    balances   wallet balances and router allowances

Each group is exposed as a FetchState: idle, loading, error(reason) or
ready(payload).

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from clients.ethereum import EthereumChainQuery
from clients.uniswap import UniswapApiFetcher
from core.config import ADDRESS_PATTERN, settings, validate_configuration
from core.logging import logger
from services.aggregator import GROUPS
from services.dashboard import DashboardController
from services.event_bus import STATE_TOPIC, EventBus, bus


# ============================================
# Request Models
# ============================================

class SelectionRequest(BaseModel):
    """Body of ``PUT /selection``. Omit ``pair_id`` to clear the selection."""

    pair_id: Optional[str] = Field(None, examples=["0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc"])
    account: Optional[str] = Field(None, description="Connected wallet, if any")

    @field_validator("pair_id", "account")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not ADDRESS_PATTERN.match(v):
            raise ValueError(f"Invalid address: {v}")
        return v


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the controller (unless one was injected) and run its refresh loops."""
    logger.info("=== Application Starting ===")
    collaborators = []
    try:
        if app.state.controller is None:
            validate_configuration()
            api = UniswapApiFetcher()
            await api.initialize()
            collaborators.append(api)
            chain = EthereumChainQuery()
            await chain.initialize()
            collaborators.append(chain)
            app.state.controller = DashboardController(api, chain, bus=app.state.bus)
        await app.state.controller.start()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        await _shutdown_collaborators(collaborators)
        raise

    yield

    logger.info("=== Shutting Down ===")
    try:
        await app.state.controller.stop()
    except Exception as e:
        logger.error(f"Error stopping dashboard controller: {e}")
    await _shutdown_collaborators(collaborators)
    logger.info("=== Shutdown Complete ===")


async def _shutdown_collaborators(collaborators) -> None:
    # only the ones whose initialize() succeeded are in the list
    for collaborator in collaborators:
        try:
            await collaborator.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down {collaborator.name}: {e}")


# ============================================
# Routes
# ============================================

router = APIRouter()


def _controller(request: Request) -> DashboardController:
    return request.app.state.controller


def _check_group(group: str) -> None:
    if group not in GROUPS:
        raise HTTPException(status_code=404, detail=f"Unknown group '{group}'. Available: {', '.join(GROUPS)}")


def _dump_states(controller: DashboardController) -> Dict[str, Any]:
    return {group: state.model_dump(mode="json") for group, state in controller.states().items()}


@router.get("/", tags=["System"])
async def root():
    """API information."""
    return {
        "name": "Pair Dashboard API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "groups": list(GROUPS),
    }


@router.get("/health", tags=["System"])
async def health_check(request: Request):
    """Liveness plus a short summary of the dashboard."""
    controller = _controller(request)
    states = controller.states()
    return {
        "status": "degraded" if any(s.is_error for s in states.values()) else "healthy",
        "generation": controller.tracker.current_generation(),
        "refreshing": controller.running,
        "groups": {group: state.status for group, state in states.items()},
    }


@router.put("/selection", tags=["Selection"])
async def put_selection(body: SelectionRequest, request: Request):
    """
    Select the pair (and wallet) the dashboard shows.

    Selecting the same pair and wallet again is a no-op.
    """
    controller = _controller(request)
    generation = await controller.select(body.pair_id, body.account)
    key = controller.tracker.key
    return {
        "generation": generation,
        "selection": {"pair_id": key.pair_id, "account": key.account},
        "states": _dump_states(controller),
    }


@router.post("/retry", tags=["Selection"])
async def post_retry(request: Request):
    """Relaunch every group for the current selection, e.g. after an error."""
    controller = _controller(request)
    generation = await controller.retry()
    return {"generation": generation}


@router.post("/refresh/{group}", tags=["Selection"])
async def post_refresh(group: str, request: Request):
    """
    Refresh one group in place.

    Skipped (``launched: false``) while the group is not Ready.
    """
    _check_group(group)
    launched = await _controller(request).refresh(group)
    return {"group": group, "launched": launched}


@router.get("/state", tags=["State"])
async def get_states(request: Request):
    return _dump_states(_controller(request))


@router.get("/state/{group}", tags=["State"])
async def get_state(group: str, request: Request):
    _check_group(group)
    return _controller(request).state(group).model_dump(mode="json")


@router.get("/diagnostics", tags=["System"])
async def get_diagnostics(request: Request):
    """Generation, selection, states, in-flight cycles and dropped stale results."""
    return _controller(request).diagnostics()


@router.websocket("/ws/state")
async def websocket_state(websocket: WebSocket):
    """
    Stream FetchState transitions.

    The first message is a snapshot ``{"type": "snapshot", "states": {...}}``;
    every later message is one committed state ``{"type": "state", ...}``.

    Example:
        ws://localhost:8000/ws/state
    """
    await websocket.accept()
    logger.info("WS connected: state")
    event_bus: EventBus = websocket.app.state.bus
    queue = await event_bus.subscribe(STATE_TOPIC)

    async def forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    async def watch_disconnect() -> None:
        # clients only listen; reading is how a disconnect is noticed
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    try:
        await websocket.send_json({"type": "snapshot", "states": _dump_states(websocket.app.state.controller)})
        tasks = [asyncio.create_task(forward()), asyncio.create_task(watch_disconnect())]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            task.result()
        logger.info("WS disconnected: state")
    except WebSocketDisconnect:
        logger.info("WS disconnected: state")
    except Exception as e:
        logger.error(f"WS error state: {e}")
        try:
            await websocket.close(code=1011, reason="Internal error")
        except RuntimeError:
            pass
    finally:
        await event_bus.unsubscribe(STATE_TOPIC, queue)
        logger.info("WS ended: state")


# ============================================
# FastAPI Application
# ============================================

def create_app(controller: Optional[DashboardController] = None, event_bus: Optional[EventBus] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        controller: Pre-built controller (tests); built from settings on startup if None
        event_bus: Bus the controller publishes to; defaults to the global bus
    """
    application = FastAPI(
        title="Pair Dashboard API",
        description=(
            "Async data orchestration for a DEX pair dashboard.\n\n"
            "## REST Endpoints\n"
            "- `PUT /selection` - Select pair and connected wallet\n"
            "- `POST /retry` - Relaunch all groups for the current selection\n"
            "- `POST /refresh/{group}` - Refresh `pair`, `swaps` or `balances` in place\n"
            "- `GET /state` - FetchState of every group\n"
            "- `GET /state/{group}` - FetchState of one group\n"
            "- `GET /diagnostics` - Diagnostic export\n"
            "- `GET /health` - Health check\n\n"
            "## WebSocket Streams\n"
            "- `ws://{host}/ws/state` - snapshot, then every state transition\n"
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    application.state.controller = controller
    application.state.bus = event_bus or bus

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(router)
    return application


app = create_app()
