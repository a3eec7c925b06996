"""FastAPI application factory for the HomeSim Management API.

Creates the app with all routers mounted and the SmartHome injected via
app.state. Store keys are bridged to the WebSocket hub so UI clients see
every mutation, whichever thread made it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.store import DEFAULT_STATE

from .routes_automations import router as automations_router
from .routes_devices import router as devices_router
from .routes_energy import router as energy_router
from .routes_notifications import router as notifications_router
from .routes_scenes import router as scenes_router
from .routes_ws import router as ws_router
from .websocket_hub import WebSocketHub

logger = logging.getLogger("homesim.api")

ROUTERS = (
    devices_router,
    scenes_router,
    automations_router,
    notifications_router,
    energy_router,
    ws_router,
)


def create_app(home, ws_hub: WebSocketHub = None) -> FastAPI:
    """Create the FastAPI application with all routes.

    Args:
        home: SmartHome instance (injected into app.state)
        ws_hub: WebSocketHub for real-time event broadcast
    """
    hub = ws_hub or WebSocketHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Capture the event loop for thread-safe WebSocket pushes
        hub.set_loop(asyncio.get_running_loop())
        logger.info("WebSocket hub bound to event loop")
        yield

    app = FastAPI(
        title="HomeSim Manager",
        description="Management API for the smart home simulator",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Store references for route handlers
    app.state.home = home
    app.state.ws_hub = hub

    # Mount routers; set app reference on each (needed for app.state access)
    for router in ROUTERS:
        app.include_router(router)
        router.app = app

    # Bridge store → WebSocket
    for key in DEFAULT_STATE:
        home.store.subscribe(key, lambda value, key=key: hub.push_state_change(key, value))
    if home.notifications.on_notify is None:
        home.notifications.on_notify = hub.push_notification

    @app.get("/api/v1/health", tags=["system"])
    def health():
        """Health check — simulator status, counts and WS connections."""
        return {
            "status": "ok",
            "running": home.is_running,
            **home.stats(),
            "ws_connections": hub.connection_count,
        }

    logger.info("FastAPI app created with %d routers", len(ROUTERS))
    return app
