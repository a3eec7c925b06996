"""Smart Home Simulator — Main Entry Point.

Restores the home from its SQLite snapshot (or seeds it from config.yaml on
first run), starts the automation engine and the simulation clock, and
runs the FastAPI management API on port 9090.

This script is the single process that handles everything:
  - Simulated device state (heating, timers, energy, connectivity)
  - Automation rules and device linkage
  - Scenes
  - FastAPI management API (HTTP + WebSocket on port 9090)
"""

import logging
import os
import signal
import threading

import yaml

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def load_config(path: str) -> dict:
    """Load config.yaml. A missing or empty file yields an empty config."""
    if not os.path.exists(path):
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main():
    logging.basicConfig(
        level=os.environ.get("HOMESIM_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    logger = logging.getLogger("homesim")

    # Late imports so logging is configured first
    from api.app import create_app
    from api.websocket_hub import WebSocketHub
    from core.home import SmartHome
    from persistence.db import Database

    config_path = os.environ.get("HOMESIM_CONFIG", "/app/config.yaml")
    if not os.path.exists(config_path):
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    logger.info("Loading config from %s", config_path)
    config = load_config(config_path)

    db_path = os.environ.get("HOMESIM_DB", "/app/data/homesim.db")
    db = Database(db_path=db_path)
    db.connect()
    logger.info("Database initialized: %s", db_path)

    ws_hub = WebSocketHub()
    home = SmartHome(config=config, db=db)
    home.notifications.on_notify = ws_hub.push_notification

    # First run seeds the home; later runs continue from the snapshot
    home.bootstrap_from_config()
    home.start()

    app = create_app(home, ws_hub=ws_hub)

    api_cfg = config.get("api") or {}
    api_port = int(os.environ.get("HOMESIM_API_PORT", api_cfg.get("port", 9090)))
    _start_api_server(app, api_cfg.get("host", "0.0.0.0"), api_port, logger)

    stats = home.stats()
    logger.info("Smart Home Simulator fully started")
    logger.info("  Devices: %d, scenes: %d, rules: %d", stats["devices_total"], stats["scenes"], stats["automation_rules"])
    logger.info("  Management API: http://0.0.0.0:%d", api_port)
    logger.info("  Health: http://0.0.0.0:%d/api/v1/health", api_port)

    # Wait for shutdown signal
    shutdown = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d — shutting down", signum)
        shutdown.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    shutdown.wait()

    logger.info("Stopping simulator...")
    home.stop()
    db.close()
    logger.info("Shutdown complete")


def _start_api_server(app, host: str, port: int, logger):
    """Start uvicorn in a daemon thread."""
    import uvicorn

    config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="info",
        access_log=False,
    )
    server = uvicorn.Server(config)

    thread = threading.Thread(target=server.run, name="uvicorn", daemon=True)
    thread.start()
    logger.info("Uvicorn started on port %d (daemon thread)", port)
    return thread


if __name__ == "__main__":
    main()
