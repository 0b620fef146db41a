"""Main entry point - wires the registry, driver and HTTP server together."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
import uvicorn

from .event_sink import SUBSCRIBER_QUEUE_SIZE, EventBroadcaster
from .mock_runner import MockSessionRunner
from .process_launcher import AgentLauncherConfig
from .server import create_app
from .session_driver import ProcessSessionDriver, SessionDriver
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_PORT = 8421


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file."""
    config_path = config_path or os.environ.get("AGENT_SESSIONS_CONFIG", DEFAULT_CONFIG_PATH)
    path = Path(config_path).expanduser()

    if not path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


def is_mock_mode(config: dict) -> bool:
    """Mock mode is on via AGENT_MOCK=true|1 or agent.mock in config."""
    env_value = os.environ.get("AGENT_MOCK", "").strip().lower()
    if env_value in ("true", "1", "yes"):
        return True
    return bool(config.get("agent", {}).get("mock", False))


def create_driver(config: dict) -> SessionDriver:
    """Select the session driver once, at construction time."""
    if is_mock_mode(config):
        mock_config = config.get("mock", {})
        return MockSessionRunner(step_delay_scale=mock_config.get("step_delay_scale", 1.0))
    return ProcessSessionDriver(AgentLauncherConfig.from_dict(config.get("agent", {})))


class AgentSessionsApp:
    """Main application orchestrator."""

    def __init__(self, config: dict):
        self.config = config

        server_config = config.get("server", {})
        self.host = server_config.get("host", "127.0.0.1")
        self.port = server_config.get("port", DEFAULT_PORT)

        self.broadcaster = EventBroadcaster(
            queue_size=server_config.get("event_queue_size", SUBSCRIBER_QUEUE_SIZE),
        )
        self.driver = create_driver(config)
        self.registry = SessionRegistry(sink=self.broadcaster, driver=self.driver)

        self.app = create_app(
            registry=self.registry,
            broadcaster=self.broadcaster,
            config=config,
        )

    async def start(self):
        """Serve the HTTP API until shutdown."""
        logger.info(f"Starting agent sessions service (driver={self.driver.mode})")

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.config.get("logging", {}).get("level", "info").lower(),
        )
        server = uvicorn.Server(config)

        logger.info(f"Starting server on http://{self.host}:{self.port}")
        await server.serve()

    async def stop(self):
        """Stop all sessions and close event subscribers."""
        logger.info("Stopping agent sessions service...")
        await self.registry.shutdown()
        self.broadcaster.close_all()
        logger.info("Shutdown complete")


async def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_config()

    level_name = str(config.get("logging", {}).get("level", "INFO")).upper()
    logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))

    app = AgentSessionsApp(config)
    try:
        await app.start()
    finally:
        await app.stop()


def run():
    """Entry point for console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
