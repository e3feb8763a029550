"""Main entry point - orchestrates all components."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import yaml
import uvicorn

from .command_relay import CommandRelay
from .models import RelayResult, SessionRecord
from .notifier import Notifier
from .server import create_app
from .session_manager import SessionManager
from .session_store import SessionStore
from .telegram_bot import TelegramBot
from .tmux_controller import TmuxController

logger = logging.getLogger(__name__)

DEFAULT_SESSIONS_DIR = "~/.local/share/tmux-relay/sessions"


def load_config(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file."""
    path = Path(config_path)

    if not path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


class RelayApp:
    """Main application orchestrator."""

    def __init__(self, config: dict):
        self.config = config

        # Server config
        self.host = config.get("server", {}).get("host", "127.0.0.1")
        self.port = config.get("server", {}).get("port", 8421)

        sessions_config = config.get("sessions", {})
        self.store = SessionStore(
            sessions_dir=config.get("paths", {}).get("sessions_dir", DEFAULT_SESSIONS_DIR),
            max_records=sessions_config.get("max_records", 500),
        )
        self.tmux = TmuxController(config=config)
        self.session_manager = SessionManager(self.store, self.tmux, config=config)
        self.command_relay = CommandRelay(self.store, self.tmux)

        # Telegram bot (optional)
        telegram_config = config.get("telegram", {})
        self.telegram_bot: Optional[TelegramBot] = None

        if telegram_config.get("token"):
            self.telegram_bot = TelegramBot(
                token=telegram_config["token"],
                allowed_chat_ids=telegram_config.get("allowed_chat_ids"),
                allowed_user_ids=telegram_config.get("allowed_user_ids"),
            )
            self._setup_telegram_handlers()
        else:
            logger.warning("No Telegram token configured; notifications disabled")

        self.notifier = Notifier(
            session_manager=self.session_manager,
            tmux=self.tmux,
            telegram_bot=self.telegram_bot,
            chat_id=telegram_config.get("chat_id"),
        )

        housekeeping = config.get("housekeeping", {})
        self.sweep_interval = housekeeping.get("sweep_interval_seconds", 3600)
        self._sweep_task: Optional[asyncio.Task] = None

        self.app = create_app(
            session_manager=self.session_manager,
            command_relay=self.command_relay,
            notifier=self.notifier,
            config=config,
        )

    def _setup_telegram_handlers(self):
        """Wire Telegram commands to the relay core."""

        async def on_relay(token: str, command: str) -> RelayResult:
            return await asyncio.to_thread(self.command_relay.relay_command, token, command)

        async def on_list_sessions() -> list[SessionRecord]:
            return await asyncio.to_thread(self.session_manager.list_sessions)

        self.telegram_bot.set_relay_handler(on_relay)
        self.telegram_bot.set_list_sessions_handler(on_list_sessions)

    async def _sweep_loop(self):
        """Periodically delete expired session records."""
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await asyncio.to_thread(self.session_manager.sweep_expired)
            except OSError as e:
                logger.error(f"Expired session sweep failed: {e}")

    async def start(self):
        """Start all components."""
        logger.info("Starting tmux relay...")

        # Clear out anything that expired while we were down
        await asyncio.to_thread(self.session_manager.sweep_expired)
        self._sweep_task = asyncio.create_task(self._sweep_loop())

        if self.telegram_bot:
            await self.telegram_bot.start()

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="info",
        )
        server = uvicorn.Server(config)

        logger.info(f"Starting server on http://{self.host}:{self.port}")

        # Run until shutdown
        await server.serve()

    async def stop(self):
        """Stop all components."""
        logger.info("Stopping tmux relay...")

        if self._sweep_task:
            self._sweep_task.cancel()

        if self.telegram_bot:
            await self.telegram_bot.stop()

        logger.info("Shutdown complete")


def setup_signal_handlers(app: RelayApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, shutting down...")
        asyncio.create_task(app.stop())
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main(config_path: str = "config.yaml"):
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_config(config_path)

    app = RelayApp(config)
    setup_signal_handlers(app)

    try:
        await app.start()
    except KeyboardInterrupt:
        await app.stop()


def run():
    """Entry point for console script."""
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
    asyncio.run(main(config_path))


if __name__ == "__main__":
    run()
