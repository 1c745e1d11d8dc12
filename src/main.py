"""
Main entry point for the Debezium connector operator.

Builds every component explicitly from one Config, bootstraps the
webhook certificate, then runs the controller and the HTTP API side by
side until a shutdown signal arrives.
"""

import asyncio
import logging
import signal
from typing import Optional

from api import HTTPAPI
from certs import load_or_generate_cert, publish_ca_bundle
from config import Config
from connect_client import ConnectorControlClient
from controller import Controller
from db import DatabaseManager
from finalizers import FinalizerLifecycle
from reconciler import ReconcileEngine
from status import StatusReporter
from validation import ConnectorValidator

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class Application:
    """Main application that wires the operator together."""

    def __init__(self, config: Config):
        self.config = config
        self.db: Optional[DatabaseManager] = None
        self.controller: Optional[Controller] = None
        self.api: Optional[HTTPAPI] = None
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing Debezium operator")

        db_config = self.config.database
        self.db = DatabaseManager(
            host=db_config.host,
            port=db_config.port,
            database=db_config.database,
            user=db_config.user,
            password=db_config.password,
            min_pool_size=db_config.min_pool_size,
            max_pool_size=db_config.max_pool_size,
        )
        await self.db.connect()
        await self.db.initialize_schema()
        logger.info("Database initialized")

        ssl_certfile, ssl_keyfile = await self._bootstrap_certificates()

        ctrl_config = self.config.controller
        client = ConnectorControlClient(timeout=ctrl_config.request_timeout)
        engine = ReconcileEngine(
            client=client,
            finalizers=FinalizerLifecycle(self.db),
            status_reporter=StatusReporter(self.db),
            resync_interval=ctrl_config.reconcile_interval,
        )
        self.controller = Controller(
            db_manager=self.db, engine=engine, config=ctrl_config
        )

        api_config = self.config.api
        self.api = HTTPAPI(
            db_manager=self.db,
            validator=ConnectorValidator(client),
            host=api_config.host,
            port=api_config.port,
            log_level=api_config.log_level,
            ssl_certfile=ssl_certfile,
            ssl_keyfile=ssl_keyfile,
        )

        logger.info("All components initialized")

    async def _bootstrap_certificates(self):
        """Provision the webhook TLS pair; returns (certfile, keyfile) or Nones."""
        webhook = self.config.webhook
        if not webhook.tls_enabled:
            logger.info("Webhook TLS disabled, serving plain HTTP")
            return None, None

        logger.info(f"Using commonName: {webhook.common_name}")
        cert_path, key_path = await load_or_generate_cert(
            self.db,
            webhook.namespace,
            webhook.secret_name,
            webhook.cert_dir,
            webhook.common_name,
        )
        await publish_ca_bundle(
            self.db,
            webhook.configuration_name,
            webhook.webhook_name,
            webhook.namespace,
            webhook.secret_name,
            url=f"https://{webhook.common_name}:{self.config.api.port}/validate-dbc",
        )
        return str(cert_path), str(key_path)

    async def start(self):
        """Start the application."""
        if not self.controller or not self.api:
            await self.initialize()

        self.running = True
        logger.info("Starting Debezium operator")

        tasks = [
            asyncio.create_task(self.controller.start()),
            asyncio.create_task(self.api.start()),
        ]

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        logger.info("Stopping Debezium operator")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.api:
            await self.api.stop()

        if self.db:
            await self.db.close()
            self.db = None

        logger.info("Debezium operator stopped")


async def main():
    """Main entry point."""
    config = Config.from_env()
    configure_logging(config.api.log_level)
    app = Application(config)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
