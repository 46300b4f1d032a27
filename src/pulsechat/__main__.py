"""Application entry point for pulsechat."""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from pulsechat.application.services import ChatServices
from pulsechat.config import (
    ConfigError,
    ConfigFileNotFoundError,
    load_config,
)
from pulsechat.domain.clock import SystemClock
from pulsechat.infrastructure import ChangeFeed, Database, LocalFileStorage
from pulsechat.infrastructure.logging import get_logger, setup_logging
from pulsechat.presentation.http.server import HTTPServer

# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 30


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(description="pulsechat - Real-time chat backend")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    return parser.parse_args(args)


async def main_async(
    config_path: Path,
    shutdown_timeout: float = SHUTDOWN_TIMEOUT,
) -> int:
    """Async main function.

    Args:
        config_path: Path to configuration file.
        shutdown_timeout: Maximum time in seconds to wait for graceful shutdown.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    # 1. Load configuration
    config = load_config(config_path)

    # 2. Initialize logging
    setup_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Starting pulsechat", config_path=str(config_path))

    # 3. Initialize storage
    database = Database(config.database.url)
    await database.initialize()
    object_storage = LocalFileStorage(
        root=config.storage.root,
        public_base_url=config.server.public_base_url,
        max_upload_bytes=config.storage.max_upload_bytes,
        upload_ttl_ms=int(config.storage.upload_ttl_seconds * 1000),
    )

    # 4. Initialize components
    change_feed = ChangeFeed()
    services = ChatServices.create(
        config=config,
        database=database,
        change_feed=change_feed,
        storage=object_storage,
        clock=SystemClock(),
    )
    http_server = HTTPServer(
        config=config,
        services=services,
        change_feed=change_feed,
        logger=get_logger("http_server"),
    )

    # 5. Setup shutdown handling
    shutdown_event = asyncio.Event()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal, initiating shutdown", signal=sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        # 6. Start HTTP server
        await http_server.start()
        logger.info("pulsechat started successfully")

        # 7. Serve until a shutdown signal arrives
        await shutdown_event.wait()

    except asyncio.CancelledError:
        logger.info("Server task cancelled")

    finally:
        # 8. Shutdown
        logger.info("Shutting down")
        try:
            await asyncio.wait_for(http_server.stop(), timeout=shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "Shutdown timed out, forcing termination",
                timeout_seconds=shutdown_timeout,
            )
        await database.close()
        logger.info("pulsechat stopped")

    return 0


def main() -> None:
    """Main entry point."""
    args = parse_args()
    config_path = args.config

    try:
        exit_code = asyncio.run(main_async(config_path))
        sys.exit(exit_code)
    except ConfigFileNotFoundError:
        print(f"Error: {config_path} not found", file=sys.stderr)
        sys.exit(1)
    except ConfigError as e:
        print(f"Error: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: Configuration validation error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
