import asyncio
import logging
import sys
from pathlib import Path

import logfire

from config import Settings, get_settings
from server import RelayServer

HOME_DIR = Path.home()
CONFIG_DIR = HOME_DIR / ".pa-relay"
LOG_FILE = CONFIG_DIR / "relay.log"


def validate_paths() -> None:
    CONFIG_DIR.mkdir(exist_ok=True, parents=True)

    # create an empty log file if missing
    if not LOG_FILE.exists():
        LOG_FILE.touch()


def setup_logging(settings: Settings) -> logging.Logger:
    # Initialize Logfire if enabled
    if settings.logfire_enabled:
        try:
            logfire.configure(
                token=settings.logfire_token,
                service_name=settings.logfire_service_name,
            )

            # Instrument HTTPX for upstream stream tracing
            logfire.instrument_httpx(capture_all=True)

            print(f"Logfire initialized for service: {settings.logfire_service_name}")
        except Exception as e:
            print(f"Failed to initialize Logfire: {e}")

    # Set logging level based on debug setting
    log_level = logging.DEBUG if settings.debug else logging.INFO

    logging.basicConfig(
        filename=LOG_FILE,
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger("pa-relay")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


async def main() -> None:
    validate_paths()

    settings = get_settings()

    logger = setup_logging(settings)

    try:
        server = RelayServer(logger, settings)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        await server.listen()
    except Exception as e:
        logger.error(f"Error running relay: {e}")
        sys.exit(1)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
