import asyncio
import sys

from config import ConfigurationError, load_config, redacted
from menus.spotify_menu import spotify_menu
from spotify_agent import SpotifyClient
from utils.logger import log_error, log_info, setup_logging


async def run(config: dict) -> None:
    async with SpotifyClient.from_config(config) as client:
        await spotify_menu(client)
    log_info("Exiting program...")


def main() -> int:
    setup_logging()

    try:
        config = load_config()
    except ConfigurationError as e:
        log_error(f"Configuration error: {e}")
        log_error("Set the variables in your environment or in a .env file.")
        return 1

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)
    log_info(f"Loaded configuration: {redacted(config)}")

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log_info("Interrupted.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
