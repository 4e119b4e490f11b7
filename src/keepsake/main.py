"""Keepsake entry point."""

import asyncio
import logging
import sys

from dotenv import find_dotenv, load_dotenv

from .cli import run_cli


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if len(sys.argv) > 1:
        command = sys.argv[1]

        if command == "bot":
            from .config import Settings
            from .logging import configure_logger
            from .telegram import TelegramBot

            settings = Settings.from_env()
            configure_logger(settings.log_dir)
            bot = TelegramBot(settings=settings)
            bot.run()
            return

        if command == "data":
            from .cli import run_data_cli

            # Pass remaining args (after 'data') to the data CLI
            sys.exit(run_data_cli(sys.argv[2:]))

    asyncio.run(run_cli())


if __name__ == "__main__":
    main()
