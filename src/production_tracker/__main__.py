"""
Main entry point for the Production Order Tracker.

Configures logging and launches the Typer CLI. The configured log level
(PRODUCTION_LOG_LEVEL) is applied by each command once configuration is loaded.
"""
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)
logger.debug("CLI __main__ script started.")

from .cli import app


def run():
    """Runs the Typer CLI application."""
    app()


if __name__ == "__main__":
    run()
