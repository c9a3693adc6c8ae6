"""Initialise the progress schema and report database status."""
import logging
import sys

from lingualeap.app import DataLayer
from lingualeap.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    """Create missing tables and log what the database now holds."""
    setup_logging("Starting LinguaLeap data layer ...")

    with DataLayer() as data_layer:
        status = data_layer.status()
        logger.info("Database: %s (%s)", status["database"], status["dialect"])
        for table in status["tables"]:
            logger.info("Table ready: %s", table)
    return 0


if __name__ == "__main__":
    sys.exit(main())
