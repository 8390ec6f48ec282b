"""Main entry point for the seat occupancy analytics application."""

import sys

from src.utils.config import AppConfig
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


def main() -> None:
    """Point users at the dashboard and the CLI."""
    dashboard = AppConfig().dashboard
    logger.info("Starting Seat Occupancy Analytics")
    logger.info(
        "Use 'streamlit run src/dashboard/app.py --server.address %s --server.port %d' "
        "for the dashboard",
        dashboard.host,
        dashboard.port,
    )
    logger.info("Use 'occupancy-analytics process -i detections.json' for batch runs")


if __name__ == "__main__":
    sys.exit(main() or 0)
