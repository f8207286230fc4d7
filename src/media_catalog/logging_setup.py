import logging
import os
from typing import Optional

def setup_logging(level: Optional[str] = None) -> None:
    """
    Console logging for the API and the CLI tools.
    - Uses APP_LOG_LEVEL env if level is None (default INFO).
    - Quietens the PyMongo driver, whose DEBUG output drowns breaker events.
    """
    level_name = (level or os.getenv("APP_LOG_LEVEL") or "INFO").upper()
    # Fallback to INFO if user passes something weird
    level_value = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level_value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("pymongo").setLevel(max(level_value, logging.WARNING))
