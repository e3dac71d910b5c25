# gradelink/core/logging.py

import logging
from gradelink.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def setup_logging(level: str = None) -> None:
    """Configures the root logger once per process."""
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)
    # SQLAlchemy 的引擎日志过于嘈杂
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
