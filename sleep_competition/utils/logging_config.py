import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname).1s | %(name)-30.30s | %(message)s"


def setup_logging(level: int | str = logging.INFO, sql_echo: bool = False) -> logging.Logger:
    """Sends all records to stdout through a single root handler.

    ``level`` may be a number or a level name such as "DEBUG". SQLAlchemy's
    engine logger is held at WARNING unless ``sql_echo`` is set.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if sql_echo else logging.WARNING)
    return root
