import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
    # SQL echo is driven by SQLALCHEMY_ECHO, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").propagate = False
