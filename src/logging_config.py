import logging

import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = None):
    """Install the root handler once; uvicorn keeps its own loggers."""
    logging.basicConfig(level=(level or config.LOG_LEVEL).upper(), format=LOG_FORMAT)
    # APScheduler logs every run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
