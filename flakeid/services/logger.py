import logging

from flakeid.core.config import settings


def setup_logger():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler()],
    )

    app_logger = logging.getLogger("flakeid")
    app_logger.setLevel(settings.LOG_LEVEL)

    return app_logger
