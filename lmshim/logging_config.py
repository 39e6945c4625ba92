import logging


def configure_logging(settings) -> int:
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    if settings.debug:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if not settings.debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    return level
