import logging

from settings import Settings


def setup_logging(settings: Settings) -> None:
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
    else:
        level = logging.DEBUG if settings.env == "local" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
