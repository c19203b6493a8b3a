from __future__ import annotations

import logging

# aiohttp traces every websocket frame and connection at debug level.
_TRANSPORT_LOGGERS = ("aiohttp.client", "aiohttp.websocket", "aiohttp.internal")


def configure_logging(*, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        force=True,
    )

    transport_level = logging.DEBUG if debug else logging.WARNING
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    logging.getLogger(__name__).debug("Logging configured debug=%s transport_level=%s", debug, transport_level)
