from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()

    # uvicorn installs its own handlers first when it serves the app; only add ours when none exist.
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)

    root_logger.setLevel(level)
    logging.getLogger("strudelgraph").setLevel(level)
