import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from duckchat.protocol.bus import EventBus
from duckchat.protocol.events import EventTypes

ROOT_LOGGER = "duckchat"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(
    level: Union[str, int] = "WARNING", log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Configure the ``duckchat`` parent logger.

    Every module logger lives under it, so one call controls the package.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


class EventLogger:
    """
    Mirrors WARNING/ERROR bus events into the log.
    """

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.events")

    async def start(self) -> None:
        await self._bus.subscribe_many(
            {EventTypes.WARNING: self._log_warning, EventTypes.ERROR: self._log_error}
        )

    async def _log_warning(self, data: Dict[str, Any]) -> None:
        self._logger.warning("%s", data.get("message", data))

    async def _log_error(self, data: Dict[str, Any]) -> None:
        self._logger.error("%s", data.get("message", data))
