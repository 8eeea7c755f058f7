import logging
from typing import Any, Dict, Optional, Union

from clinicflow.config.config import settings


LogMessage = Union[str, Dict[str, Any]]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the API process."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )


class LoggerMixin:
    """
    Mixin giving services structured logging helpers.

    Messages may be plain strings or dicts describing an event, e.g.
    ``self.log_info({"event": "bill_created", "bill_id": str(bill.id)})``.
    The logger is named after the concrete class under the ``clinicflow``
    namespace so output can be filtered per component.
    """

    _logger: Optional[logging.Logger] = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = logging.getLogger(f"clinicflow.{self.__class__.__name__}")
        return self._logger

    @staticmethod
    def _format_message(message: LogMessage) -> str:
        if isinstance(message, dict):
            return " ".join(f"{key}={value}" for key, value in message.items())
        return message

    def log_info(self, message: LogMessage, **kwargs) -> None:
        self.logger.info(self._format_message(message), **kwargs)

    def log_warning(self, message: LogMessage, **kwargs) -> None:
        self.logger.warning(self._format_message(message), **kwargs)

    def log_error(self, message: LogMessage, exc_info: bool = False, **kwargs) -> None:
        self.logger.error(self._format_message(message), exc_info=exc_info, **kwargs)

    def log_debug(self, message: LogMessage, **kwargs) -> None:
        self.logger.debug(self._format_message(message), **kwargs)

    def log_security_event(self, message: LogMessage, **kwargs) -> None:
        """Log a security-related event with a filterable prefix."""
        self.logger.warning(f"SECURITY EVENT: {self._format_message(message)}", **kwargs)


class _ModuleLevelLogger(LoggerMixin):
    """Logger used by routes and module-level helpers."""

    def __init__(self, name: str = "clinicflow"):
        self._logger = logging.getLogger(name)


logger = _ModuleLevelLogger()
