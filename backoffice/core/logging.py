from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from backoffice.core.errors import RemoteError

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure standard logging once for the whole service (stdout).

    Calling it again is a no-op, so app reloads and tests don't stack handlers.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_FORMAT,
        stream=sys.stdout,
    )
    # httpx logs every request at INFO; keep it for DEBUG runs only.
    if root.level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "backoffice")


def log_remote_failure(logger: logging.Logger, error: "RemoteError", action: str) -> None:
    """
    Record a classified remote failure for operators.

    Users only ever see the short message of the resulting Failure; code,
    status and upstream text stay in the log.
    """
    logger.error(
        "remote call failed [%s] while %s: %s",
        error.kind.value,
        action,
        error.detail,
        extra={"cause": error.kind.value, "code": error.code, "status": error.status},
    )
