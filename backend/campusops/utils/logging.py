"""Structured logging for rejected requests."""

import logging
from typing import Any

from backend.campusops.errors import CampusOpsError, InsufficientPermissions

logger = logging.getLogger(__name__)


class StructuredDenialLogger:
    """Structured logger for errors translated at the route boundary."""

    def log_error(self, method: str, path: str, error: CampusOpsError) -> None:
        """Log a domain error with structured data.

        Authentication and authorization denials log at WARNING, everything
        else (not found, conflicts, bad input) at INFO.
        """
        log_data: dict[str, Any] = {
            "method": method,
            "path": path,
            "error": type(error).__name__,
            "code": error.code,
            "status": error.status_code,
        }

        if isinstance(error, InsufficientPermissions):
            log_data["permission"] = error.permission

        log_msg = f"{method} {path} rejected: {error.code}"

        if error.status_code in (401, 403):
            logger.warning(log_msg, extra={"structured": log_data})
        else:
            logger.info(log_msg, extra={"structured": log_data})


denial_logger = StructuredDenialLogger()
