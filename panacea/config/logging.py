"""
Logging configuration for the ingress controller.

This module provides centralized logging configuration with support for
structured logging, verbosity levels, and text or JSON output.
"""

import logging
import logging.config
import sys
from typing import Any, Dict, Optional


def verbosity_to_level(verbosity: int) -> str:
    """
    Map a numeric verbosity to a logging level name.

    Args:
        verbosity: 0 for normal output, 1 or more for debug output

    Returns:
        Logging level name
    """
    return "DEBUG" if verbosity >= 1 else "INFO"


def get_logging_config(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    enable_access_log: bool = True
) -> Dict[str, Any]:
    """
    Get logging configuration dictionary.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'text')
        log_file: Optional log file path
        enable_access_log: Whether to enable HTTP access logging

    Returns:
        Logging configuration dictionary
    """
    formatters = {
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(module)s %(lineno)d %(message)s"
        }
    }

    formatter_name = "json" if log_format == "json" else "detailed"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter_name,
            "stream": sys.stdout
        }
    }

    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": formatter_name,
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8"
        }

    handler_names = list(handlers.keys())
    loggers = {
        "": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "uvicorn": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "uvicorn.error": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "panacea": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        # The Kubernetes client logs every request body at DEBUG
        "kubernetes": {
            "level": "WARNING",
            "handlers": handler_names,
            "propagate": False
        },
        "httpx": {
            "level": "WARNING",
            "handlers": handler_names,
            "propagate": False
        }
    }

    # uvicorn's own access log duplicates AccessLogMiddleware
    loggers["uvicorn.access"] = {
        "level": "INFO" if enable_access_log else "WARNING",
        "handlers": handler_names,
        "propagate": False
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": loggers
    }


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    enable_access_log: bool = False
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'text')
        log_file: Optional log file path
        enable_access_log: Whether uvicorn writes its own access log
    """
    config = get_logging_config(
        log_level=log_level,
        log_format=log_format,
        log_file=log_file,
        enable_access_log=enable_access_log
    )

    logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class StructuredLogger:
    """
    Structured logger for consistent log message formatting.

    Fields are passed through ``extra`` so the JSON formatter emits them
    as top-level keys.
    """

    def __init__(self, name: str):
        self.logger = get_logger(name)

    def log_request(
        self,
        method: str,
        host: str,
        path: str,
        status_code: int,
        response_time: float,
        client_ip: Optional[str] = None,
        **kwargs
    ):
        """Log HTTP request information.

        Args:
            method: HTTP method
            host: Request host without port
            path: Request path
            status_code: Response status code
            response_time: Response time in milliseconds
            client_ip: Client IP address
            **kwargs: Additional fields to log
        """
        log_data = {
            "event": "http_request",
            "method": method,
            "host": host,
            "path": path,
            "status_code": status_code,
            "response_time_ms": response_time,
        }

        if client_ip:
            log_data["client_ip"] = client_ip

        log_data.update(kwargs)

        if status_code >= 500:
            self.logger.error("HTTP request", extra=log_data)
        elif status_code >= 400:
            self.logger.warning("HTTP request", extra=log_data)
        else:
            self.logger.info("HTTP request", extra=log_data)

