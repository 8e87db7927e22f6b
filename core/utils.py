"""
Remote Healthcare Registry Utility Functions
============================================
Logging setup, configuration helpers and hashing used across the registry.
"""

import hashlib
import logging
import os
from typing import Any, Optional, Union

import structlog


# =============================================================================
# Configuration Helpers
# =============================================================================


def resolve_env_vars(config: Any) -> Any:
    """Recursively resolve ``${VAR}`` / ``${VAR:default}`` strings in config values."""
    if isinstance(config, dict):
        return {k: resolve_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [resolve_env_vars(item) for item in config]
    elif isinstance(config, str) and config.startswith("${") and config.endswith("}"):
        env_var = config[2:-1]
        default = None
        if ":" in env_var:
            env_var, default = env_var.split(":", 1)
        return os.environ.get(env_var, default)
    return config


# =============================================================================
# Logging Setup
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
) -> structlog.BoundLogger:
    """
    Configure structured logging for the registry.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format (json, console).
        log_file: Optional file path for log output.

    Returns:
        Configured logger instance.
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Log lines go to stderr so command output on stdout stays parseable
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        handlers=[
            logging.StreamHandler(),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            ),
        ],
        force=True,
    )

    return structlog.get_logger()


# =============================================================================
# Hashing and Masking
# =============================================================================


def compute_hash(data: Union[str, bytes], algorithm: str = "sha256") -> str:
    """
    Compute cryptographic hash of data.

    Args:
        data: Data to hash (string or bytes).
        algorithm: Hash algorithm (sha256, sha512, md5).

    Returns:
        Hexadecimal hash string.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def payload_digest(payload: str) -> str:
    """Short digest used to reference a payload in logs without its contents."""
    return compute_hash(payload)[:12]


def mask_account(account: Any) -> Any:
    """Truncate an account identifier for log output."""
    if not isinstance(account, str) or len(account) <= 8:
        return account
    return account[:8] + "..."
