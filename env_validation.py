"""Environment variable validation and management."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "http://localhost:8787/v1/agents/invoke"
DEFAULT_TUTOR_AGENT_ID = "6997f9b4203926f2a9800b9e"
DEFAULT_EVALUATOR_AGENT_ID = "6997f9b42ec22406b8d061f1"


class EnvironmentError(Exception):
    """Raised when environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Apply defaults and validate the gateway/store configuration.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": "data.db",
        "AGENT_GATEWAY_URL": DEFAULT_GATEWAY_URL,
        "TUTOR_AGENT_ID": DEFAULT_TUTOR_AGENT_ID,
        "EVALUATOR_AGENT_ID": DEFAULT_EVALUATOR_AGENT_ID,
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "AGENT_GATEWAY_API_KEY": "Bearer token for the agent gateway",
    }

    url = os.environ["AGENT_GATEWAY_URL"]
    if not (url.startswith("http://") or url.startswith("https://")):
        raise EnvironmentError(f"Invalid URL format for AGENT_GATEWAY_URL: {url}")

    timeout = os.getenv("AGENT_GATEWAY_TIMEOUT")
    if timeout:
        try:
            if float(timeout) <= 0:
                raise ValueError(timeout)
        except ValueError as exc:
            raise EnvironmentError(f"AGENT_GATEWAY_TIMEOUT must be a positive number: {timeout}") from exc

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, value, default)
        return default
