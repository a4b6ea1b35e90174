"""
Central configuration loading for the edmcp PII workflow.

The shared .env file lives in the edmcp root directory. The PII server
calls load_edmcp_config() at startup and reads its settings through
get_env() / get_env_int() so that tests can override them with plain
environment variables.
"""

import os
from pathlib import Path
from dotenv import load_dotenv


def get_edmcp_root() -> Path:
    """
    Find the edmcp root directory (the one holding .env or .env.example).

    Looks next to the installed edmcp-core package first, then walks up
    from the current working directory.

    Returns:
        Path to the edmcp root directory.
    """
    current = Path(__file__).resolve().parent.parent.parent

    if (current / ".env").exists() or (current / ".env.example").exists():
        return current

    current = Path.cwd().resolve()
    for _ in range(10):  # Limit search depth
        if (current / ".env").exists() or (current / ".env.example").exists():
            return current
        if current.parent == current:
            break
        current = current.parent

    return Path(__file__).resolve().parent.parent.parent


def load_edmcp_config(override: bool = False) -> Path:
    """
    Load environment variables from the central .env file.

    Args:
        override: If True, values from .env replace variables that are
                  already set in the process environment.

    Returns:
        Path to the .env file that was loaded (or would be loaded if it exists).
    """
    env_path = get_edmcp_root() / ".env"
    load_dotenv(env_path, override=override)
    return env_path


def get_env(key: str, default: str | None = None) -> str | None:
    """Get an environment variable, treating empty strings as unset."""
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def get_env_int(key: str, default: int) -> int:
    """
    Get an integer environment variable.

    Raises:
        ValueError: If the variable is set but is not an integer.
    """
    value = get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")
