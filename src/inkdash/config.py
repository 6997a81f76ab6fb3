"""Centralized configuration paths.

All inkdash state lives in a single config directory:
    .env                     - GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, etc.
    google_calendar.json     - OAuth client credentials, tokens and calendar sources

The directory defaults to ~/.config/inkdash and can be moved with the
INKDASH_CONFIG_DIR environment variable.

This module auto-loads the .env file on import, making client credentials
available to the token store without any additional configuration.
"""

import os
from pathlib import Path

CONFIG_DIR = Path(
    os.environ.get("INKDASH_CONFIG_DIR") or Path.home() / ".config" / "inkdash"
).expanduser()

ENV_FILE = CONFIG_DIR / ".env"
GOOGLE_TOKEN = CONFIG_DIR / "google_calendar.json"

DEFAULT_CALLBACK_PORT = 8847


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def get_callback_port() -> int:
    """Port the OAuth callback listener binds to."""
    value = os.environ.get("INKDASH_CALLBACK_PORT")
    return int(value) if value else DEFAULT_CALLBACK_PORT


def get_env_client_credentials() -> tuple[str, str]:
    """Client id/secret from the environment, empty strings when unset."""
    return (
        os.environ.get("GOOGLE_CLIENT_ID", ""),
        os.environ.get("GOOGLE_CLIENT_SECRET", ""),
    )


def ensure_config_dir() -> Path:
    """Create the config directory if it doesn't exist.

    Returns:
        Path to the config directory.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def get_credential_status() -> dict:
    """Get status of all configured credentials.

    Returns:
        Dictionary with credential status.
    """
    client_id, client_secret = get_env_client_credentials()
    return {
        "config_dir": str(CONFIG_DIR),
        "env_file": ENV_FILE.exists(),
        "env": {
            "client_id": bool(client_id),
            "client_secret": bool(client_secret),
        },
        "google": {
            "token_file": GOOGLE_TOKEN.exists(),
        },
        "callback_port": get_callback_port(),
    }


# Auto-load .env from the config dir on import
_loaded = _load_env_file(ENV_FILE)
