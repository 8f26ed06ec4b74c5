import os
from pathlib import Path
import toml
from dotenv import load_dotenv
from typing import Dict, Any, Optional

PORTAL_BACKEND = "portal"
FASTLANE_BACKEND = "fastlane"
PROVISIONING_BACKENDS = (PORTAL_BACKEND, FASTLANE_BACKEND)

# Pick up STORESHIP_* variables from a local .env file
load_dotenv()


def get_base_dir() -> Path:
    return Path.home() / ".storeship"


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_base_dir() / "config.toml"


def load_config() -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except Exception as e:
        raise ValueError(f"Failed to load config: {e}")


def _get_setting(env_var: str, section: str, key: str) -> Optional[str]:
    """Environment variable first, then the config file section."""
    value = os.environ.get(env_var)
    if value:
        return value
    return load_config().get(section, {}).get(key)


def get_apple_credentials(apple_id: Optional[str] = None) -> Dict[str, Optional[str]]:
    """Get Apple credentials from the environment or config.

    An explicit ``apple_id`` (e.g. from a command line flag) wins over both.
    """
    credentials = {
        "apple_id": apple_id or _get_setting("STORESHIP_APPLE_ID", "apple", "apple_id"),
        "apple_password": _get_setting(
            "STORESHIP_APPLE_PASSWORD", "apple", "apple_password"
        ),
    }

    if not credentials["apple_id"]:
        raise ValueError(
            f"Apple ID not found. Set STORESHIP_APPLE_ID or add an [apple] section with apple_id to {get_config_path()}"
        )

    return credentials


def get_team_id() -> Optional[str]:
    return _get_setting("STORESHIP_TEAM_ID", "apple", "team_id")


def get_session_dir() -> Path:
    """Get session directory from environment or config."""
    session_dir = _get_setting("STORESHIP_SESSION_DIR", "apple", "session_dir")
    if session_dir:
        return Path(session_dir)

    # Default to ~/.storeship/sessions if not specified
    return get_base_dir() / "sessions"


def get_provisioning_backend() -> str:
    """Name of the provisioning profile backend: "portal" or "fastlane"."""
    backend = _get_setting(
        "STORESHIP_PROVISIONING_BACKEND", "provisioning", "backend"
    ) or PORTAL_BACKEND
    backend = backend.strip().lower()
    if backend not in PROVISIONING_BACKENDS:
        raise ValueError(
            f"Unknown provisioning backend '{backend}', expected one of: {', '.join(PROVISIONING_BACKENDS)}"
        )
    return backend


def use_portal_api() -> bool:
    return get_provisioning_backend() == PORTAL_BACKEND


def get_fastlane_path() -> Path:
    """Directory holding the traveling fastlane actions."""
    fastlane_path = _get_setting("STORESHIP_FASTLANE_PATH", "fastlane", "path")
    if fastlane_path:
        return Path(fastlane_path).expanduser()
    return get_base_dir() / "traveling-fastlane"
