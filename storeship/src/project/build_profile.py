import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class BuildProfileError(Exception):
    pass


@dataclass
class BuildProfile:
    name: str
    config: Optional[str] = None  # custom workflow file under .eas/build


def load_build_profile(project_dir: Path, name: str) -> BuildProfile:
    """Read a build profile from the project's eas.json."""
    eas_json = Path(project_dir) / "eas.json"
    if not eas_json.exists():
        raise BuildProfileError(f"eas.json not found in {project_dir}")

    try:
        data = json.loads(eas_json.read_text())
    except json.JSONDecodeError as e:
        raise BuildProfileError(f"eas.json is not valid JSON: {e}")

    profiles = data.get("build", {})
    if name not in profiles:
        available = ", ".join(profiles) or "none"
        raise BuildProfileError(
            f'Build profile "{name}" not found in eas.json (available: {available})'
        )

    profile = profiles[name] or {}
    ios = profile.get("ios") or {}
    return BuildProfile(name=name, config=ios.get("config") or profile.get("config"))
