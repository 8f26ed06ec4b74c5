import json
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

from storeship.logger import get_console
from storeship.src.utils.config_loader import get_fastlane_path

console = get_console()

MANAGE_PROVISIONING_PROFILES = "manage_provisioning_profiles"


class FastlaneError(Exception):
    pass


def get_action_path(action: str, fastlane_dir: Optional[Path] = None) -> Path:
    base_dir = fastlane_dir or get_fastlane_path()
    return base_dir / "bin" / action


def _parse_result(output: str) -> Dict[str, Any]:
    # Fastlane may log before the result, the JSON document is the last line
    lines = [line for line in output.strip().splitlines() if line.strip()]
    if not lines:
        raise FastlaneError("Fastlane action did not produce any output")
    try:
        return json.loads(lines[-1])
    except json.JSONDecodeError:
        tail = "\n".join(lines[-5:])
        raise FastlaneError(f"Unexpected output from fastlane action:\n{tail}")


def run_action(
    action: str, args: List[str], fastlane_dir: Optional[Path] = None
) -> Dict[str, Any]:
    """Run a traveling fastlane action and return its result payload.

    The action writes a JSON document to stderr with ``result`` set to
    ``"success"`` or ``"failure"``; the remaining keys are the payload.
    """
    action_path = get_action_path(action, fastlane_dir)
    if not action_path.exists():
        raise FastlaneError(
            f"Fastlane action not found: {action_path}. Set STORESHIP_FASTLANE_PATH or [fastlane] path in your config."
        )

    console.log(f"[dim]Running fastlane action {action} {args[0] if args else ''}[/]")
    completed = subprocess.run(
        [str(action_path), *args],
        capture_output=True,
        text=True,
    )

    payload = _parse_result(completed.stderr)
    result = payload.pop("result", None)
    if result == "success":
        return payload

    reason = payload.get("reason")
    if reason and reason != "Unknown reason":
        message = reason
    else:
        message = (payload.get("rawDump") or {}).get(
            "message", "Unknown error when running fastlane action"
        )
    raise FastlaneError(message)
