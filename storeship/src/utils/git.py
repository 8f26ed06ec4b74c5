"""Thin wrappers around the git executable."""

import subprocess
from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, Path]


def _run_git(
    args: List[str], cwd: Optional[PathLike] = None
) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )


def git_status(show_untracked: bool = False, cwd: Optional[PathLike] = None) -> str:
    """Short status output, untracked files included only when asked for."""
    result = _run_git(["status", "-s", "-uall" if show_untracked else "-uno"], cwd)
    return result.stdout


def git_diff(cwd: Optional[PathLike] = None) -> None:
    """Print the working tree diff straight to the terminal."""
    subprocess.run(
        ["git", "--no-pager", "diff"],
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        check=True,
    )


def git_add(
    file: PathLike, intent_to_add: bool = False, cwd: Optional[PathLike] = None
) -> None:
    if intent_to_add:
        _run_git(["add", "--intent-to-add", str(file)], cwd)
    else:
        _run_git(["add", str(file)], cwd)


def git_root_directory(cwd: Optional[PathLike] = None) -> str:
    return _run_git(["rev-parse", "--show-toplevel"], cwd).stdout.strip()


def does_git_repo_exist(cwd: Optional[PathLike] = None) -> bool:
    try:
        _run_git(["rev-parse", "--git-dir"], cwd)
        return True
    except (subprocess.CalledProcessError, OSError):
        return False


def is_git_installed() -> bool:
    """True when ``git --help`` runs; a missing executable yields False.

    Any other failure is raised to the caller.
    """
    try:
        _run_git(["--help"])
    except FileNotFoundError:
        return False
    return True


def get_branch_name(cwd: Optional[PathLike] = None) -> Optional[str]:
    # Best effort, the branch name is only informational
    try:
        return _run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd).stdout.strip()
    except Exception:
        return None
