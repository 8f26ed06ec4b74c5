import shutil
import subprocess

import pytest

from storeship.src.utils import git
from storeship.src.utils.git import (
    does_git_repo_exist,
    get_branch_name,
    git_add,
    git_root_directory,
    git_status,
    is_git_installed,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.fixture
def recorded(monkeypatch):
    calls = []

    def run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, 0, stdout=" main\n", stderr="")

    monkeypatch.setattr(git.subprocess, "run", run)
    return calls


def test_status_hides_untracked_by_default(recorded, tmp_path):
    git_status(cwd=tmp_path)
    cmd, kwargs = recorded[0]
    assert cmd == ["git", "status", "-s", "-uno"]
    assert kwargs["cwd"] == tmp_path


def test_status_with_untracked(recorded):
    git_status(show_untracked=True)
    assert recorded[0][0] == ["git", "status", "-s", "-uall"]


def test_add_with_intent(recorded):
    git_add(".eas/build/ci.yml", intent_to_add=True)
    assert recorded[0][0] == ["git", "add", "--intent-to-add", ".eas/build/ci.yml"]


def test_add(recorded):
    git_add("file.txt")
    assert recorded[0][0] == ["git", "add", "file.txt"]


def test_root_directory_is_stripped(recorded):
    assert git_root_directory() == "main"


def test_git_not_installed(monkeypatch):
    def run(cmd, **kwargs):
        raise FileNotFoundError("git")

    monkeypatch.setattr(git.subprocess, "run", run)
    assert is_git_installed() is False


def test_git_installed_other_errors_propagate(monkeypatch):
    def run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(git.subprocess, "run", run)
    with pytest.raises(subprocess.CalledProcessError):
        is_git_installed()


def test_branch_name_on_failure(monkeypatch):
    def run(cmd, **kwargs):
        raise subprocess.CalledProcessError(128, cmd)

    monkeypatch.setattr(git.subprocess, "run", run)
    assert get_branch_name() is None


def test_repo_exists_on_failure(monkeypatch):
    def run(cmd, **kwargs):
        raise subprocess.CalledProcessError(128, cmd)

    monkeypatch.setattr(git.subprocess, "run", run)
    assert does_git_repo_exist() is False


@requires_git
def test_real_repository(tmp_path):
    subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True)
    (tmp_path / "new.txt").write_text("hello\n")

    assert is_git_installed()
    assert does_git_repo_exist(tmp_path)
    assert git_status(cwd=tmp_path) == ""
    assert "new.txt" in git_status(show_untracked=True, cwd=tmp_path)

    git_add("new.txt", intent_to_add=True, cwd=tmp_path)
    assert "new.txt" in git_status(cwd=tmp_path)


@requires_git
def test_real_directory_without_repository(tmp_path, monkeypatch):
    # Keep git from finding a repository above the temp directory
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))

    assert does_git_repo_exist(tmp_path) is False
