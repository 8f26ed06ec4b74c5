from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from storeship.src.credentials.credentials_types import AuthContext, Team


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.storeship and STORESHIP_* settings."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("NON_INTERACTIVE", "1")
    for name in (
        "STORESHIP_APPLE_ID",
        "STORESHIP_APPLE_PASSWORD",
        "STORESHIP_TEAM_ID",
        "STORESHIP_SESSION_DIR",
        "STORESHIP_PROVISIONING_BACKEND",
        "STORESHIP_FASTLANE_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def apple_session():
    return SimpleNamespace(session=MagicMock(), csrf="csrf-token", csrf_ts="12345")


@pytest.fixture
def auth_ctx(apple_session):
    return AuthContext(
        apple_id="dev@example.com",
        apple_id_password="hunter2",
        team=Team(id="TEAM123", name="Example Inc", in_house=False),
        session=apple_session,
    )


@pytest.fixture
def in_house_auth_ctx(apple_session):
    return AuthContext(
        apple_id="dev@example.com",
        apple_id_password="hunter2",
        team=Team(id="ENT456", name="Example Enterprise", in_house=True),
        session=apple_session,
    )
