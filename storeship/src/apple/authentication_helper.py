import os
import getpass
from typing import List, Optional
from rich.prompt import Prompt
from storeship.logger import get_console
from storeship.src.apple.apple_account_login import (
    AppleDeveloperAuth,
    AuthenticationError,
)
from storeship.src.apple.developer_portal_api import DeveloperPortalAPI, PortalTeam
from storeship.src.credentials.credentials_types import AuthContext, Team
from storeship.src.utils.config_loader import get_apple_credentials, get_team_id

console = get_console()


def _prompt_for_password(apple_id: str) -> Optional[str]:
    if os.environ.get("NON_INTERACTIVE"):
        return None
    try:
        return getpass.getpass(f"Enter Apple ID password for {apple_id}: ") or None
    except (EOFError, KeyboardInterrupt):
        return None


def select_team(teams: List[PortalTeam], team_id: Optional[str] = None) -> PortalTeam:
    """Pick the team to work with: the requested one, the only one, or ask."""
    if not teams:
        raise AuthenticationError("This Apple ID is not a member of any team")

    if team_id:
        team = next((t for t in teams if t.team_id == team_id), None)
        if not team:
            raise AuthenticationError(
                f"Team {team_id} not found, available teams: {', '.join(t.team_id for t in teams)}"
            )
        return team

    if len(teams) == 1:
        return teams[0]

    if os.environ.get("NON_INTERACTIVE"):
        raise AuthenticationError(
            "Multiple teams available, set STORESHIP_TEAM_ID or pass --team-id"
        )

    for index, team in enumerate(teams, start=1):
        console.print(f"[{index}] {team.name} ({team.team_id}, {team.type})")
    choice = Prompt.ask(
        "Select a team",
        choices=[str(i) for i in range(1, len(teams) + 1)],
        default="1",
    )
    return teams[int(choice) - 1]


def authenticate(
    apple_id: Optional[str] = None,
    team_id: Optional[str] = None,
    require_password: bool = False,
) -> AuthContext:
    """Sign in to Apple and resolve the team for this command.

    ``require_password`` is set when the fastlane backend will be used, since
    its actions sign in on their own and need the plain password.
    """
    credentials = get_apple_credentials(apple_id)
    apple_id = credentials["apple_id"]
    password = credentials["apple_password"]

    auth = AppleDeveloperAuth()
    auth.load_session(apple_id)
    if not password and (require_password or not auth.validate_token()):
        console.print("[yellow]No Apple password found in configuration.[/]")
        password = _prompt_for_password(apple_id)
        if require_password and not password:
            raise AuthenticationError("An Apple ID password is required")

    auth.authenticate(apple_id, password)

    team = select_team(DeveloperPortalAPI(auth).list_teams(), team_id or get_team_id())
    console.print(f"[green]Using team {team.name} ({team.team_id})[/]")
    return AuthContext(
        apple_id=apple_id,
        apple_id_password=password,
        team=Team(id=team.team_id, name=team.name, in_house=team.in_house),
        session=auth,
    )
