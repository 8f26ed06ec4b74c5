import base64
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.table import Table

from storeship.arguments import (
    add_auth_arguments,
    add_certificate_arguments,
    add_profile_arguments,
    get_profile_class,
    load_distribution_certificate,
)
from storeship.logger import get_console
from storeship.src.apple.authentication_helper import authenticate
from storeship.src.credentials.credentials_types import (
    ProvisioningProfile,
    ProvisioningProfileStoreInfo,
)
from storeship.src.credentials.provisioning_profile import (
    ProvisioningProfileManager,
    create_profile_backend,
)
from storeship.src.utils.config_loader import use_portal_api

console = get_console()


def add_profiles_subcommands(parser, formatter_class) -> None:
    subparsers = parser.add_subparsers(dest="profiles_command", required=True)

    list_parser = subparsers.add_parser(
        "list", help="List provisioning profiles", formatter_class=formatter_class
    )
    add_profile_arguments(list_parser)
    add_auth_arguments(list_parser)

    create_parser = subparsers.add_parser(
        "create", help="Create a provisioning profile", formatter_class=formatter_class
    )
    add_profile_arguments(create_parser)
    add_certificate_arguments(create_parser)
    create_parser.add_argument("--name", required=True, help="Profile name")
    create_parser.add_argument(
        "--output", type=Path, help="Write the profile to this .mobileprovision file"
    )
    add_auth_arguments(create_parser)

    use_parser = subparsers.add_parser(
        "use-existing",
        help="Assign a certificate to an existing provisioning profile",
        formatter_class=formatter_class,
    )
    add_profile_arguments(use_parser)
    add_certificate_arguments(use_parser)
    use_parser.add_argument("--profile-id", required=True, help="Profile to reuse")
    use_parser.add_argument(
        "--output", type=Path, help="Write the profile to this .mobileprovision file"
    )
    add_auth_arguments(use_parser)

    revoke_parser = subparsers.add_parser(
        "revoke",
        help="Revoke provisioning profiles for a bundle identifier",
        formatter_class=formatter_class,
    )
    add_profile_arguments(revoke_parser)
    add_auth_arguments(revoke_parser)


def _format_expiry(expires: Optional[float]) -> str:
    if not expires:
        return "-"
    return datetime.fromtimestamp(expires).strftime("%Y-%m-%d")


def print_profiles(profiles: List[ProvisioningProfileStoreInfo], bundle_id: str) -> None:
    if not profiles:
        console.print(f"[yellow]No provisioning profiles found for {bundle_id}[/]")
        return

    table = Table(title=f"Provisioning Profiles for {bundle_id}")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("Expires")
    table.add_column("Certificates")

    for profile in profiles:
        table.add_row(
            profile.provisioning_profile_id,
            profile.name or "",
            profile.status or "",
            profile.distribution_method or "",
            _format_expiry(profile.expires),
            ", ".join(cert.serial_number for cert in profile.certificates),
        )
    console.print(table)


def write_profile(profile: ProvisioningProfile, output: Optional[Path]) -> None:
    console.print(
        f"[green]Profile {profile.provisioning_profile_id} ready for team {profile.team_name} ({profile.team_id})[/]"
    )
    if not output:
        return
    if not profile.provisioning_profile:
        console.print("[yellow]Apple returned no profile content, nothing written[/]")
        return
    output.write_bytes(base64.b64decode(profile.provisioning_profile))
    console.print(f"[green]✓ Profile written to:[/] {output}")


def run_profiles_command(args) -> int:
    portal = use_portal_api()
    auth_ctx = authenticate(
        apple_id=args.apple_id, team_id=args.team_id, require_password=not portal
    )
    manager = ProvisioningProfileManager(
        auth_ctx, create_profile_backend(auth_ctx, portal=portal)
    )
    profile_class = get_profile_class(args)

    if args.profiles_command == "list":
        profiles = manager.list_provisioning_profiles(args.bundle_id, profile_class)
        print_profiles(profiles, args.bundle_id)
    elif args.profiles_command == "create":
        profile = manager.create_provisioning_profile(
            args.bundle_id,
            load_distribution_certificate(args),
            args.name,
            profile_class,
        )
        write_profile(profile, args.output)
    elif args.profiles_command == "use-existing":
        profile = manager.use_existing_provisioning_profile(
            args.bundle_id,
            ProvisioningProfile(provisioning_profile_id=args.profile_id),
            load_distribution_certificate(args),
            profile_class,
        )
        write_profile(profile, args.output)
    elif args.profiles_command == "revoke":
        manager.revoke_provisioning_profile(args.bundle_id, profile_class)
    return 0
