from pathlib import Path

from storeship.logger import get_console
from storeship.src.project.build_profile import load_build_profile
from storeship.src.project.custom_build_config import (
    get_custom_build_config_path,
    validate_custom_build_config,
)
from storeship.src.utils.git import does_git_repo_exist, git_add

console = get_console()


def add_build_subcommands(parser, formatter_class) -> None:
    subparsers = parser.add_subparsers(dest="build_command", required=True)

    validate_parser = subparsers.add_parser(
        "validate-config",
        help="Validate the custom build workflow of a build profile",
        formatter_class=formatter_class,
    )
    validate_parser.add_argument(
        "--profile", default="production", help="Build profile in eas.json [default: production]"
    )
    validate_parser.add_argument(
        "--project-dir", type=Path, default=Path.cwd(), help="Project root [default: cwd]"
    )
    validate_parser.add_argument(
        "--stage",
        action="store_true",
        help="Mark the workflow file with git add --intent-to-add [default: disabled]",
    )


def run_build_command(args) -> int:
    if args.build_command == "validate-config":
        profile = load_build_profile(args.project_dir, args.profile)
        metadata = validate_custom_build_config(args.project_dir, profile)
        if metadata is None:
            console.print(f"[yellow]Build profile {profile.name} uses no custom build config[/]")
            return 0

        workflow = metadata.workflow_name or "(unnamed)"
        console.print(f"[green]✓ Custom build config is valid, workflow:[/] {workflow}")

        if args.stage:
            if not does_git_repo_exist(args.project_dir):
                console.print("[yellow]Not a git repository, nothing staged[/]")
                return 0
            config_path = get_custom_build_config_path(profile.config)
            git_add(config_path, intent_to_add=True, cwd=args.project_dir)
            console.print(f"[green]✓ Staged {config_path}[/]")
    return 0
