from pathlib import Path

from rich.table import Table

from storeship.logger import get_console
from storeship.src.utils.git import (
    does_git_repo_exist,
    get_branch_name,
    git_diff,
    git_root_directory,
    git_status,
    is_git_installed,
)

console = get_console()


def add_project_subcommands(parser, formatter_class) -> None:
    subparsers = parser.add_subparsers(dest="project_command", required=True)

    status_parser = subparsers.add_parser(
        "status",
        help="Show the git state of the project",
        formatter_class=formatter_class,
    )
    status_parser.add_argument(
        "--project-dir", type=Path, default=Path.cwd(), help="Project root [default: cwd]"
    )
    status_parser.add_argument(
        "--untracked", action="store_true", help="Include untracked files [default: disabled]"
    )
    status_parser.add_argument(
        "--diff", action="store_true", help="Print the working tree diff [default: disabled]"
    )


def run_project_command(args) -> int:
    if not is_git_installed():
        console.print("[red]git is not installed, install it from https://git-scm.com[/]")
        return 1
    if not does_git_repo_exist(args.project_dir):
        console.print(f"[red]{args.project_dir} is not inside a git repository[/]")
        return 1

    status = git_status(show_untracked=args.untracked, cwd=args.project_dir)

    table = Table(title="Project")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Root", git_root_directory(args.project_dir))
    table.add_row("Branch", get_branch_name(args.project_dir) or "[dim]unknown[/]")
    table.add_row(
        "Working tree",
        "[green]clean[/]" if not status.strip() else f"[yellow]{len(status.splitlines())} changed[/]",
    )
    console.print(table)

    if status.strip():
        console.print(status.rstrip())
    if args.diff:
        git_diff(args.project_dir)
    return 0
