import argparse
import sys
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter
from storeship.logger import get_console
from storeship.src.constants.cli_constants import (
    __version__,
    get_banner_text,
    APP_DESCRIPTION,
)


class StoreshipHelpFormatter(RichHelpFormatter):
    """Help formatter with storeship's colours."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "version": "blue",
                    "title": "bold magenta",
                }
            )
        )


def display_banner():
    banner = get_banner_text()
    version_info = Text(f"v{__version__}", style="blue")
    tagline = Text(APP_DESCRIPTION, style="italic")

    panel = Panel.fit(
        Text.assemble(banner, "\n", tagline, "\n", version_info),
        border_style="green",
        padding=(1, 2),
    )
    get_console().print(panel)


def create_parser() -> argparse.ArgumentParser:
    from storeship.commands.build import add_build_subcommands
    from storeship.commands.profiles import add_profiles_subcommands
    from storeship.commands.project import add_project_subcommands
    from storeship.commands.submit import add_submit_subcommands

    parser = argparse.ArgumentParser(
        prog="storeship",
        description=f"storeship: {APP_DESCRIPTION}",
        formatter_class=StoreshipHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"storeship {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "setup",
        help="Set up storeship configuration",
        formatter_class=StoreshipHelpFormatter,
        description="Interactive wizard that writes ~/.storeship/config.toml.",
    )

    profiles_parser = subparsers.add_parser(
        "profiles",
        help="Manage provisioning profiles",
        formatter_class=StoreshipHelpFormatter,
        description="List, create, reuse and revoke provisioning profiles on Apple's servers.",
    )
    add_profiles_subcommands(profiles_parser, StoreshipHelpFormatter)

    submit_parser = subparsers.add_parser(
        "submit",
        help="Prepare App Store submissions",
        formatter_class=StoreshipHelpFormatter,
    )
    add_submit_subcommands(submit_parser, StoreshipHelpFormatter)

    build_parser = subparsers.add_parser(
        "build",
        help="Check build configuration",
        formatter_class=StoreshipHelpFormatter,
    )
    add_build_subcommands(build_parser, StoreshipHelpFormatter)

    project_parser = subparsers.add_parser(
        "project",
        help="Inspect the project repository",
        formatter_class=StoreshipHelpFormatter,
    )
    add_project_subcommands(project_parser, StoreshipHelpFormatter)

    return parser


def run_command(args) -> int:
    if args.command == "setup":
        from storeship.commands.setup import run_setup_command

        return run_setup_command(args)
    elif args.command == "profiles":
        from storeship.commands.profiles import run_profiles_command

        return run_profiles_command(args)
    elif args.command == "submit":
        from storeship.commands.submit import run_submit_command

        return run_submit_command(args)
    elif args.command == "build":
        from storeship.commands.build import run_build_command

        return run_build_command(args)
    elif args.command == "project":
        from storeship.commands.project import run_project_command

        return run_project_command(args)
    return 1


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv or "-h" in argv or "--help" in argv:
        display_banner()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        return run_command(args)
    except KeyboardInterrupt:
        get_console().print("\n[yellow]Cancelled[/]")
        return 130
    except Exception as e:
        get_console().print(f"\n[red]Error:[/] {escape(str(e))}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
