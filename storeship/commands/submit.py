from pathlib import Path

from storeship.arguments import add_auth_arguments
from storeship.logger import get_console
from storeship.src.submissions.app_produce import (
    IosSubmissionContext,
    ensure_app_store_connect_app_exists,
)

console = get_console()


def add_submit_subcommands(parser, formatter_class) -> None:
    subparsers = parser.add_subparsers(dest="submit_command", required=True)

    ensure_parser = subparsers.add_parser(
        "ensure-app",
        help="Create the App Store Connect app if it does not exist yet",
        formatter_class=formatter_class,
    )
    ensure_parser.add_argument(
        "--project-dir", type=Path, default=Path.cwd(), help="Project root [default: cwd]"
    )
    ensure_parser.add_argument(
        "--bundle-id", help="Bundle identifier [default: from app.json]"
    )
    ensure_parser.add_argument(
        "--app-name", help="App name on the App Store [default: from app.json]"
    )
    ensure_parser.add_argument(
        "--language", help="Primary language of the app [default: en-US]"
    )
    ensure_parser.add_argument("--company-name", help="Company name for new accounts")
    ensure_parser.add_argument("--sku", help="SKU for a new app [default: generated]")
    add_auth_arguments(ensure_parser)


def run_submit_command(args) -> int:
    if args.submit_command == "ensure-app":
        result = ensure_app_store_connect_app_exists(
            IosSubmissionContext(
                project_dir=args.project_dir,
                bundle_identifier=args.bundle_id,
                app_name=args.app_name,
                language=args.language,
                apple_id=args.apple_id,
                apple_team_id=args.team_id,
                company_name=args.company_name,
                sku=args.sku,
            )
        )
        console.print(
            f"[green]✓ App Store Connect app ready:[/] {result.asc_app_id} (Apple ID {result.apple_id})"
        )
    return 0
