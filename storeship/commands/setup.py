import toml
from rich.panel import Panel
from rich.prompt import Prompt, Confirm
from rich.text import Text
from rich import box
from storeship.logger import get_console
from storeship.src.utils.config_loader import (
    PROVISIONING_BACKENDS,
    PORTAL_BACKEND,
    get_config_path,
    get_fastlane_path,
)

console = get_console()


def create_or_update_config(config_path) -> bool:
    """Create or update the config file based on user input."""
    config_data = {}
    if config_path.exists():
        try:
            config_data = toml.load(config_path)
        except toml.TomlDecodeError as e:
            console.print(f"[yellow]Warning: Could not parse existing config: {e}[/yellow]")
            if not Confirm.ask("Would you like to create a new configuration?", default=True):
                return False
            config_data = {}

    console.print(
        Panel("Let's configure your storeship settings", style="bold green", box=box.ROUNDED)
    )

    console.print("\n[bold blue]Apple Developer Configuration[/bold blue]")
    apple = config_data.setdefault("apple", {})
    apple["apple_id"] = Prompt.ask(
        "Apple ID (email)", default=apple.get("apple_id", "changeme@apple.com")
    )

    team_id = Prompt.ask(
        "Team ID (leave empty to choose when signing in)",
        default=apple.get("team_id", ""),
    )
    if team_id:
        apple["team_id"] = team_id
    else:
        apple.pop("team_id", None)

    if Confirm.ask("Do you want to store your Apple ID password?", default=False):
        apple["apple_password"] = Prompt.ask("Apple ID password", password=True)
    elif "apple_password" in apple:
        if Confirm.ask("Remove existing password from config?", default=False):
            del apple["apple_password"]

    console.print("\n[bold blue]Provisioning Profiles[/bold blue]")
    provisioning = config_data.setdefault("provisioning", {})
    provisioning["backend"] = Prompt.ask(
        "Backend for provisioning profiles",
        choices=list(PROVISIONING_BACKENDS),
        default=provisioning.get("backend", PORTAL_BACKEND),
    )

    if provisioning["backend"] != PORTAL_BACKEND:
        fastlane = config_data.setdefault("fastlane", {})
        fastlane["path"] = Prompt.ask(
            "Traveling fastlane directory",
            default=fastlane.get("path", str(get_fastlane_path())),
        )
        if "apple_password" not in apple:
            console.print(
                "[yellow]The fastlane backend needs your password, you will be asked for it on each run.[/]"
            )

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        toml.dump(config_data, f)
    return True


def run_setup_command(args) -> int:
    """Run the setup command."""
    console.print(
        Panel.fit(
            Text("storeship Setup Wizard", style="bold magenta"),
            border_style="green",
            padding=(1, 8),
        )
    )

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Configuration file already exists at:[/yellow] {config_path}")
        if not Confirm.ask("Do you want to edit the existing configuration?", default=True):
            return 0

    if not create_or_update_config(config_path):
        console.print("[bold red]Configuration was not saved.[/bold red]")
        return 1

    console.print(f"[bold green]✓ Configuration saved to {config_path}[/bold green]")
    console.print(
        "\n[bold cyan]What's next?[/bold cyan]\n\n"
        "• List profiles: [green]storeship profiles list --bundle-id com.example.app[/green]\n"
        "• Prepare the App Store Connect app: [green]storeship submit ensure-app[/green]\n"
        "• For more help: [green]storeship --help[/green]"
    )
    return 0
