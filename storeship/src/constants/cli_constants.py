from rich.text import Text

__version__ = "0.1.0"

APP_DESCRIPTION = "Provisioning profiles, App Store Connect apps and build configs from your terminal"


def get_banner_text() -> Text:
    return Text("storeship", style="bold cyan")
