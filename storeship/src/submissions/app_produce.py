"""Make sure an App Store Connect app exists before submitting a build."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.prompt import Prompt

from storeship import logger
from storeship.src.apple.authentication_helper import authenticate
from storeship.src.apple.developer_portal_api import AppleAPIError, DeveloperPortalAPI
from storeship.src.credentials.ensure_app_exists import (
    ensure_app_exists,
    ensure_bundle_id_exists_with_name,
    is_provisioning_available,
)
from storeship.src.submissions.language import sanitize_language

# Codes App Store Connect attaches to rejected app names
APP_NAME_ERROR_CODES = (
    "ENTITY_ERROR.ATTRIBUTE.INVALID.INVALID_CHARACTERS",
    "ENTITY_ERROR.ATTRIBUTE.INVALID.DUPLICATE.DIFFERENT_ACCOUNT",
)
APP_NAME_ERROR_PATTERNS = (
    re.compile(r"App Name contains certain Unicode(.*)characters that are not permitted"),
    re.compile(r"The App Name you entered is already being used"),
)


@dataclass
class CreateAppOptions:
    app_name: str
    bundle_identifier: str
    apple_id: Optional[str] = None
    apple_team_id: Optional[str] = None
    itc_team_id: Optional[str] = None
    language: Optional[str] = None
    company_name: Optional[str] = None
    sku: Optional[str] = None


@dataclass
class AppStoreResult:
    apple_id: str
    asc_app_id: str


@dataclass
class IosSubmissionContext:
    project_dir: Path
    bundle_identifier: Optional[str] = None
    app_name: Optional[str] = None
    language: Optional[str] = None
    apple_id: Optional[str] = None
    apple_team_id: Optional[str] = None
    company_name: Optional[str] = None
    sku: Optional[str] = None


def read_app_config(project_dir: Path) -> dict:
    """The ``expo`` section of app.json, or an empty dict when there is none."""
    app_json = Path(project_dir) / "app.json"
    if not app_json.exists():
        return {}
    data = json.loads(app_json.read_text())
    return data.get("expo", data)


def is_app_name_rejection(error: Exception) -> bool:
    """Whether Apple refused the app name (disallowed characters or taken)."""
    if isinstance(error, AppleAPIError) and error.code in APP_NAME_ERROR_CODES:
        return True
    # Older responses carry no usable code, only the message text
    message = str(error)
    return any(pattern.search(message) for pattern in APP_NAME_ERROR_PATTERNS)


def prompt_for_app_name() -> str:
    while True:
        app_name = Prompt.ask("What would you like to name your app?").strip()
        if app_name:
            return app_name
        logger.get_console().print("[red]App name cannot be empty![/]")


def ensure_app_store_connect_app_exists(ctx: IosSubmissionContext) -> AppStoreResult:
    exp = read_app_config(ctx.project_dir)

    bundle_identifier = ctx.bundle_identifier or exp.get("ios", {}).get(
        "bundleIdentifier"
    )
    if not bundle_identifier:
        raise ValueError(
            "Bundle identifier not found, pass --bundle-id or set expo.ios.bundleIdentifier in app.json"
        )

    options = CreateAppOptions(
        app_name=ctx.app_name or exp.get("name") or prompt_for_app_name(),
        bundle_identifier=bundle_identifier,
        apple_id=ctx.apple_id,
        apple_team_id=ctx.apple_team_id,
        language=sanitize_language(ctx.language),
        company_name=ctx.company_name,
        sku=ctx.sku,
    )
    return create_app_store_connect_app(options)


def create_app_store_connect_app(options: CreateAppOptions) -> AppStoreResult:
    auth_ctx = authenticate(apple_id=options.apple_id, team_id=options.apple_team_id)
    api = DeveloperPortalAPI(auth_ctx.session)

    logger.add_new_line_if_none()

    if is_provisioning_available(api):
        ensure_bundle_id_exists_with_name(
            auth_ctx, name=options.app_name, bundle_identifier=options.bundle_identifier
        )
    else:
        logger.warn(
            f'Provisioning is not available for user "{auth_ctx.apple_id}", skipping bundle identifier check.'
        )

    try:
        app = ensure_app_exists(
            auth_ctx,
            name=options.app_name,
            bundle_identifier=options.bundle_identifier,
            language=options.language or "en-US",
            company_name=options.company_name,
            sku=options.sku,
        )
    except Exception as error:
        if is_app_name_rejection(error):
            logger.add_new_line_if_none()
            logger.warn(
                "Change the name in your app config, or use a custom name with the [bold]--app-name[/bold] flag"
            )
            logger.new_line()
        raise

    return AppStoreResult(apple_id=auth_ctx.apple_id, asc_app_id=app.id)
