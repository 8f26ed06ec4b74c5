import uuid
from typing import Optional

from storeship.src.apple.developer_portal_api import App, BundleId, DeveloperPortalAPI
from storeship.src.credentials.credentials_types import AuthContext
from storeship.src.utils.progress import spinner


def _api(auth_ctx: AuthContext) -> DeveloperPortalAPI:
    return DeveloperPortalAPI(auth_ctx.session)


def generate_sku() -> str:
    return f"sku-{uuid.uuid4().hex[:12]}"


def ensure_bundle_id_exists_with_name(
    auth_ctx: AuthContext, name: str, bundle_identifier: str
) -> BundleId:
    """Register the bundle identifier unless the team already has it."""
    with spinner(f"Linking bundle identifier {bundle_identifier}"):
        api = _api(auth_ctx)
        existing = api.find_bundle_id(auth_ctx.team.id, bundle_identifier)
        if existing:
            return existing
        return api.register_bundle_id(auth_ctx.team.id, bundle_identifier, name)


def is_provisioning_available(api: DeveloperPortalAPI) -> bool:
    """Whether the signed in App Store Connect user may manage provisioning."""
    username = api.get_session_username()
    if not username:
        return False
    return api.get_user(username).provisioning_allowed


def ensure_app_exists(
    auth_ctx: AuthContext,
    name: str,
    bundle_identifier: str,
    language: str = "en-US",
    company_name: Optional[str] = None,
    sku: Optional[str] = None,
) -> App:
    """Return the App Store Connect app for a bundle identifier, creating it if needed."""
    with spinner(
        f"Looking up App Store Connect app for {bundle_identifier}",
        fail_message=f"Failed to prepare App Store Connect app {name}",
    ):
        api = _api(auth_ctx)
        app = api.find_app(bundle_identifier)
        if app:
            return app
        return api.create_app(
            bundle_identifier,
            name,
            primary_locale=language,
            sku=sku or generate_sku(),
            company_name=company_name,
        )
