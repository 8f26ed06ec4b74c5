import re
import requests
from urllib.parse import urlsplit
from datetime import datetime
from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field
from storeship.logger import get_console

console = get_console()

PORTAL_URL = "https://developer.apple.com/services-account/v1"
PORTAL_ACCOUNT_URL = "https://developer.apple.com/services-account/QH65B2/account"
ASC_URL = "https://appstoreconnect.apple.com"

# Legacy regen endpoint names for the profile types
REGEN_DISTRIBUTION_TYPES = {
    "IOS_APP_DEVELOPMENT": "limited",
    "IOS_APP_ADHOC": "adhoc",
    "IOS_APP_STORE": "store",
    "IOS_APP_INHOUSE": "inhouse",
}


class AppleAPIError(Exception):
    """Error response from the Developer Portal or App Store Connect."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.detail = detail

    @classmethod
    def from_response(cls, response: requests.Response, action: str) -> "AppleAPIError":
        try:
            data = response.json()
        except ValueError:
            data = {}

        errors = data.get("errors") if isinstance(data, dict) else None
        if errors:
            error = errors[0]
            title = error.get("title") or action
            detail = error.get("detail")
            message = f"{title} - {detail}" if detail else title
            return cls(
                message,
                status_code=response.status_code,
                code=error.get("code"),
                detail=detail,
            )

        if isinstance(data, dict) and data.get("userString"):
            return cls(
                f"{action}: {data['userString']}",
                status_code=response.status_code,
                code=str(data.get("resultCode")),
            )

        return cls(
            f"{action} ({response.status_code})", status_code=response.status_code
        )


@dataclass
class PortalTeam:
    team_id: str
    name: str
    status: str
    type: str
    roles: List[str]

    @property
    def in_house(self) -> bool:
        return self.type == "In-House"


@dataclass
class Certificate:
    id: str
    serial_number: str
    name: str
    certificate_type: str
    expiration_date: Optional[str] = None


@dataclass
class BundleId:
    id: str
    identifier: str
    name: str


@dataclass
class Profile:
    id: str
    name: str
    profile_state: str
    profile_type: str
    platform: str
    expiration_date: Optional[str] = None
    profile_content: Optional[str] = None
    bundle_id_id: Optional[str] = None
    certificate_ids: List[str] = field(default_factory=list)
    device_ids: List[str] = field(default_factory=list)


@dataclass
class App:
    id: str
    name: str
    bundle_id: str
    sku: Optional[str] = None
    primary_locale: Optional[str] = None


@dataclass
class User:
    id: str
    username: str
    provisioning_allowed: bool


def parse_apple_date(value: Optional[str]) -> Optional[float]:
    """Convert an Apple timestamp like ``2025-01-31T10:00:00.000+0000`` to epoch seconds."""
    if not value:
        return None
    normalized = value.replace("Z", "+00:00")
    normalized = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", normalized)
    return datetime.fromisoformat(normalized).timestamp()


def _relationship_ids(resource: Dict[str, Any], name: str) -> List[str]:
    data = resource.get("relationships", {}).get(name, {}).get("data")
    if data is None:
        return []
    if isinstance(data, dict):
        return [data["id"]]
    return [item["id"] for item in data]


class DeveloperPortalAPI:
    """Apple Developer Portal and App Store Connect client"""

    def __init__(self, auth_instance):
        """Initialize with an authenticated session"""
        self.auth = auth_instance
        self.session = auth_instance.session
        self.csrf = auth_instance.csrf
        self.csrf_ts = auth_instance.csrf_ts
        # Portal reads are POSTs with a method override
        self.default_headers = {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.5",
            "Content-Type": "application/vnd.api+json",
            "X-Requested-With": "XMLHttpRequest",
            "X-HTTP-Method-Override": "GET",
        }

    def _write_headers(self, content_type: str = "application/vnd.api+json") -> dict:
        return {
            "Accept": "application/json, text/plain, */*",
            "Content-Type": content_type,
            "X-Requested-With": "XMLHttpRequest",
            "csrf": self.csrf,
            "csrf_ts": str(self.csrf_ts),
        }

    def _check(
        self, response: requests.Response, action: str, ok=(200,)
    ) -> requests.Response:
        if response.status_code not in ok:
            console.print(f"[red]{action}: {response.status_code}")
            raise AppleAPIError.from_response(response, action)
        return response

    def _portal_query(self, path: str, team_id: str, query: str) -> dict:
        response = self.session.post(
            f"{PORTAL_URL}/{path}",
            json={"urlEncodedQueryParams": query, "teamId": team_id},
            headers=self.default_headers.copy(),
        )
        return self._check(response, f"Failed to fetch {path}").json()

    def _portal_query_all(self, path: str, team_id: str, query: str) -> List[dict]:
        """Collect ``data`` from every page, following ``links.next``."""
        items = []
        seen = set()
        while query and query not in seen:
            seen.add(query)
            page = self._portal_query(path, team_id, query)
            items.extend(page.get("data", []))
            next_link = (page.get("links") or {}).get("next")
            query = urlsplit(next_link).query if next_link else None
        return items

    # Teams

    def list_teams(self) -> List[PortalTeam]:
        """List all teams the authenticated user has access to"""
        console.print("[blue]Fetching teams from Developer Portal...")

        response = self.session.post(
            f"{PORTAL_ACCOUNT_URL}/getTeams",
            json={"includeInMigrationTeams": 1},
            headers={
                "Accept": "application/json, text/javascript",
                "Content-Type": "application/json",
                "X-Requested-With": "XMLHttpRequest",
            },
        )
        data = self._check(response, "Failed to fetch teams").json()
        if data.get("resultCode") != 0:
            raise AppleAPIError.from_response(response, "Failed to fetch teams")

        teams = [
            PortalTeam(
                team_id=team["teamId"],
                name=team["name"],
                status=team.get("status", ""),
                type=team.get("type", ""),
                roles=team.get("userRoles", []),
            )
            for team in data.get("teams", [])
        ]
        console.print(f"[green]Found {len(teams)} teams")
        return teams

    # Certificates

    def _to_certificate(self, cert: dict) -> Certificate:
        attrs = cert["attributes"]
        return Certificate(
            id=cert["id"],
            serial_number=attrs["serialNumber"],
            name=attrs.get("name", ""),
            certificate_type=attrs.get("certificateType", ""),
            expiration_date=attrs.get("expirationDate"),
        )

    def list_certificates(self, team_id: str) -> List[Certificate]:
        """List all certificates for a team"""
        certificates = self._portal_query_all(
            "certificates", team_id, "limit=1000&sort=displayName"
        )
        return [self._to_certificate(cert) for cert in certificates]

    def get_certificate_by_serial_number(
        self, team_id: str, serial_number: str
    ) -> Certificate:
        certificate = next(
            (
                cert
                for cert in self.list_certificates(team_id)
                if cert.serial_number.upper() == serial_number.upper()
            ),
            None,
        )
        if not certificate:
            raise AppleAPIError(
                f'No certificate exists with serial number "{serial_number}"'
            )
        return certificate

    # Bundle identifiers

    def find_bundle_id(self, team_id: str, identifier: str) -> Optional[BundleId]:
        data = self._portal_query(
            "bundleIds", team_id, f"filter[identifier]={identifier}"
        )
        # The filter is a prefix match, keep the exact one only
        for bundle in data.get("data", []):
            attrs = bundle["attributes"]
            if attrs["identifier"] == identifier:
                return BundleId(
                    id=bundle["id"], identifier=attrs["identifier"], name=attrs["name"]
                )
        return None

    def get_bundle_id_for_identifier(self, team_id: str, identifier: str) -> BundleId:
        bundle_id = self.find_bundle_id(team_id, identifier)
        if not bundle_id:
            raise AppleAPIError(f'Failed to find Bundle ID item with identifier "{identifier}"')
        return bundle_id

    def register_bundle_id(self, team_id: str, identifier: str, name: str) -> BundleId:
        """Register a new bundle ID (or get existing)"""
        console.print(f"[blue]Registering bundle ID {identifier}...")

        payload = {
            "data": {
                "type": "bundleIds",
                "attributes": {
                    "identifier": identifier,
                    "name": name,
                    "seedId": team_id,
                    "teamId": team_id,
                },
                "relationships": {"bundleIdCapabilities": {"data": []}},
            }
        }
        response = self.session.post(
            f"{PORTAL_URL}/bundleIds", json=payload, headers=self._write_headers()
        )

        if response.status_code == 409:
            data = response.json()
            if data.get("errors", [{}])[0].get("resultCode") == 9400:  # Already exists
                console.print(f"[yellow]Bundle ID {identifier} exists, fetching existing one...")
                return self.get_bundle_id_for_identifier(team_id, identifier)

        self._check(response, "Failed to register bundle ID", ok=(200, 201))
        bundle = response.json()["data"]
        attrs = bundle["attributes"]
        console.print(f"[green]Registered new bundle ID: {attrs['identifier']}")
        return BundleId(id=bundle["id"], identifier=attrs["identifier"], name=attrs["name"])

    # Provisioning profiles

    def _to_profile(self, profile: dict) -> Profile:
        attrs = profile["attributes"]
        return Profile(
            id=profile["id"],
            name=attrs.get("name", ""),
            profile_state=attrs.get("profileState", ""),
            profile_type=attrs.get("profileType", ""),
            platform=attrs.get("platform", ""),
            expiration_date=attrs.get("expirationDate"),
            profile_content=attrs.get("profileContent"),
            bundle_id_id=next(iter(_relationship_ids(profile, "bundleId")), None),
            certificate_ids=_relationship_ids(profile, "certificates"),
            device_ids=_relationship_ids(profile, "devices"),
        )

    def list_profiles_for_bundle_id(
        self, team_id: str, bundle_id_resource_id: str
    ) -> List[Profile]:
        profiles = self._portal_query_all(
            "profiles",
            team_id,
            "limit=1000&include=bundleId,certificates,devices"
            "&fields[profiles]=name,platform,profileType,profileState,expirationDate,profileContent,bundleId,certificates,devices",
        )
        # Profiles are listed team-wide and matched to the bundle id here
        return [
            profile
            for profile in map(self._to_profile, profiles)
            if profile.bundle_id_id == bundle_id_resource_id
        ]

    def get_profiles_for_bundle_identifier(
        self, team_id: str, identifier: str
    ) -> List[Profile]:
        bundle_id = self.get_bundle_id_for_identifier(team_id, identifier)
        return self.list_profiles_for_bundle_id(team_id, bundle_id.id)

    def get_profile(self, team_id: str, profile_id: str) -> Profile:
        response = self.session.post(
            f"{PORTAL_URL}/profiles/{profile_id}",
            json={"urlEncodedQueryParams": "include=bundleId,certificates,devices", "teamId": team_id},
            headers=self.default_headers.copy(),
        )
        return self._to_profile(self._check(response, "Failed to fetch profile").json()["data"])

    def get_profile_certificates(self, team_id: str, profile_id: str) -> List[Certificate]:
        certificates = self._portal_query_all(
            f"profiles/{profile_id}/certificates", team_id, "limit=1000"
        )
        return [self._to_certificate(cert) for cert in certificates]

    def create_profile(
        self,
        team_id: str,
        bundle_id_resource_id: str,
        name: str,
        certificate_ids: List[str],
        device_ids: List[str],
        profile_type: str,
    ) -> Profile:
        console.print(f"[blue]Creating {profile_type} profile:[/] {name}")
        payload = {
            "teamId": team_id,
            "data": {
                "type": "profiles",
                "attributes": {"name": name, "profileType": profile_type},
                "relationships": {
                    "bundleId": {"data": {"type": "bundleIds", "id": bundle_id_resource_id}},
                    "certificates": {
                        "data": [{"type": "certificates", "id": cid} for cid in certificate_ids]
                    },
                    "devices": {
                        "data": [{"type": "devices", "id": did} for did in device_ids]
                    },
                },
            },
        }
        response = self.session.post(
            f"{PORTAL_URL}/profiles", json=payload, headers=self._write_headers()
        )
        self._check(response, "Failed to create profile", ok=(200, 201))
        return self._to_profile(response.json()["data"])

    def regenerate_profile(
        self, team_id: str, profile: Profile, certificate_ids: List[str]
    ) -> Profile:
        """Regenerate a profile with the given certificates and fetch the new one."""
        console.print(f"[blue]Regenerating profile:[/] {profile.name}")
        payload = {
            "appIdId": profile.bundle_id_id,
            "provisioningProfileId": profile.id,
            "distributionType": REGEN_DISTRIBUTION_TYPES.get(profile.profile_type, "store"),
            "provisioningProfileName": profile.name,
            "certificateIds": ",".join(certificate_ids),
            "deviceIds": ",".join(profile.device_ids),
            "teamId": team_id,
            "subPlatform": "",
            "returnFullObjects": "false",
        }
        response = self.session.post(
            f"{PORTAL_ACCOUNT_URL}/ios/profile/regenProvisioningProfile.action",
            data=payload,
            headers=self._write_headers("application/x-www-form-urlencoded"),
        )
        data = self._check(response, "Failed to regenerate profile").json()
        if data.get("resultCode") != 0:
            raise AppleAPIError.from_response(response, "Failed to regenerate profile")

        new_id = data.get("provisioningProfile", {}).get("provisioningProfileId")
        if not new_id:
            raise AppleAPIError("Failed to regenerate profile: no profile ID in response")
        return self.get_profile(team_id, new_id)

    def delete_profile(self, team_id: str, profile_id: str) -> None:
        console.print(f"[blue]Deleting profile {profile_id}...")
        response = self.session.delete(
            f"{PORTAL_URL}/profiles/{profile_id}",
            json={"teamId": team_id},
            headers=self._write_headers(),
        )
        self._check(response, "Failed to delete profile", ok=(200, 204))

    # App Store Connect

    def get_session_username(self) -> Optional[str]:
        response = self.session.get(f"{ASC_URL}/olympus/v1/session")
        data = self._check(response, "Failed to fetch session").json()
        return (data.get("user") or {}).get("emailAddress")

    def get_user(self, username: str) -> User:
        response = self.session.get(
            f"{ASC_URL}/iris/v1/users", params={"filter[username]": username}
        )
        users = self._check(response, "Failed to fetch user").json().get("data", [])
        if not users:
            raise AppleAPIError(f'No App Store Connect user found for "{username}"')
        attrs = users[0]["attributes"]
        return User(
            id=users[0]["id"],
            username=attrs.get("username", username),
            provisioning_allowed=bool(attrs.get("provisioningAllowed")),
        )

    def _to_app(self, app: dict) -> App:
        attrs = app["attributes"]
        return App(
            id=app["id"],
            name=attrs.get("name", ""),
            bundle_id=attrs.get("bundleId", ""),
            sku=attrs.get("sku"),
            primary_locale=attrs.get("primaryLocale"),
        )

    def find_app(self, bundle_identifier: str) -> Optional[App]:
        response = self.session.get(
            f"{ASC_URL}/iris/v1/apps", params={"filter[bundleId]": bundle_identifier}
        )
        apps = self._check(response, "Failed to fetch apps").json().get("data", [])
        for app in apps:
            if app["attributes"].get("bundleId") == bundle_identifier:
                return self._to_app(app)
        return None

    def create_app(
        self,
        bundle_identifier: str,
        name: str,
        primary_locale: str,
        sku: str,
        company_name: Optional[str] = None,
    ) -> App:
        console.print(f"[blue]Creating App Store Connect app {name}...")
        attributes = {
            "bundleId": bundle_identifier,
            "name": name,
            "primaryLocale": primary_locale,
            "sku": sku,
        }
        if company_name:
            attributes["companyName"] = company_name
        response = self.session.post(
            f"{ASC_URL}/iris/v1/apps",
            json={"data": {"type": "apps", "attributes": attributes}},
            headers={"Content-Type": "application/json", "X-Requested-With": "XMLHttpRequest"},
        )
        self._check(response, "Failed to create app", ok=(200, 201))
        return self._to_app(response.json()["data"])
