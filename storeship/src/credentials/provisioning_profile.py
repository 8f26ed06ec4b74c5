"""Provisioning profile management on Apple's servers.

Two backends implement the same four operations: the Developer Portal API
and the traveling fastlane ``manage_provisioning_profiles`` action. One of
them is picked once per command by :func:`create_profile_backend` and handed
to :class:`ProvisioningProfileManager`.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from typing import List, NamedTuple, Optional

from storeship.src.apple.developer_portal_api import (
    Certificate,
    DeveloperPortalAPI,
    Profile,
    parse_apple_date,
)
from storeship.src.credentials.credentials_types import (
    AppleCertificate,
    AuthContext,
    DistributionCertificate,
    ProvisioningProfile,
    ProvisioningProfileStoreInfo,
)
from storeship.src.credentials.fastlane import (
    MANAGE_PROVISIONING_PROFILES,
    FastlaneError,
    run_action,
)
from storeship.src.utils.config_loader import use_portal_api
from storeship.src.utils.progress import spinner

MAX_WORKERS = 8


class ProvisioningProfileError(Exception):
    pass


class ProfileClass(str, Enum):
    ADHOC = "ad_hoc"
    GENERAL = "general"


class ProfileType(str, Enum):
    IOS_APP_DEVELOPMENT = "IOS_APP_DEVELOPMENT"
    IOS_APP_ADHOC = "IOS_APP_ADHOC"
    IOS_APP_STORE = "IOS_APP_STORE"
    IOS_APP_INHOUSE = "IOS_APP_INHOUSE"


class FastlaneProfileType(str, Enum):
    APP_STORE_ADHOC = "app_store_adhoc"
    APP_STORE_DIST = "app_store_dist"
    IN_HOUSE_ADHOC = "in_house_adhoc"
    IN_HOUSE_DIST = "in_house_dist"


class ResolvedProfileType(NamedTuple):
    portal: ProfileType
    fastlane: FastlaneProfileType


_PROFILE_TYPES = {
    (ProfileClass.ADHOC, False): ResolvedProfileType(
        ProfileType.IOS_APP_ADHOC, FastlaneProfileType.APP_STORE_ADHOC
    ),
    (ProfileClass.ADHOC, True): ResolvedProfileType(
        ProfileType.IOS_APP_ADHOC, FastlaneProfileType.IN_HOUSE_ADHOC
    ),
    (ProfileClass.GENERAL, False): ResolvedProfileType(
        ProfileType.IOS_APP_STORE, FastlaneProfileType.APP_STORE_DIST
    ),
    (ProfileClass.GENERAL, True): ResolvedProfileType(
        ProfileType.IOS_APP_INHOUSE, FastlaneProfileType.IN_HOUSE_DIST
    ),
}


def resolve_profile_types(
    profile_class: ProfileClass, in_house: Optional[bool] = False
) -> ResolvedProfileType:
    return _PROFILE_TYPES[(ProfileClass(profile_class), bool(in_house))]


def resolve_profile_type(
    profile_class: ProfileClass, in_house: Optional[bool] = False
) -> ProfileType:
    return resolve_profile_types(profile_class, in_house).portal


def resolve_fastlane_profile_type(
    profile_class: ProfileClass, in_house: Optional[bool] = False
) -> FastlaneProfileType:
    return resolve_profile_types(profile_class, in_house).fastlane


def transform_certificate(cert: Certificate) -> AppleCertificate:
    return AppleCertificate(
        id=cert.id,
        serial_number=cert.serial_number,
        name=cert.name,
        certificate_type=cert.certificate_type,
        expires=parse_apple_date(cert.expiration_date),
    )


class ProvisioningProfileBackend(ABC):
    """Talks to Apple on behalf of one authenticated team."""

    def __init__(self, auth_ctx: AuthContext):
        self.auth_ctx = auth_ctx

    @abstractmethod
    def use_existing(
        self,
        bundle_identifier: str,
        profile_id: str,
        serial_number: str,
        profile_class: ProfileClass,
    ) -> ProvisioningProfile: ...

    @abstractmethod
    def list_profiles(
        self, bundle_identifier: str, profile_class: ProfileClass
    ) -> List[ProvisioningProfileStoreInfo]: ...

    @abstractmethod
    def create(
        self,
        bundle_identifier: str,
        serial_number: str,
        profile_name: str,
        profile_class: ProfileClass,
    ) -> ProvisioningProfile: ...

    @abstractmethod
    def revoke(self, bundle_identifier: str, profile_class: ProfileClass) -> None: ...


class PortalProfileBackend(ProvisioningProfileBackend):
    def __init__(self, auth_ctx: AuthContext, api: DeveloperPortalAPI):
        super().__init__(auth_ctx)
        self.api = api

    @property
    def team_id(self) -> str:
        return self.auth_ctx.team.id

    def _profile_type(self, profile_class: ProfileClass) -> ProfileType:
        return resolve_profile_type(profile_class, self.auth_ctx.team.in_house)

    def _transform_profile(self, profile: Profile) -> ProvisioningProfileStoreInfo:
        certificates = self.api.get_profile_certificates(self.team_id, profile.id)
        return ProvisioningProfileStoreInfo(
            provisioning_profile_id=profile.id,
            provisioning_profile=profile.profile_content,
            team_id=self.auth_ctx.team.id,
            team_name=self.auth_ctx.team.name,
            name=profile.name,
            status=profile.profile_state,
            expires=parse_apple_date(profile.expiration_date),
            distribution_method=profile.profile_type,
            certificates=[transform_certificate(cert) for cert in certificates],
        )

    def use_existing(self, bundle_identifier, profile_id, serial_number, profile_class):
        certificate = self.api.get_certificate_by_serial_number(
            self.team_id, serial_number
        )
        profiles = self.api.get_profiles_for_bundle_identifier(
            self.team_id, bundle_identifier
        )
        profile = next((p for p in profiles if p.id == profile_id), None)
        if not profile:
            raise ProvisioningProfileError(
                f'Failed to find profile for bundle identifier "{bundle_identifier}" with profile id "{profile_id}"'
            )

        regenerated = self.api.regenerate_profile(
            self.team_id, profile, [certificate.id]
        )
        if not regenerated.profile_content:
            # A freshly regenerated profile always has content
            raise ProvisioningProfileError(
                f'Provisioning profile "{regenerated.name}" ({regenerated.id}) is expired!'
            )
        return ProvisioningProfile(
            provisioning_profile_id=regenerated.id,
            provisioning_profile=regenerated.profile_content,
        )

    def list_profiles(self, bundle_identifier, profile_class):
        profile_type = self._profile_type(profile_class)
        profiles = [
            profile
            for profile in self.api.get_profiles_for_bundle_identifier(
                self.team_id, bundle_identifier
            )
            if profile.profile_type == profile_type.value
        ]
        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as executor:
            return list(executor.map(self._transform_profile, profiles))

    def create(self, bundle_identifier, serial_number, profile_name, profile_class):
        certificate = self.api.get_certificate_by_serial_number(
            self.team_id, serial_number
        )
        bundle_id = self.api.get_bundle_id_for_identifier(
            self.team_id, bundle_identifier
        )
        profile = self.api.create_profile(
            self.team_id,
            bundle_id.id,
            profile_name,
            certificate_ids=[certificate.id],
            device_ids=[],
            profile_type=self._profile_type(profile_class).value,
        )
        return self._transform_profile(profile)

    def revoke(self, bundle_identifier, profile_class):
        profile_type = self._profile_type(profile_class)
        profiles = self.api.get_profiles_for_bundle_identifier(
            self.team_id, bundle_identifier
        )
        profile_ids = [p.id for p in profiles if p.profile_type == profile_type.value]
        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as executor:
            # Consume the iterator so a failed delete is raised here
            list(
                executor.map(
                    lambda profile_id: self.api.delete_profile(self.team_id, profile_id),
                    profile_ids,
                )
            )


def _profile_id(result: dict) -> str:
    profile_id = result.get("provisioningProfileId")
    if not profile_id:
        raise FastlaneError(
            f"Fastlane action returned no provisioningProfileId (got keys: {', '.join(sorted(result)) or 'none'})"
        )
    return profile_id


class FastlaneProfileBackend(ProvisioningProfileBackend):
    def _base_args(
        self, verb: str, bundle_identifier: str, profile_class: ProfileClass
    ) -> List[str]:
        team = self.auth_ctx.team
        return [
            verb,
            self.auth_ctx.apple_id,
            self.auth_ctx.apple_id_password or "",
            team.id,
            resolve_fastlane_profile_type(profile_class, team.in_house).value,
            bundle_identifier,
        ]

    def _run(self, args: List[str]) -> dict:
        return run_action(MANAGE_PROVISIONING_PROFILES, args)

    def use_existing(self, bundle_identifier, profile_id, serial_number, profile_class):
        result = self._run(
            self._base_args("use-existing", bundle_identifier, profile_class)
            + [profile_id, serial_number]
        )
        return ProvisioningProfile(
            provisioning_profile_id=_profile_id(result),
            provisioning_profile=result.get("provisioningProfile"),
        )

    def list_profiles(self, bundle_identifier, profile_class):
        # Filtering by profile type happens inside the fastlane action
        result = self._run(self._base_args("list", bundle_identifier, profile_class))
        return [
            ProvisioningProfileStoreInfo(
                provisioning_profile_id=_profile_id(profile),
                provisioning_profile=profile.get("provisioningProfile"),
                name=profile.get("name"),
                status=profile.get("status"),
                expires=profile.get("expires"),
                distribution_method=profile.get("distributionMethod"),
                certificates=[
                    AppleCertificate(
                        id=cert.get("id", ""),
                        serial_number=cert.get("serialNumber", ""),
                        name=cert.get("name", ""),
                        certificate_type=cert.get("certificateType", ""),
                        expires=cert.get("expires"),
                    )
                    for cert in profile.get("certificates", [])
                ],
            )
            for profile in result.get("profiles", [])
        ]

    def create(self, bundle_identifier, serial_number, profile_name, profile_class):
        result = self._run(
            self._base_args("create", bundle_identifier, profile_class)
            + [serial_number, profile_name]
        )
        return ProvisioningProfile(
            provisioning_profile_id=_profile_id(result),
            provisioning_profile=result.get("provisioningProfile"),
        )

    def revoke(self, bundle_identifier, profile_class):
        self._run(self._base_args("revoke", bundle_identifier, profile_class))


def create_profile_backend(
    auth_ctx: AuthContext, portal: Optional[bool] = None
) -> ProvisioningProfileBackend:
    """Pick the backend for this invocation, from config unless ``portal`` is given."""
    if portal is None:
        portal = use_portal_api()
    if portal:
        return PortalProfileBackend(auth_ctx, DeveloperPortalAPI(auth_ctx.session))
    if not auth_ctx.apple_id_password:
        raise ProvisioningProfileError(
            "The fastlane backend needs an Apple ID password, set STORESHIP_APPLE_PASSWORD or apple_password in your config"
        )
    return FastlaneProfileBackend(auth_ctx)


class ProvisioningProfileManager:
    """Provisioning profile operations with progress output.

    Every returned profile is attributed to the authenticated team, whatever
    the backend reported.
    """

    def __init__(self, auth_ctx: AuthContext, backend: ProvisioningProfileBackend):
        self.auth_ctx = auth_ctx
        self.backend = backend

    def _with_team(self, profile: ProvisioningProfile) -> ProvisioningProfile:
        return replace(
            profile,
            team_id=self.auth_ctx.team.id,
            team_name=self.auth_ctx.team.name,
        )

    def use_existing_provisioning_profile(
        self,
        bundle_identifier: str,
        provisioning_profile: ProvisioningProfile,
        dist_cert: DistributionCertificate,
        profile_class: ProfileClass = ProfileClass.GENERAL,
    ) -> ProvisioningProfile:
        with spinner("Configuring existing Provisioning Profiles from Apple..."):
            if not provisioning_profile.provisioning_profile_id:
                raise ProvisioningProfileError(
                    "Provisioning profile: cannot use existing profile, insufficient id"
                )
            result = self.backend.use_existing(
                bundle_identifier,
                provisioning_profile.provisioning_profile_id,
                dist_cert.serial_number,
                profile_class,
            )
            return self._with_team(result)

    def list_provisioning_profiles(
        self,
        bundle_identifier: str,
        profile_class: ProfileClass = ProfileClass.GENERAL,
    ) -> List[ProvisioningProfileStoreInfo]:
        with spinner("Getting Provisioning Profiles from Apple..."):
            profiles = self.backend.list_profiles(bundle_identifier, profile_class)
            return [self._with_team(profile) for profile in profiles]

    def create_provisioning_profile(
        self,
        bundle_identifier: str,
        dist_cert: DistributionCertificate,
        profile_name: str,
        profile_class: ProfileClass = ProfileClass.GENERAL,
    ) -> ProvisioningProfile:
        with spinner(
            "Creating Provisioning Profile on Apple Servers...",
            fail_message="Failed to create Provisioning Profile on Apple Servers",
        ):
            result = self.backend.create(
                bundle_identifier, dist_cert.serial_number, profile_name, profile_class
            )
            return self._with_team(result)

    def revoke_provisioning_profile(
        self,
        bundle_identifier: str,
        profile_class: ProfileClass = ProfileClass.GENERAL,
    ) -> None:
        with spinner(
            "Revoking Provisioning Profile on Apple Servers...",
            fail_message="Failed to revoke Provisioning Profile on Apple Servers",
        ):
            self.backend.revoke(bundle_identifier, profile_class)
