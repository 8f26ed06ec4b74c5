from unittest.mock import MagicMock

import pytest

from storeship.src.apple.developer_portal_api import Certificate, Profile
from storeship.src.credentials import provisioning_profile
from storeship.src.credentials.credentials_types import (
    DistributionCertificate,
    ProvisioningProfile,
    ProvisioningProfileStoreInfo,
)
from storeship.src.credentials.fastlane import FastlaneError
from storeship.src.credentials.provisioning_profile import (
    FastlaneProfileBackend,
    FastlaneProfileType,
    PortalProfileBackend,
    ProfileClass,
    ProfileType,
    ProvisioningProfileError,
    ProvisioningProfileManager,
    create_profile_backend,
    resolve_fastlane_profile_type,
    resolve_profile_type,
    resolve_profile_types,
)


def make_profile(profile_id, profile_type, content="UFJPRklMRQ==", name=None):
    return Profile(
        id=profile_id,
        name=name or f"profile {profile_id}",
        profile_state="ACTIVE",
        profile_type=profile_type,
        platform="IOS",
        expiration_date="2030-01-01T00:00:00.000+0000",
        profile_content=content,
        bundle_id_id="BUNDLE1",
        certificate_ids=["OLDCERT"],
        device_ids=[],
    )


class ActionRecorder:
    """Stands in for run_action, recording arguments and returning ``result``."""

    def __init__(self):
        self.calls = []
        self.result = {}

    def __call__(self, action, args):
        self.calls.append((action, args))
        return self.result


@pytest.fixture
def dist_cert():
    return DistributionCertificate(
        cert_p12="not-a-real-p12",
        cert_password="secret",
        dist_cert_serial_number="ABC123",
    )


@pytest.fixture
def api():
    api = MagicMock()
    api.get_certificate_by_serial_number.return_value = Certificate(
        id="CERT1",
        serial_number="ABC123",
        name="iOS Distribution",
        certificate_type="IOS_DISTRIBUTION",
    )
    api.get_profile_certificates.return_value = [
        Certificate(
            id="CERT1",
            serial_number="ABC123",
            name="iOS Distribution",
            certificate_type="IOS_DISTRIBUTION",
            expiration_date="2030-01-01T00:00:00.000+0000",
        )
    ]
    return api


class TestProfileTypeResolution:
    @pytest.mark.parametrize(
        "profile_class, in_house, portal, fastlane",
        [
            (ProfileClass.ADHOC, False, ProfileType.IOS_APP_ADHOC, FastlaneProfileType.APP_STORE_ADHOC),
            (ProfileClass.ADHOC, True, ProfileType.IOS_APP_ADHOC, FastlaneProfileType.IN_HOUSE_ADHOC),
            (ProfileClass.GENERAL, False, ProfileType.IOS_APP_STORE, FastlaneProfileType.APP_STORE_DIST),
            (ProfileClass.GENERAL, True, ProfileType.IOS_APP_INHOUSE, FastlaneProfileType.IN_HOUSE_DIST),
        ],
    )
    def test_mapping(self, profile_class, in_house, portal, fastlane):
        assert resolve_profile_type(profile_class, in_house) is portal
        assert resolve_fastlane_profile_type(profile_class, in_house) is fastlane
        assert resolve_profile_types(profile_class, in_house) == (portal, fastlane)

    def test_every_combination_gives_a_distinct_fastlane_token(self):
        tokens = {
            resolve_fastlane_profile_type(profile_class, in_house)
            for profile_class in ProfileClass
            for in_house in (True, False)
        }
        assert tokens == set(FastlaneProfileType)

    def test_adhoc_in_house_scenario(self):
        assert resolve_fastlane_profile_type(ProfileClass.ADHOC, True).value == "in_house_adhoc"
        assert resolve_profile_type(ProfileClass.ADHOC, True).value == "IOS_APP_ADHOC"

    def test_general_app_store_scenario(self):
        assert resolve_fastlane_profile_type(ProfileClass.GENERAL, False).value == "app_store_dist"
        assert resolve_profile_type(ProfileClass.GENERAL, False).value == "IOS_APP_STORE"

    def test_missing_in_house_flag_means_app_store(self):
        assert resolve_profile_type("general", None) is ProfileType.IOS_APP_STORE

    def test_is_deterministic(self):
        first = resolve_profile_types(ProfileClass.ADHOC, True)
        for _ in range(3):
            assert resolve_profile_types(ProfileClass.ADHOC, True) == first


class TestProvisioningProfileManager:
    def test_use_existing_without_profile_id_fails_before_any_call(self, auth_ctx):
        backend = MagicMock()
        manager = ProvisioningProfileManager(auth_ctx, backend)
        cert = DistributionCertificate(cert_p12="", cert_password="")

        with pytest.raises(ProvisioningProfileError, match="insufficient id"):
            manager.use_existing_provisioning_profile(
                "com.example.app", ProvisioningProfile(provisioning_profile_id=""), cert
            )
        backend.use_existing.assert_not_called()

    def test_use_existing_overrides_team(self, auth_ctx, dist_cert):
        backend = MagicMock()
        backend.use_existing.return_value = ProvisioningProfile(
            provisioning_profile_id="P1",
            provisioning_profile="content",
            team_id="SOMEONE_ELSE",
            team_name="Other team",
        )
        manager = ProvisioningProfileManager(auth_ctx, backend)

        result = manager.use_existing_provisioning_profile(
            "com.example.app", ProvisioningProfile(provisioning_profile_id="P1"), dist_cert
        )

        backend.use_existing.assert_called_once_with(
            "com.example.app", "P1", "ABC123", ProfileClass.GENERAL
        )
        assert result.team_id == "TEAM123"
        assert result.team_name == "Example Inc"
        assert result.provisioning_profile == "content"

    def test_list_overrides_team_on_every_profile(self, auth_ctx):
        backend = MagicMock()
        backend.list_profiles.return_value = [
            ProvisioningProfileStoreInfo(provisioning_profile_id="P1", team_id="X"),
            ProvisioningProfileStoreInfo(provisioning_profile_id="P2"),
        ]
        manager = ProvisioningProfileManager(auth_ctx, backend)

        profiles = manager.list_provisioning_profiles("com.example.app", ProfileClass.ADHOC)

        backend.list_profiles.assert_called_once_with("com.example.app", ProfileClass.ADHOC)
        assert [p.team_id for p in profiles] == ["TEAM123", "TEAM123"]
        assert all(isinstance(p, ProvisioningProfileStoreInfo) for p in profiles)

    def test_create_passes_resolved_serial_number(self, auth_ctx, dist_cert):
        backend = MagicMock()
        backend.create.return_value = ProvisioningProfile(provisioning_profile_id="NEW")
        manager = ProvisioningProfileManager(auth_ctx, backend)

        result = manager.create_provisioning_profile("com.example.app", dist_cert, "My Profile")

        backend.create.assert_called_once_with(
            "com.example.app", "ABC123", "My Profile", ProfileClass.GENERAL
        )
        assert result.team_id == "TEAM123"

    def test_errors_propagate_unchanged(self, auth_ctx):
        backend = MagicMock()
        error = RuntimeError("boom")
        backend.revoke.side_effect = error
        manager = ProvisioningProfileManager(auth_ctx, backend)

        with pytest.raises(RuntimeError) as excinfo:
            manager.revoke_provisioning_profile("com.example.app")
        assert excinfo.value is error


class TestPortalProfileBackend:
    def test_use_existing_regenerates_with_resolved_certificate(self, auth_ctx, api):
        existing = make_profile("P1", "IOS_APP_STORE")
        api.get_profiles_for_bundle_identifier.return_value = [
            make_profile("P0", "IOS_APP_STORE"),
            existing,
        ]
        api.regenerate_profile.return_value = make_profile("P1-NEW", "IOS_APP_STORE", content="TkVX")
        backend = PortalProfileBackend(auth_ctx, api)

        result = backend.use_existing("com.example.app", "P1", "ABC123", ProfileClass.GENERAL)

        api.get_certificate_by_serial_number.assert_called_once_with("TEAM123", "ABC123")
        api.regenerate_profile.assert_called_once_with("TEAM123", existing, ["CERT1"])
        assert result.provisioning_profile_id == "P1-NEW"
        assert result.provisioning_profile == "TkVX"

    def test_use_existing_unknown_profile_makes_no_mutating_call(self, auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [make_profile("P0", "IOS_APP_STORE")]
        backend = PortalProfileBackend(auth_ctx, api)

        with pytest.raises(ProvisioningProfileError, match='profile id "MISSING"'):
            backend.use_existing("com.example.app", "MISSING", "ABC123", ProfileClass.GENERAL)

        api.regenerate_profile.assert_not_called()
        api.delete_profile.assert_not_called()
        api.create_profile.assert_not_called()

    def test_use_existing_fails_when_regenerated_profile_has_no_content(self, auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [make_profile("P1", "IOS_APP_STORE")]
        api.regenerate_profile.return_value = make_profile(
            "P1-NEW", "IOS_APP_STORE", content=None, name="Broken"
        )
        backend = PortalProfileBackend(auth_ctx, api)

        with pytest.raises(ProvisioningProfileError, match=r'"Broken" \(P1-NEW\) is expired!'):
            backend.use_existing("com.example.app", "P1", "ABC123", ProfileClass.GENERAL)

    def test_list_keeps_only_the_resolved_profile_type(self, auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [
            make_profile("STORE", "IOS_APP_STORE"),
            make_profile("ADHOC", "IOS_APP_ADHOC"),
            make_profile("INHOUSE", "IOS_APP_INHOUSE"),
            make_profile("DEV", "IOS_APP_DEVELOPMENT"),
        ]
        backend = PortalProfileBackend(auth_ctx, api)

        profiles = backend.list_profiles("com.example.app", ProfileClass.GENERAL)

        assert [p.provisioning_profile_id for p in profiles] == ["STORE"]
        profile = profiles[0]
        assert profile.distribution_method == "IOS_APP_STORE"
        assert profile.status == "ACTIVE"
        assert profile.expires == pytest.approx(1893456000)
        assert [c.serial_number for c in profile.certificates] == ["ABC123"]
        assert profile.team_id == "TEAM123"

    def test_list_for_in_house_team(self, in_house_auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [
            make_profile("STORE", "IOS_APP_STORE"),
            make_profile("INHOUSE", "IOS_APP_INHOUSE"),
        ]
        backend = PortalProfileBackend(in_house_auth_ctx, api)

        profiles = backend.list_profiles("com.example.app", ProfileClass.GENERAL)

        assert [p.provisioning_profile_id for p in profiles] == ["INHOUSE"]

    def test_list_fails_when_a_certificate_fetch_fails(self, auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [
            make_profile("A", "IOS_APP_STORE"),
            make_profile("B", "IOS_APP_STORE"),
        ]
        api.get_profile_certificates.side_effect = RuntimeError("network down")
        backend = PortalProfileBackend(auth_ctx, api)

        with pytest.raises(RuntimeError, match="network down"):
            backend.list_profiles("com.example.app", ProfileClass.GENERAL)

    def test_create_uses_empty_device_list(self, auth_ctx, api):
        api.get_bundle_id_for_identifier.return_value = MagicMock(id="BUNDLE1")
        api.create_profile.return_value = make_profile("NEW", "IOS_APP_ADHOC")
        backend = PortalProfileBackend(auth_ctx, api)

        result = backend.create("com.example.app", "ABC123", "Ad Hoc", ProfileClass.ADHOC)

        api.create_profile.assert_called_once_with(
            "TEAM123",
            "BUNDLE1",
            "Ad Hoc",
            certificate_ids=["CERT1"],
            device_ids=[],
            profile_type="IOS_APP_ADHOC",
        )
        assert result.provisioning_profile_id == "NEW"

    def test_revoke_deletes_every_matching_profile(self, auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [
            make_profile("A", "IOS_APP_ADHOC"),
            make_profile("B", "IOS_APP_STORE"),
            make_profile("C", "IOS_APP_ADHOC"),
        ]
        backend = PortalProfileBackend(auth_ctx, api)

        backend.revoke("com.example.app", ProfileClass.ADHOC)

        deleted = {call.args for call in api.delete_profile.call_args_list}
        assert deleted == {("TEAM123", "A"), ("TEAM123", "C")}

    def test_revoke_fails_when_one_delete_fails(self, auth_ctx, api):
        api.get_profiles_for_bundle_identifier.return_value = [
            make_profile("A", "IOS_APP_STORE"),
            make_profile("B", "IOS_APP_STORE"),
        ]

        def delete(team_id, profile_id):
            if profile_id == "B":
                raise RuntimeError("cannot delete B")

        api.delete_profile.side_effect = delete
        backend = PortalProfileBackend(auth_ctx, api)

        with pytest.raises(RuntimeError, match="cannot delete B"):
            backend.revoke("com.example.app", ProfileClass.GENERAL)


class TestFastlaneProfileBackend:
    @pytest.fixture
    def fastlane(self, monkeypatch):
        recorder = ActionRecorder()
        monkeypatch.setattr(provisioning_profile, "run_action", recorder)
        return recorder

    def test_use_existing_arguments(self, in_house_auth_ctx, fastlane):
        fastlane.result = {"provisioningProfileId": "P1", "provisioningProfile": "abc"}
        backend = FastlaneProfileBackend(in_house_auth_ctx)

        result = backend.use_existing("com.example.app", "P1", "ABC123", ProfileClass.ADHOC)

        assert fastlane.calls == [
            (
                "manage_provisioning_profiles",
                [
                    "use-existing",
                    "dev@example.com",
                    "hunter2",
                    "ENT456",
                    "in_house_adhoc",
                    "com.example.app",
                    "P1",
                    "ABC123",
                ],
            )
        ]
        assert result.provisioning_profile == "abc"

    def test_create_arguments(self, auth_ctx, fastlane):
        fastlane.result = {"provisioningProfileId": "NEW"}
        backend = FastlaneProfileBackend(auth_ctx)

        backend.create("com.example.app", "ABC123", "My Profile", ProfileClass.GENERAL)

        assert fastlane.calls[0][1][0] == "create"
        assert fastlane.calls[0][1][4] == "app_store_dist"
        assert fastlane.calls[0][1][-2:] == ["ABC123", "My Profile"]

    def test_list_maps_profiles(self, auth_ctx, fastlane):
        fastlane.result = {
            "profiles": [
                {
                    "provisioningProfileId": "P1",
                    "name": "Store",
                    "status": "Active",
                    "expires": 1893456000,
                    "distributionMethod": "store",
                    "certificates": [{"id": "C1", "serialNumber": "ABC123"}],
                    "teamId": "WRONG",
                }
            ]
        }
        backend = FastlaneProfileBackend(auth_ctx)

        profiles = backend.list_profiles("com.example.app", ProfileClass.GENERAL)

        assert fastlane.calls[0][1] == [
            "list",
            "dev@example.com",
            "hunter2",
            "TEAM123",
            "app_store_dist",
            "com.example.app",
        ]
        assert profiles[0].name == "Store"
        assert profiles[0].certificates[0].serial_number == "ABC123"

    def test_revoke_is_a_single_call(self, auth_ctx, fastlane):
        FastlaneProfileBackend(auth_ctx).revoke("com.example.app", ProfileClass.ADHOC)

        assert len(fastlane.calls) == 1
        assert fastlane.calls[0][1][0] == "revoke"
        assert fastlane.calls[0][1][4] == "app_store_adhoc"

    @pytest.mark.parametrize("verb", ["use_existing", "create"])
    def test_missing_profile_id_is_reported(self, auth_ctx, fastlane, verb):
        fastlane.result = {"provisioningProfile": "abc"}
        backend = FastlaneProfileBackend(auth_ctx)
        call = {
            "use_existing": lambda: backend.use_existing(
                "com.example.app", "P1", "ABC123", ProfileClass.GENERAL
            ),
            "create": lambda: backend.create(
                "com.example.app", "ABC123", "My Profile", ProfileClass.GENERAL
            ),
        }[verb]

        with pytest.raises(FastlaneError, match="provisioningProfileId"):
            call()

    def test_list_entry_without_id_is_reported(self, auth_ctx, fastlane):
        fastlane.result = {"profiles": [{"name": "Store"}]}

        with pytest.raises(FastlaneError, match="got keys: name"):
            FastlaneProfileBackend(auth_ctx).list_profiles("com.example.app", ProfileClass.GENERAL)

    def test_list_through_manager_reports_current_team(self, auth_ctx, fastlane):
        fastlane.result = {"profiles": [{"provisioningProfileId": "P1"}]}
        manager = ProvisioningProfileManager(auth_ctx, FastlaneProfileBackend(auth_ctx))

        profiles = manager.list_provisioning_profiles("com.example.app")

        assert profiles[0].team_id == "TEAM123"
        assert profiles[0].team_name == "Example Inc"


class TestCreateProfileBackend:
    def test_portal_backend(self, auth_ctx):
        backend = create_profile_backend(auth_ctx, portal=True)
        assert isinstance(backend, PortalProfileBackend)
        assert backend.api.csrf == "csrf-token"

    def test_fastlane_backend(self, auth_ctx):
        assert isinstance(create_profile_backend(auth_ctx, portal=False), FastlaneProfileBackend)

    def test_fastlane_backend_needs_password(self, auth_ctx):
        from dataclasses import replace

        without_password = replace(auth_ctx, apple_id_password=None)
        with pytest.raises(ProvisioningProfileError, match="password"):
            create_profile_backend(without_password, portal=False)

    def test_backend_from_config(self, auth_ctx, monkeypatch):
        monkeypatch.setenv("STORESHIP_PROVISIONING_BACKEND", "fastlane")
        assert isinstance(create_profile_backend(auth_ctx), FastlaneProfileBackend)
