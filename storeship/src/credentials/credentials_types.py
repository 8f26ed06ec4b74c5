from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, List, Optional

from storeship.src.credentials.p12_certificate import find_p12_cert_serial_number


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    in_house: bool = False


@dataclass(frozen=True)
class AuthContext:
    """Authenticated Apple account and the team commands act on."""

    apple_id: str
    team: Team
    apple_id_password: Optional[str] = None  # only needed by fastlane
    session: Any = None


@dataclass
class DistributionCertificate:
    cert_p12: str  # base64 encoded .p12
    cert_password: str
    dist_cert_serial_number: Optional[str] = None

    @cached_property
    def serial_number(self) -> str:
        """The certificate serial number, read from the .p12 on first access."""
        if self.dist_cert_serial_number:
            return self.dist_cert_serial_number
        return find_p12_cert_serial_number(self.cert_p12, self.cert_password)


@dataclass
class AppleCertificate:
    """A certificate as reported by the Developer Portal."""

    id: str
    serial_number: str
    name: str
    certificate_type: str
    expires: Optional[float] = None  # epoch seconds


@dataclass
class ProvisioningProfile:
    provisioning_profile_id: str
    # None when the profile on Apple's side has expired
    provisioning_profile: Optional[str] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None


@dataclass
class ProvisioningProfileStoreInfo(ProvisioningProfile):
    name: Optional[str] = None
    status: Optional[str] = None
    expires: Optional[float] = None
    distribution_method: Optional[str] = None
    certificates: List[AppleCertificate] = field(default_factory=list)
