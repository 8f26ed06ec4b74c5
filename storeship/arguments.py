import base64
from pathlib import Path
from storeship.src.credentials.credentials_types import DistributionCertificate
from storeship.src.credentials.provisioning_profile import ProfileClass


def add_auth_arguments(parser):
    """Add Apple account selection arguments."""
    parser.add_argument(
        "--apple-id",
        type=str,
        help="Apple ID to sign in with [default: from config]",
    )
    parser.add_argument(
        "--team-id",
        type=str,
        help="Apple Developer team to use [default: from config, or prompt]",
    )


def add_profile_arguments(parser):
    """Add the bundle identifier and profile class arguments."""
    parser.add_argument(
        "--bundle-id",
        required=True,
        help="Bundle identifier the profiles belong to",
    )
    parser.add_argument(
        "--adhoc",
        action="store_true",
        help="Work with ad hoc profiles instead of App Store / in-house ones [default: disabled]",
    )


def add_certificate_arguments(parser):
    """Add distribution certificate arguments."""
    parser.add_argument(
        "--certificate-dir",
        type=Path,
        required=True,
        help="Directory with cert.p12 and cert_pass.txt",
    )
    parser.add_argument(
        "--serial-number",
        type=str,
        help="Certificate serial number [default: read from cert.p12]",
    )


def get_profile_class(args) -> ProfileClass:
    return ProfileClass.ADHOC if args.adhoc else ProfileClass.GENERAL


def load_distribution_certificate(args) -> DistributionCertificate:
    """Read cert.p12 and its password from the certificate directory."""
    cert_file = args.certificate_dir / "cert.p12"
    pass_file = args.certificate_dir / "cert_pass.txt"

    if not cert_file.exists() or not pass_file.exists():
        raise FileNotFoundError(
            f"Certificate files not found in {args.certificate_dir} (expected cert.p12 and cert_pass.txt)"
        )

    return DistributionCertificate(
        cert_p12=base64.b64encode(cert_file.read_bytes()).decode("utf-8"),
        cert_password=pass_file.read_text().strip(),
        dist_cert_serial_number=args.serial_number,
    )
