import base64
import binascii
import os
import subprocess
import tempfile
from pathlib import Path


class P12CertificateError(Exception):
    pass


def _export_leaf_certificate(p12_path: str, password: str) -> str:
    """Return the PEM of the certificate inside a .p12 file.

    OpenSSL 3 refuses the RC2 encryption older keychains use unless the
    legacy provider is enabled, so a failed attempt is retried with -legacy.
    """
    env = {**os.environ, "STORESHIP_P12_PASSWORD": password}
    base_cmd = [
        "openssl",
        "pkcs12",
        "-in",
        p12_path,
        "-clcerts",
        "-nokeys",
        "-passin",
        "env:STORESHIP_P12_PASSWORD",
    ]

    result = subprocess.run(base_cmd, capture_output=True, text=True, env=env)
    if result.returncode != 0:
        result = subprocess.run(
            [*base_cmd, "-legacy"], capture_output=True, text=True, env=env
        )
    if result.returncode != 0:
        raise P12CertificateError(
            f"Failed to read certificate from .p12 file (wrong password?): {result.stderr.strip()}"
        )
    return result.stdout


def find_p12_cert_serial_number(p12_base64: str, password: str) -> str:
    """Serial number of the certificate in a base64 encoded .p12, as uppercase hex."""
    try:
        p12_data = base64.b64decode(p12_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise P12CertificateError(f"Certificate is not valid base64: {e}")

    with tempfile.TemporaryDirectory() as temp_dir:
        p12_path = Path(temp_dir) / "cert.p12"
        p12_path.write_bytes(p12_data)
        pem = _export_leaf_certificate(str(p12_path), password or "")

        pem_path = Path(temp_dir) / "cert.pem"
        pem_path.write_text(pem)
        result = subprocess.run(
            ["openssl", "x509", "-noout", "-serial", "-in", str(pem_path)],
            capture_output=True,
            text=True,
        )

    if result.returncode != 0 or "=" not in result.stdout:
        raise P12CertificateError(
            f"Failed to read certificate serial number: {result.stderr.strip()}"
        )
    return result.stdout.strip().split("=", 1)[1].upper()
