import base64
import hashlib
import json
import os
import re
import srp
import requests
import http.cookiejar as cookielib
from pathlib import Path
from typing import Optional
from storeship.logger import get_console
from storeship.src.utils.config_loader import get_session_dir

console = get_console()

AUTH_ENDPOINT = "https://idmsa.apple.com/appleauth/auth"
WIDGET_KEY_URL = "https://appstoreconnect.apple.com/olympus/v1/app/config?hostname=itunesconnect.apple.com"
CSRF_PATTERNS = {
    "csrf": r'csrf["\']\s*:\s*["\']([^"\']+)["\']',
    "csrf_ts": r'csrf_ts["\']\s*:\s*["\']([^"\']+)["\']',
}


class AuthenticationError(Exception):
    pass


class SrpPassword:
    """Password wrapper that lets srp derive the key the way Apple's s2k protocol expects."""

    def __init__(self, password: str):
        self.password = password
        self.salt = b""
        self.iterations = 0
        self.key_length = 32

    def set_encrypt_info(self, salt: bytes, iterations: int, key_length: int = 32):
        self.salt = salt
        self.iterations = iterations
        self.key_length = key_length

    def encode(self):
        password_hash = hashlib.sha256(self.password.encode("utf-8")).digest()
        return hashlib.pbkdf2_hmac(
            "sha256", password_hash, self.salt, self.iterations, self.key_length
        )


class AppleDeveloperAuth:
    """Apple ID login for the Developer Portal and App Store Connect.

    Cookies and the session id/scnt pair are kept per account under the
    session directory, so a valid session is reused without a password.
    """

    def __init__(self, session_dir: Optional[Path] = None):
        self.session = requests.Session()
        self.email: Optional[str] = None
        self.csrf: Optional[str] = None
        self.csrf_ts: Optional[str] = None
        self.session_data: dict = {}
        self._token_valid: Optional[bool] = None
        self._widget_key: Optional[str] = None
        self._cookie_directory = session_dir or get_session_dir()
        self._cookie_directory.mkdir(parents=True, exist_ok=True)

    def _session_id(self, email: str) -> str:
        return f"auth-{hashlib.sha256(email.encode()).hexdigest()[:8]}"

    @property
    def cookiejar_path(self) -> Path:
        if not self.email:
            raise ValueError("Email not set")
        return self._cookie_directory / f"{self._session_id(self.email)}.cookies"

    @property
    def session_path(self) -> Path:
        if not self.email:
            raise ValueError("Email not set")
        return self._cookie_directory / f"{self._session_id(self.email)}.session"

    @property
    def widget_key(self) -> str:
        if not self._widget_key:
            response = self.session.get(WIDGET_KEY_URL)
            self._widget_key = response.json().get("authServiceKey", "")
        return self._widget_key

    def load_session(self, email: str) -> bool:
        """Load stored cookies and session data for an account."""
        self.email = email
        self._token_valid = None
        self.session.cookies = cookielib.LWPCookieJar(filename=str(self.cookiejar_path))
        if self.cookiejar_path.exists():
            try:
                self.session.cookies.load(ignore_discard=True, ignore_expires=True)
            except (OSError, cookielib.LoadError) as e:
                console.print(f"[yellow]Failed to load cookies: {e}")

        if not self.session_path.exists():
            self.session_data = {"email": email}
            return False
        try:
            self.session_data = json.loads(self.session_path.read_text())
            return True
        except (OSError, ValueError) as e:
            console.print(f"[yellow]Failed to load session: {e}")
            self.session_data = {"email": email}
            return False

    def save_session(self) -> None:
        self.session_path.write_text(json.dumps(self.session_data))
        # Keep cookies even if they're marked as discardable or expired
        self.session.cookies.save(ignore_discard=True, ignore_expires=True)
        console.print("[dim]Session saved[/]")

    def _get_cookie_value(self, name: str) -> Optional[str]:
        for cookie in self.session.cookies:
            if cookie.name == name:
                return cookie.value
        return None

    def _fetch_csrf_tokens(self, url: str) -> bool:
        response = self.session.get(url)
        if response.status_code != 200:
            return False

        self.csrf = self._get_cookie_value("csrf") or response.headers.get("csrf")
        self.csrf_ts = self._get_cookie_value("csrf_ts") or response.headers.get("csrf_ts")
        if not self.csrf or not self.csrf_ts:
            for name, pattern in CSRF_PATTERNS.items():
                match = re.search(pattern, response.text)
                if match:
                    setattr(self, name, match.group(1))
        return bool(self.csrf and self.csrf_ts)

    def validate_token(self) -> bool:
        """Check the stored session against the portal and fetch CSRF tokens.

        The result is kept until the next :meth:`load_session`.
        """
        if self._token_valid is None:
            self._token_valid = self._check_token()
        return self._token_valid

    def _check_token(self) -> bool:
        if not self.session_data.get("session_id") or not self.session_data.get("scnt"):
            return False

        response = self.session.get(
            "https://developer.apple.com/services-account/v1/certificates",
            headers={
                "Accept": "application/json, text/plain, */*",
                "Content-Type": "application/vnd.api+json",
                "X-Requested-With": "XMLHttpRequest",
                "X-Apple-ID-Session-Id": self.session_data["session_id"],
                "scnt": self.session_data["scnt"],
            },
        )
        # 403 means signed in but no team selected yet
        if response.status_code != 403:
            return False
        return self._fetch_csrf_tokens("https://developer.apple.com/account/resources")

    def _auth_headers(self) -> dict:
        headers = {
            "Accept": "application/json, text/javascript",
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
            "X-Apple-Widget-Key": self.widget_key,
        }
        if self.session_data.get("session_id"):
            headers["X-Apple-ID-Session-Id"] = self.session_data["session_id"]
            headers["scnt"] = self.session_data["scnt"]
        return headers

    def _verify_two_factor(self, response: requests.Response) -> None:
        console.print("[yellow]Two-factor authentication required[/]")
        if os.getenv("NON_INTERACTIVE"):
            raise AuthenticationError(
                "Two-factor authentication required but NON_INTERACTIVE mode is enabled"
            )

        session_id = response.headers.get("X-Apple-ID-Session-Id")
        scnt = response.headers.get("scnt")
        headers = {
            **self._auth_headers(),
            "X-Apple-ID-Session-Id": session_id,
            "scnt": scnt,
        }
        code = console.input("Enter the verification code: ").strip()

        verify_response = self.session.post(
            f"{AUTH_ENDPOINT}/verify/trusteddevice/securitycode",
            json={"securityCode": {"code": code}},
            headers=headers,
        )
        if verify_response.status_code != 204:
            raise AuthenticationError(
                f"Verification code rejected ({verify_response.status_code})"
            )

        trust_response = self.session.get(f"{AUTH_ENDPOINT}/2sv/trust", headers=headers)
        if trust_response.status_code != 204:
            raise AuthenticationError(
                f"Failed to trust this session ({trust_response.status_code})"
            )
        self.session_data.update({"session_id": session_id, "scnt": scnt})

    def authenticate(self, email: str, password: Optional[str]) -> None:
        """Sign in, reusing a stored session when it is still valid."""
        if self.email != email:
            self.load_session(email)
        if self.validate_token():
            console.print("[green]Using existing Apple session[/]")
            return

        if not password:
            raise AuthenticationError(
                f"No valid session for {email} and no password available"
            )

        console.print(f"Authenticating with Apple ID: {email}")
        self.session_data = {"email": email}

        srp_password = SrpPassword(password)
        srp.rfc5054_enable()
        srp.no_username_in_x()
        usr = srp.User(email, srp_password, hash_alg=srp.SHA256, ng_type=srp.NG_2048)
        uname, a = usr.start_authentication()

        headers = self._auth_headers()
        init_response = self.session.post(
            f"{AUTH_ENDPOINT}/signin/init",
            json={
                "a": base64.b64encode(a).decode(),
                "accountName": uname,
                "protocols": ["s2k", "s2k_fo"],
            },
            headers=headers,
        )
        if init_response.status_code != 200:
            raise AuthenticationError(
                f"Apple rejected the sign-in request ({init_response.status_code})"
            )

        body = init_response.json()
        salt = base64.b64decode(body["salt"])
        srp_password.set_encrypt_info(salt, body["iteration"])
        m1 = usr.process_challenge(salt, base64.b64decode(body["b"]))
        if m1 is None:
            raise AuthenticationError("Failed to process the sign-in challenge")

        complete_response = self.session.post(
            f"{AUTH_ENDPOINT}/signin/complete",
            params={"isRememberMeEnabled": "true"},
            json={
                "accountName": uname,
                "c": body["c"],
                "m1": base64.b64encode(m1).decode(),
                "m2": base64.b64encode(usr.H_AMK).decode(),
                "rememberMe": True,
            },
            headers=headers,
        )

        if complete_response.status_code == 409:
            self._verify_two_factor(complete_response)
        elif complete_response.status_code in (200, 302):
            self.session_data.update(
                {
                    "session_id": complete_response.headers.get("X-Apple-ID-Session-Id"),
                    "scnt": complete_response.headers.get("scnt"),
                }
            )
        else:
            raise AuthenticationError(
                f"Invalid Apple ID or password ({complete_response.status_code})"
            )

        if not self._fetch_csrf_tokens("https://developer.apple.com/account"):
            console.print("[yellow]Could not retrieve CSRF tokens, write requests may fail[/]")
        self._token_valid = True
        self.save_session()
        console.print("[green]Authentication successful[/]")
