import json
import hmac
import hashlib
import base64
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Header

import config
from errors import AuthRejected

logger = structlog.get_logger()

ADMIN_SUBJECT = "admin"


class URLSafeSerializer:
    """Tiny URL-safe HMAC serializer.

    Encodes/decodes JSON payloads with an HMAC-SHA256 signature:
    token = base64url(payload) + "." + base64url(signature).
    """

    def __init__(self, secret_key, salt=""):
        """
        Args:
            secret_key (str): Secret bytes used for HMAC.
            salt (str): Optional salt mixed into the HMAC key.
        """
        self.secret_key = (secret_key or "").encode("utf-8")
        self.salt = salt or ""

    def _b64(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")

    def _unb64(self, s: str) -> bytes:
        s_bytes = s.encode("ascii")
        padding = b"=" * (-len(s_bytes) % 4)
        return base64.urlsafe_b64decode(s_bytes + padding)

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self.secret_key + self.salt.encode("utf-8"), payload, hashlib.sha256).digest()

    def dumps(self, obj) -> str:
        """Serialize and sign a JSON-serializable value."""
        payload = json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return f"{self._b64(payload)}.{self._b64(self._sign(payload))}"

    def loads(self, token: str):
        """Verify signature and deserialize.

        Raises:
            ValueError: If token format or signature is invalid.
        """
        try:
            payload_b64, sig_b64 = token.rsplit(".", 1)
            payload = self._unb64(payload_b64)
            sig = self._unb64(sig_b64)
        except (ValueError, UnicodeEncodeError):
            raise ValueError("Invalid token format")
        if not hmac.compare_digest(sig, self._sign(payload)):
            raise ValueError("Invalid signature")
        try:
            return json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValueError("Invalid token payload")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _signer() -> URLSafeSerializer:
    return URLSafeSerializer(secret_key=config.JWT_SECRET, salt="admin-session")


def authenticate(username: str, password: str, now: Optional[datetime] = None) -> str:
    """Exchange the configured admin credentials for a signed token.

    Both values are compared in constant time; a mismatch never says which
    one was wrong.

    Raises:
        AuthRejected: on any other credential pair.
    """
    user_ok = hmac.compare_digest((username or "").encode("utf-8"), config.ADMIN_USERNAME.encode("utf-8"))
    pass_ok = hmac.compare_digest((password or "").encode("utf-8"), config.ADMIN_PASSWORD.encode("utf-8"))
    if not (user_ok and pass_ok):
        logger.warning("admin_login_failed")
        raise AuthRejected("Invalid credentials")
    logger.info("admin_login_succeeded")
    return issue_token(now)


def issue_token(now: Optional[datetime] = None) -> str:
    issued = int((now or _now_utc()).timestamp())
    return _signer().dumps({
        "sub": ADMIN_SUBJECT,
        "iat": issued,
        "exp": issued + config.ADMIN_TOKEN_TTL_SECONDS,
    })


def verify_token(token: Optional[str], now: Optional[datetime] = None) -> str:
    """Return the token subject.

    Raises:
        AuthRejected: if the token is missing, malformed, badly signed or expired.
    """
    if not token:
        raise AuthRejected("No token, authorization denied")
    try:
        data = _signer().loads(token)
    except ValueError:
        raise AuthRejected("Token is not valid")
    if not isinstance(data, dict) or data.get("sub") != ADMIN_SUBJECT:
        raise AuthRejected("Token is not valid")
    try:
        exp = int(data.get("exp") or 0)
    except (TypeError, ValueError):
        raise AuthRejected("Token is not valid")
    if (now or _now_utc()).timestamp() >= exp:
        raise AuthRejected("Token has expired")
    return data["sub"]


def verify_admin(authorization: str = Header(default="")) -> str:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        token = ""
    return verify_token(token.strip())
