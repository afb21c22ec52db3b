# reCAPTCHA siteverify client
from typing import Optional

import requests
import structlog

import config

logger = structlog.get_logger()


class BotVerificationError(Exception):
    """Raised when the provider cannot be reached or answers garbage."""


class RecaptchaVerifier:

    def __init__(self, secret_key: Optional[str] = None, verify_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.secret_key = config.RECAPTCHA_SECRET_KEY if secret_key is None else secret_key
        self.verify_url = verify_url or config.RECAPTCHA_VERIFY_URL
        self.timeout = config.RECAPTCHA_TIMEOUT if timeout is None else timeout
        if not self.secret_key:
            logger.warning("recaptcha_secret_missing")

    def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        """Return True if the provider reports ``success`` for ``token``.

        The secret travels in the form body, never in the URL.

        Raises:
            BotVerificationError: on network errors, non-200 responses or
                unparseable bodies.
        """
        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip
        try:
            response = requests.post(self.verify_url, data=form, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error("recaptcha_network_error", error_type=type(e).__name__)
            raise BotVerificationError(type(e).__name__) from e

        if response.status_code != 200:
            logger.error("recaptcha_bad_status", status=response.status_code)
            raise BotVerificationError(f"Provider returned {response.status_code}")
        try:
            result = response.json()
        except ValueError as e:
            logger.error("recaptcha_bad_response", status=response.status_code)
            raise BotVerificationError("Malformed provider response") from e
        if not isinstance(result, dict):
            logger.error("recaptcha_bad_response", status=response.status_code)
            raise BotVerificationError("Malformed provider response")

        if result.get("success") is True:
            return True
        logger.warning("recaptcha_rejected", error_codes=result.get("error-codes", []))
        return False


bot_verifier = RecaptchaVerifier()

def get_bot_verifier() -> RecaptchaVerifier:
    return bot_verifier
