# Submission admission: rate limit, honeypot, bot check, field rules, spam heuristics, duplicate throttle
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from email_validator import validate_email, EmailNotValidError

import config
from errors import (
    BotCheckFailed,
    DuplicateSubmission,
    MissingRequiredFields,
    RateLimitExceeded,
    SuspiciousContent,
    ValidationFailed,
)
from ratelimit import SlidingWindowRateLimiter
from recaptcha import BotVerificationError, RecaptchaVerifier
from store import SubmissionStore

logger = structlog.get_logger()

REQUIRED_FIELDS = ("name", "gender", "nationality", "email", "phone", "address", "message")

NAME_RE = re.compile(r"[a-zA-Z\s\-']+")
PHONE_RE = re.compile(r"\+?[\d\s\-()]{8,20}", re.ASCII)

NAME_MIN, NAME_MAX = 2, 50
MESSAGE_MIN, MESSAGE_MAX = 10, 1000
SPAM_THRESHOLD = 2

# --- field validators ---

def is_valid_name(name: str) -> bool:
    return NAME_MIN <= len(name) <= NAME_MAX and NAME_RE.fullmatch(name) is not None

def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True

def is_valid_phone(phone: str) -> bool:
    return PHONE_RE.fullmatch(phone) is not None

def is_valid_message(message: str) -> bool:
    return MESSAGE_MIN <= len(message) <= MESSAGE_MAX


def validate_fields(data: dict) -> None:
    """Check name, email, phone and message in that order.

    Raises:
        ValidationFailed: on the first field that fails.
    """
    if not is_valid_name(data.get("name") or ""):
        raise ValidationFailed("name", "Invalid name format")
    if not is_valid_email(data.get("email") or ""):
        raise ValidationFailed("email", "Invalid email format")
    if not is_valid_phone(data.get("phone") or ""):
        raise ValidationFailed("phone", "Invalid phone format")
    if not is_valid_message(data.get("message") or ""):
        raise ValidationFailed("message", "Message must be between 10 and 1000 characters")

# --- spam heuristics ---

def has_html_tag(text: str) -> bool:
    return re.search(r"<[^>]*>", text) is not None

def has_url(text: str) -> bool:
    return re.search(r"https?://", text, re.IGNORECASE) is not None

def has_bbcode_link(text: str) -> bool:
    return re.search(r"\[url=", text, re.IGNORECASE) is not None

def has_long_token(text: str) -> bool:
    return re.search(r"\S{30,}", text) is not None

def has_repeated_chars(text: str) -> bool:
    return re.search(r"(.)\1{4,}", text) is not None

def has_excessive_punctuation(text: str) -> bool:
    return re.search(r"[$!?.]{3,}", text) is not None


SPAM_SIGNALS = (
    has_html_tag,
    has_url,
    has_bbcode_link,
    has_long_token,
    has_repeated_chars,
    has_excessive_punctuation,
)

def spam_signals(text: str) -> list[str]:
    """Return the names of the heuristics that fire for ``text``."""
    return [check.__name__ for check in SPAM_SIGNALS if check(text)]

def is_suspicious(text: str) -> bool:
    return len(spam_signals(text)) >= SPAM_THRESHOLD

# --- pipeline ---

def check_rate_limit(limiter: SlidingWindowRateLimiter, client_ip: str) -> None:
    """First stage; runs before the request body is parsed.

    Raises:
        RateLimitExceeded: once ``client_ip`` has used up its window.
    """
    allowed, retry_after = limiter.hit(client_ip)
    if not allowed:
        logger.warning("submission_rate_limited", ip=client_ip, retry_after=retry_after)
        raise RateLimitExceeded(retry_after)


class AdmissionPipeline:
    """Runs the admission stages that follow the rate limit.

    Args:
        verifier: bot verification client.
        store: record store used for the duplicate throttle.
    """

    def __init__(self, verifier: RecaptchaVerifier, store: SubmissionStore,
                 duplicate_max: Optional[int] = None, duplicate_window: Optional[timedelta] = None):
        self.verifier = verifier
        self.store = store
        self.duplicate_max = config.DUPLICATE_MAX if duplicate_max is None else duplicate_max
        self.duplicate_window = duplicate_window or timedelta(hours=config.DUPLICATE_WINDOW_HOURS)

    def admit(self, payload: dict, client_ip: str, now: Optional[datetime] = None) -> Optional[dict]:
        """Run the pipeline.

        Args:
            payload (dict): raw request body, including ``honeypot`` and ``recaptchaToken``.
            client_ip (str): source address, forwarded to the bot check.
            now (datetime|None): reference time for the duplicate window.

        Returns:
            dict|None: the business fields ready for persistence, or None when
            the honeypot was filled and nothing must be stored or sent.

        Raises:
            AppError: the rejection of the first stage that failed.
        """
        if payload.get("honeypot"):
            logger.info("submission_honeypot", ip=client_ip)
            return None

        self._check_bot(payload.get("recaptchaToken"), client_ip)

        data = {k: v for k, v in payload.items() if k not in ("honeypot", "recaptchaToken")}
        validate_fields(data)

        if is_suspicious(data["message"]):
            logger.warning("submission_suspicious", ip=client_ip, signals=spam_signals(data["message"]))
            raise SuspiciousContent()

        self._check_duplicates(data["email"], now)

        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise MissingRequiredFields(missing)

        return {f: data[f] for f in REQUIRED_FIELDS}

    def _check_bot(self, token: Optional[str], client_ip: str) -> None:
        if not token:
            raise BotCheckFailed("reCAPTCHA verification required")
        try:
            ok = self.verifier.verify(token, remote_ip=client_ip)
        except BotVerificationError:
            raise BotCheckFailed("Invalid input")
        if not ok:
            raise BotCheckFailed("reCAPTCHA verification failed")

    def _check_duplicates(self, email: str, now: Optional[datetime]) -> None:
        since = (now or datetime.now(timezone.utc)) - self.duplicate_window
        if self.store.count_recent(email, since) >= self.duplicate_max:
            logger.warning("submission_duplicate", email=email)
            raise DuplicateSubmission()
