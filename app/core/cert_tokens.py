import secrets
import time
from urllib.parse import quote

from app.core.config import settings

CERT_PREFIX = "CERT"
RANDOM_BYTES = 4


def generate_certificate_number(now_ms: int | None = None) -> str:
    """
    CERT-<epoch millis>-<8 uppercase hex>, e.g. CERT-1760781234567-9F3A01BC.

    The millisecond prefix keeps numbers sortable by issue time; the random
    suffix makes two numbers minted in the same millisecond differ without
    asking the database. Only [A-Z0-9-] is used, so it is URL and filename safe.
    """
    ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    suffix = secrets.token_hex(RANDOM_BYTES).upper()
    return f"{CERT_PREFIX}-{ms}-{suffix}"


def build_verify_url(number: str, base_url: str | None = None) -> str:
    base = (base_url or settings.public_base_url).rstrip("/")
    return f"{base}/certificates/verify/{quote(number)}"
