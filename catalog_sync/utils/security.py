import base64, hashlib, hmac
from flask import request

from ..errors import SignatureInvalid

HMAC_HEADER = "X-Shopify-Hmac-Sha256"


def compute_signature(secret: str, raw: bytes) -> str:
    digest = hmac.new(secret.encode(), raw, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def signature_valid(secret: str, raw: bytes, their_hmac: str) -> bool:
    if not their_hmac:
        return False
    return hmac.compare_digest(compute_signature(secret, raw).encode(), their_hmac.encode())


def verify_webhook_hmac(secret: str) -> bytes:
    """Return the raw request body, or raise SignatureInvalid."""
    raw = request.get_data()
    their_hmac = request.headers.get(HMAC_HEADER, "")
    if not their_hmac:
        raise SignatureInvalid("Missing signature")
    if not signature_valid(secret, raw, their_hmac):
        raise SignatureInvalid("Invalid signature")
    return raw
