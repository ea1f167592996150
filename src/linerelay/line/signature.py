"""LINE webhook signature verification (HMAC-SHA256, base64).

LINE signs the raw request body with the channel secret and sends the
base64 digest in X-Line-Signature. Verification must run on the exact bytes
received, before any JSON parsing.
"""

import base64
import hashlib
import hmac

SIGNATURE_HEADER = "X-Line-Signature"


class SignatureVerificationError(Exception):
    """Raised when the webhook signature is missing or does not match."""


def compute_signature(payload_bytes: bytes, channel_secret: str) -> str:
    """Return the base64 HMAC-SHA256 of payload_bytes keyed by channel_secret."""
    digest = hmac.new(
        key=channel_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    payload_bytes: bytes | None,
    signature_header: str | None,
    channel_secret: str,
) -> None:
    """Verify a LINE webhook signature.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: X-Line-Signature header value (base64).
        channel_secret: LINE channel secret.

    Raises:
        SignatureVerificationError: If body or signature is missing, or the
            signature does not match.
    """
    if not payload_bytes:
        raise SignatureVerificationError("missing request body")

    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    expected = compute_signature(payload_bytes, channel_secret).encode("ascii")
    supplied = signature_header.encode("utf-8")

    # compare_digest only guarantees constant time for equal lengths
    if len(expected) != len(supplied):
        raise SignatureVerificationError("signature length mismatch")

    if not hmac.compare_digest(expected, supplied):
        raise SignatureVerificationError("signature mismatch")


def is_valid_signature(
    payload_bytes: bytes | None,
    signature_header: str | None,
    channel_secret: str,
) -> bool:
    """Boolean form of verify_signature. Never raises."""
    try:
        verify_signature(payload_bytes, signature_header, channel_secret)
    except SignatureVerificationError:
        return False
    return True
