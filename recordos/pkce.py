import base64
import hashlib
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Optional


VERIFIER_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
VERIFIER_LENGTH = 128

# RFC 7636 bounds for code_verifier.
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_verifier(length: int = VERIFIER_LENGTH, *, rng: Optional[Callable[[int], bytes]] = None) -> str:
    length = int(length)
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"PKCE verifier length must be between {MIN_VERIFIER_LENGTH} and {MAX_VERIFIER_LENGTH}, got {length}"
        )

    raw = (rng or secrets.token_bytes)(length)
    if len(raw) < length:
        raise ValueError(f"Random source returned {len(raw)} bytes, expected {length}")

    size = len(VERIFIER_ALPHABET)
    return "".join(VERIFIER_ALPHABET[b % size] for b in raw[:length])


def generate_challenge(length: int = VERIFIER_LENGTH, *, rng: Optional[Callable[[int], bytes]] = None) -> PKCEPair:
    """Generate a PKCE verifier + challenge.

    rng takes a byte count and returns that many random bytes; it defaults to
    secrets.token_bytes. The same bytes always produce the same pair.
    """

    verifier = generate_verifier(length, rng=rng)
    return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))
