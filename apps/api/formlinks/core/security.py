"""Security utilities for form-link tokens, customer references and API keys."""

import hashlib
import hmac
import re
import secrets
from uuid import UUID

from formlinks.core.config import settings
from formlinks.core.constants import (
    CUSTOMER_REFERENCE_LENGTH,
    CUSTOMER_REFERENCE_PREFIX,
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
)


TOKEN_PATTERN = re.compile(rf"^[A-Za-z0-9]{{{TOKEN_LENGTH}}}$")


class ReferenceObfuscationError(RuntimeError):
    """Raised when a customer reference cannot be derived."""


# =============================================================================
# Form link tokens
# =============================================================================

def generate_random_string(length: int, alphabet: str) -> str:
    """Return a CSPRNG string of ``length`` characters drawn from ``alphabet``."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_form_token() -> str:
    """Generate a candidate form-link token. Uniqueness is checked by the caller."""
    return generate_random_string(TOKEN_LENGTH, TOKEN_ALPHABET)


def is_well_formed_token(token: str | None) -> bool:
    return bool(token) and TOKEN_PATTERN.fullmatch(token) is not None


# =============================================================================
# Obfuscated customer reference
# =============================================================================

def obfuscate_customer_reference(customer_id: UUID, secret: str | None = None) -> str:
    """
    Derive an opaque customer reference for external consumers.

    HMAC-SHA256 keyed by CUSTOMER_REFERENCE_SECRET, so references are stable
    per customer but cannot be enumerated or reversed without the key.
    """
    key = settings.CUSTOMER_REFERENCE_SECRET if secret is None else secret
    if not key:
        raise ReferenceObfuscationError("CUSTOMER_REFERENCE_SECRET not configured")
    digest = hmac.new(key.encode(), str(customer_id).encode(), hashlib.sha256).hexdigest()
    return f"{CUSTOMER_REFERENCE_PREFIX}{digest[:CUSTOMER_REFERENCE_LENGTH]}"


# =============================================================================
# External API keys
# =============================================================================

def verify_api_key(api_key: str | None, allowed_keys: list[str]) -> bool:
    """Constant-time comparison against every configured key."""
    if not api_key or not allowed_keys:
        return False
    matched = False
    for candidate in allowed_keys:
        if hmac.compare_digest(api_key.encode(), candidate.encode()):
            matched = True
    return matched
