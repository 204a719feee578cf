"""Canonical parameter serialization and HMAC-SHA256 request signatures.

The gateway signs a flat parameter mapping by sorting the keys, concatenating
every ``key`` immediately followed by its value text, and taking an
HMAC-SHA256 of the result keyed with the shared secret. The signature itself
travels in the reserved ``s`` parameter and is never part of the signed text.

There are no separators between pairs, so ``{"a": "b1"}`` and ``{"ab": "1"}``
serialize identically. The gateway computes signatures the same way, so this
must stay as it is.
"""

import hashlib
import hmac
from collections.abc import Mapping
from decimal import Decimal

SIGNATURE_FIELD = "s"

Scalar = str | int | float | Decimal


class CanonicalizationError(ValueError):
    """A parameter value cannot be rendered as flat scalar text."""


def format_value(value: Scalar) -> str:
    """Render one parameter value exactly as it is signed and sent."""

    # bool is an int subclass and has no agreed text form on the gateway side.
    if isinstance(value, bool) or value is None:
        raise CanonicalizationError(f"unsupported parameter value: {value!r}")
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise CanonicalizationError(f"non-finite number: {value!r}")
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise CanonicalizationError(f"non-finite number: {value!r}")
        return format(value, "f")
    raise CanonicalizationError(f"parameter values must be flat scalars, got {type(value).__name__}")


def canonical_params(params: Mapping[str, Scalar]) -> dict[str, str]:
    """Return a copy with every value rendered as text, signature excluded."""

    return {key: format_value(value) for key, value in params.items() if key != SIGNATURE_FIELD}


def serialize(params: Mapping[str, Scalar]) -> bytes:
    """Concatenate ``key + value`` for every parameter in byte-wise key order."""

    text = canonical_params(params)
    ordered = sorted(text, key=lambda key: key.encode("utf-8"))
    return "".join(f"{key}{text[key]}" for key in ordered).encode("utf-8")


def sign(params: Mapping[str, Scalar], secret_key: bytes) -> str:
    """Lowercase hex HMAC-SHA256 of the canonical serialization."""

    return hmac.new(secret_key, serialize(params), hashlib.sha256).hexdigest()


def verify(params: Mapping[str, Scalar], claimed_signature: str | None, secret_key: bytes) -> bool:
    """Constant-time check of `claimed_signature` against a fresh signature."""

    if not claimed_signature:
        return False
    try:
        claimed = claimed_signature.encode("ascii")
    except (AttributeError, UnicodeEncodeError):
        return False
    expected = sign(params, secret_key).encode("ascii")
    return hmac.compare_digest(expected, claimed)


def signed_form(params: Mapping[str, Scalar], secret_key: bytes) -> dict[str, str]:
    """Text form of `params` with the signature attached, ready to send."""

    form = canonical_params(params)
    form[SIGNATURE_FIELD] = sign(form, secret_key)
    return form
