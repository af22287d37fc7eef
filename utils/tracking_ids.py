"""Human-readable tracking identifiers for submitted complaints.

Civic complaints get ``CIV-XXXXXX`` and anonymous or special complaints get
``ANON-XXXXXX``. The two prefixes keep the namespaces disjoint. Both schemes
draw from the non-cryptographic ``random`` module; uniqueness is enforced by
the ``complaints.complaint_id`` unique constraint and the regeneration loop in
:func:`utils.intake.allocate_tracking_id`.
"""
import random
import string

CIVIC_PREFIX = "CIV-"
ANONYMOUS_PREFIX = "ANON-"
ID_LENGTH = 6

ANONYMOUS_ALPHABET = string.ascii_uppercase + string.digits
BASE36_DIGITS = string.digits + string.ascii_lowercase


def _base36_fraction(fraction: float, length: int) -> str:
    """Expand a value in [0, 1) into ``length`` base-36 digits after the point."""
    digits = []
    value = fraction
    for _ in range(length):
        value *= 36
        digit = int(value)
        digits.append(BASE36_DIGITS[digit])
        value -= digit
    return "".join(digits)


def generate_anonymous_id(rng: random.Random | None = None) -> str:
    source = rng or random
    return ANONYMOUS_PREFIX + "".join(source.choice(ANONYMOUS_ALPHABET) for _ in range(ID_LENGTH))


def generate_civic_id(rng: random.Random | None = None) -> str:
    source = rng or random
    return CIVIC_PREFIX + _base36_fraction(source.random(), ID_LENGTH).upper()


def generate_tracking_id(complaint_type: str, rng: random.Random | None = None) -> str:
    if complaint_type == "civic":
        return generate_civic_id(rng)
    return generate_anonymous_id(rng)


def is_anonymous_type(complaint_type: str) -> bool:
    return complaint_type in {"anonymous", "special"}
