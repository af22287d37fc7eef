import random
import re

from utils.tracking_ids import (
    _base36_fraction,
    generate_anonymous_id,
    generate_civic_id,
    generate_tracking_id,
    is_anonymous_type,
)

CIVIC_PATTERN = re.compile(r"^CIV-[0-9A-Z]{6}$")
ANON_PATTERN = re.compile(r"^ANON-[A-Z0-9]{6}$")


class TestTrackingIds:
    def test_civic_ids_match_format(self):
        rng = random.Random(7)
        for _ in range(500):
            assert CIVIC_PATTERN.match(generate_civic_id(rng))

    def test_anonymous_ids_match_format(self):
        rng = random.Random(7)
        for _ in range(500):
            assert ANON_PATTERN.match(generate_anonymous_id(rng))

    def test_type_selects_namespace(self):
        assert generate_tracking_id("civic").startswith("CIV-")
        assert generate_tracking_id("anonymous").startswith("ANON-")
        assert generate_tracking_id("special").startswith("ANON-")

    def test_base36_fraction_digits(self):
        assert _base36_fraction(0.0, 6) == "000000"
        # 0.5 in base 36 is 0.i
        assert _base36_fraction(0.5, 2) == "i0"

    def test_civic_id_is_upper_cased(self):
        class FixedRandom:
            def random(self):
                return 0.5

        assert generate_civic_id(FixedRandom()) == "CIV-I00000"

    def test_is_anonymous_type(self):
        assert is_anonymous_type("anonymous")
        assert is_anonymous_type("special")
        assert not is_anonymous_type("civic")
