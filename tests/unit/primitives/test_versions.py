"""
Unit tests for version triples.
"""

from __future__ import annotations

import pytest

from p2pfuzz.primitives.versions import VersionTriple


class TestBumps:
    def test_major_bump_zeroes_minor_and_patch(self):
        assert VersionTriple(1, 2, 3).bump_major() == VersionTriple(2, 0, 0)

    def test_minor_bump_zeroes_patch(self):
        assert VersionTriple(1, 2, 3).bump_minor() == VersionTriple(1, 3, 0)

    def test_patch_bump(self):
        assert VersionTriple(1, 2, 3).bump_patch() == VersionTriple(1, 2, 4)


class TestOrderingAndFormat:
    def test_lexicographic_comparison(self):
        assert VersionTriple(1, 9, 9) < VersionTriple(2, 0, 0)
        assert VersionTriple(2, 1, 0) > VersionTriple(2, 0, 12)
        assert max(VersionTriple(0, 5, 1), VersionTriple(0, 5, 3)) == VersionTriple(0, 5, 3)

    def test_string_form(self):
        assert str(VersionTriple(3, 0, 11)) == "3.0.11"

    def test_parse(self):
        assert VersionTriple.parse("2.4.6") == VersionTriple(2, 4, 6)
        assert VersionTriple.parse(" 1.0.0 ") == VersionTriple(1, 0, 0)

    @pytest.mark.parametrize("raw", ["1.2", "1.2.3.4", "a.b.c", "1.-1.0"])
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            VersionTriple.parse(raw)
