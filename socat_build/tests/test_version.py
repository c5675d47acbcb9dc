"""
Tests for structured release versions.
"""
import pytest

from socat_build.core.version import Version


class TestVersionParse:

    def test_components(self):
        v = Version.parse("1.7.4.4")
        assert v.components == (1, 7, 4, 4)
        assert v.letter is None
        assert str(v) == "1.7.4.4"

    def test_letter_suffix(self):
        v = Version.parse("1.1.1w")
        assert v.components == (1, 1, 1)
        assert v.letter == "w"
        assert str(v) == "1.1.1w"
        assert v.major == 1

    @pytest.mark.parametrize("text", ["", "1", "abc", "1.2.3.4.5", "2.0.0-b9", "1.2.x"])
    def test_rejects_non_release(self, text):
        with pytest.raises(ValueError):
            Version.parse(text)


class TestVersionOrdering:
    """Ordering is numeric, never lexicographic."""

    def test_numeric_not_lexicographic(self):
        assert Version.parse("1.10.0.0") > Version.parse("1.9.0.0")
        assert Version.parse("1.9.0.0") > Version.parse("1.2.0.0")

    def test_max_picks_highest(self):
        versions = [Version.parse(t) for t in ("1.2.0.0", "1.10.0.0", "1.9.0.0")]
        assert str(max(versions)) == "1.10.0.0"

    def test_letter_sorts_after_bare(self):
        assert Version.parse("1.1.1") < Version.parse("1.1.1a")
        assert Version.parse("1.1.1a") < Version.parse("1.1.1w")
        assert Version.parse("1.1.1w") < Version.parse("1.1.2")

    def test_padding_equality(self):
        assert Version.parse("3.0") == Version.parse("3.0.0")
        assert hash(Version.parse("3.0")) == hash(Version.parse("3.0.0"))

    def test_not_comparable_with_str(self):
        assert Version.parse("1.2") != "1.2"
