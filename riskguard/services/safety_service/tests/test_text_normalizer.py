"""Tests for TextNormalizer.

The normalizer lets plain blocklist terms match styled or padded text.
"""
import pytest

from riskguard.services.safety_service.text_normalizer import (
    TextNormalizer,
    normalize_text,
)


@pytest.fixture
def normalizer():
    """Create a TextNormalizer instance for testing."""
    return TextNormalizer()


class TestUnicodeNormalization:
    """Tests for unicode character normalization."""

    def test_circled_letters(self, normalizer):
        """Circled unicode letters should be normalized."""
        result = normalizer.normalize("I want to ⓚⓘⓛⓛ myself")
        assert "kill" in result

    def test_mathematical_double_struck(self, normalizer):
        """Mathematical double-struck letters should be normalized."""
        result = normalizer.normalize("I want to 𝕜𝕚𝕝𝕝 myself")
        assert "kill" in result

    def test_fullwidth_letters(self, normalizer):
        """Fullwidth letters should be normalized."""
        assert normalizer.normalize("Ｋｉｌｌ") == "kill"


class TestInvisibleCharacters:
    """Tests for zero-width and soft-hyphen stripping."""

    def test_zero_width_space(self, normalizer):
        assert normalizer.normalize("ki\u200bll") == "kill"

    def test_zero_width_joiner_and_soft_hyphen(self, normalizer):
        assert normalizer.normalize("end\u200d my\u00ad life") == "end my life"

    def test_byte_order_mark(self, normalizer):
        assert normalizer.normalize("\ufeffhello") == "hello"


class TestWhitespaceAndCase:
    """Tests for whitespace collapsing and case folding."""

    def test_collapses_runs(self, normalizer):
        assert normalizer.normalize("want   to\n\tdie") == "want to die"

    def test_strips_edges(self, normalizer):
        assert normalizer.normalize("  hi  ") == "hi"

    def test_casefold(self, normalizer):
        assert normalizer.normalize("KILL Myself") == "kill myself"
        assert normalizer.normalize("STRASSE") == normalizer.normalize("straße")


class TestEdgeCases:
    """Edge cases."""

    def test_empty(self, normalizer):
        assert normalizer.normalize("") == ""

    def test_module_helper_matches_instance(self, normalizer):
        text = "Ｉ  want\u200b to die"
        assert normalize_text(text) == normalizer.normalize(text)
