"""Tests for issuer and language detection."""

from cardtruth.parsers.detector import IssuerDetector, detect_language
from cardtruth.schemas.fields import Language


class TestIssuerDetector:
    """Test suite for IssuerDetector."""

    def test_detect_chase(self, sample_statement_text):
        """Test Chase detection on an English statement."""
        detection = IssuerDetector().detect(sample_statement_text)
        assert detection.issuer == "Chase"
        assert detection.language == Language.EN
        assert detection.confidence == 0.95

    def test_detect_amex_with_hint(self):
        """Test American Express detection and the Plan It hint."""
        text = """
        American Express
        Plan It - MacBook Pro
        New Balance $1,200.00
        """
        detection = IssuerDetector().detect(text)
        assert detection.issuer == "American Express"
        assert detection.language == Language.EN
        assert detection.hints == ["American Express Plan It detected"]

    def test_detect_spanish_issuer(self):
        """Test a Spanish-only issuer."""
        text = "BANORTE Estado de cuenta\nSaldo al corte $5,230.50\nPago mínimo $450.00"
        detection = IssuerDetector().detect(text)
        assert detection.issuer == "Banorte"
        assert detection.language == Language.ES

    def test_bilingual_issuer_uses_keywords(self):
        """Test a bilingual issuer's language comes from keyword counts."""
        text = "Chase Freedom\nSaldo anterior\nPago mínimo\nFecha de corte\nIntereses"
        detection = IssuerDetector().detect(text)
        assert detection.issuer == "Chase"
        assert detection.language == Language.ES

    def test_chase_spanish_hint(self):
        text = "Chase\nFecha de vencim. del pago 05/11/2024\nSaldo nuevo 100.00"
        detection = IssuerDetector().detect(text)
        assert detection.issuer == "Chase"
        assert "Chase Spanish format detected" in detection.hints

    def test_unknown_issuer(self):
        """Test unknown text yields no issuer."""
        detection = IssuerDetector().detect("New balance and minimum payment")
        assert detection.issuer is None
        assert detection.confidence == 0.0
        assert detection.language == Language.EN

    def test_empty_text(self):
        detection = IssuerDetector().detect("")
        assert detection.issuer is None
        assert detection.language == Language.AUTO

    def test_add_pattern_new_issuer(self):
        """Test runtime extension with a new issuer."""
        detector = IssuerDetector()
        detector.add_pattern("Nubank", r"\bnubank\b", language="es", confidence=0.9)
        assert "Nubank" in detector.get_supported_issuers()
        assert detector.detect("Nubank saldo total").issuer == "Nubank"

    def test_add_pattern_existing_issuer(self):
        """Test a pattern added to an existing issuer."""
        detector = IssuerDetector()
        detector.add_pattern("Chase", r"\bslate\s+edge\b")
        assert detector.detect("Slate Edge statement").issuer == "Chase"
        assert detector.get_supported_issuers().count("Chase") == 1

    def test_adding_patterns_does_not_leak(self):
        """Test detectors do not share runtime patterns."""
        IssuerDetector().add_pattern("Nubank", r"\bnubank\b")
        assert "Nubank" not in IssuerDetector().get_supported_issuers()


class TestDetectLanguage:
    """Test keyword-based language detection."""

    def test_spanish(self):
        assert detect_language("Saldo anterior, pago mínimo, fecha de corte") == Language.ES

    def test_english(self):
        assert detect_language("Previous balance, minimum payment, due date") == Language.EN

    def test_tie_is_auto(self):
        assert detect_language("hello world") == Language.AUTO
