"""Issuer and language detection from statement text.

This module identifies which issuer produced a credit card statement and
which language it is written in, based on text patterns found in the
normalized text.
"""

import logging
import re
from dataclasses import dataclass, field

from cardtruth.schemas.fields import Language
from cardtruth.schemas.statement import IssuerDetection

logger = logging.getLogger(__name__)


@dataclass
class IssuerPattern:
    """Signature of one issuer: regex fragments plus the confidence of a hit."""

    name: str
    patterns: list[str]
    language: str  # "en", "es" or "both"
    confidence: float
    compiled: list[re.Pattern] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.compiled)


# Ranked: on equal confidence the earlier entry wins.
ISSUER_PATTERNS: list[IssuerPattern] = [
    IssuerPattern("American Express", [r"american\s+express", r"\bamex\b", r"\bplan\s+it\b", r"express\s+pay"], "en", 0.95),
    IssuerPattern(
        "Chase",
        [
            r"chase\s+bank",
            r"chase\s+freedom",
            r"chase\s+sapphire",
            r"chase\s+unlimited",
            r"jpmorgan\s+chase",
            r"chase\.com",
            r"fecha\s+de\s+vencim\.\s*del\s+pago",
        ],
        "both",
        0.95,
    ),
    IssuerPattern("Bank of America", [r"bank\s+of\s+america", r"\bbofa\b", r"merrill\s+lynch", r"\bboa\s+credit"], "en", 0.95),
    IssuerPattern("Wells Fargo", [r"wells\s+fargo", r"\bwf\s+credit"], "en", 0.95),
    IssuerPattern("Citi", [r"citibank", r"citi\s+bank", r"citi\s+credit", r"citigroup", r"citi\s+double\s+cash"], "en", 0.95),
    IssuerPattern("Capital One", [r"capital\s+one", r"capitalone", r"quicksilver", r"venture\s+card"], "en", 0.95),
    IssuerPattern("Discover", [r"discover\s+card", r"discover\s+bank", r"discover\s+it\b"], "en", 0.95),
    IssuerPattern("HSBC", [r"hsbc\s+bank", r"hsbc\s+credit", r"hongkong\s+shanghai"], "both", 0.90),
    IssuerPattern("PNC", [r"pnc\s+bank", r"pnc\s+credit", r"pittsburgh\s+national"], "en", 0.90),
    IssuerPattern("US Bank", [r"\bus\s+bank\b", r"usbank", r"us\s+bancorp"], "en", 0.90),
    IssuerPattern("Santander", [r"santander\s+bank", r"banco\s+santander", r"santander\s+credit"], "both", 0.90),
    IssuerPattern("BBVA", [r"bbva\s+bank", r"banco\s+bilbao\s+vizcaya", r"bbva\s+credit"], "both", 0.90),
    IssuerPattern("Scotiabank", [r"scotiabank", r"scotia\s+bank", r"scotia\s+credit"], "both", 0.90),
    IssuerPattern("Banorte", [r"banorte"], "es", 0.90),
    IssuerPattern("Liverpool", [r"liverpool"], "es", 0.85),
]

SPANISH_KEYWORDS = [
    "saldo", "pago", "fecha", "mínimo", "intereses", "comisiones",
    "vencimiento", "corte", "estado", "cuenta", "crédito", "débito",
    "meses", "sin intereses", "pagos", "plazos",
]

ENGLISH_KEYWORDS = [
    "balance", "payment", "date", "minimum", "interest", "fees",
    "due", "statement", "account", "credit", "debit",
    "monthly", "installment", "financing",
]

# (issuer, literal marker, hint)
ISSUER_HINTS: list[tuple[str, str, str]] = [
    ("American Express", "plan it", "American Express Plan It detected"),
    ("Chase", "fecha de vencim. del pago", "Chase Spanish format detected"),
    ("Bank of America", "merrill lynch", "Bank of America Merrill Lynch account"),
]


def detect_language(text: str) -> Language:
    """Guess the statement language by counting financial keywords.

    Returns:
        ``Language.ES`` when Spanish terms dominate, ``Language.EN`` when
        English terms dominate, ``Language.AUTO`` on a tie
    """
    lower = (text or "").lower()
    spanish = sum(1 for keyword in SPANISH_KEYWORDS if keyword in lower)
    english = sum(1 for keyword in ENGLISH_KEYWORDS if keyword in lower)
    if spanish > english:
        return Language.ES
    if english > spanish:
        return Language.EN
    return Language.AUTO


class IssuerDetector:
    """Detects the issuing bank and language of a statement.

    The detector searches for issuer-specific patterns (brand names, product
    names, URLs) and keeps the highest-confidence match. Issuers that publish
    statements in both languages report ``auto``, which is then refined by
    keyword counting.

    Example:
        >>> detection = IssuerDetector().detect(normalized_text)
        >>> detection.issuer, detection.language
        ('Chase', <Language.EN: 'en'>)
    """

    def __init__(self, patterns: list[IssuerPattern] | None = None):
        # Copies, so add_pattern never touches the module-level table.
        self._patterns = [
            IssuerPattern(p.name, list(p.patterns), p.language, p.confidence)
            for p in (patterns if patterns is not None else ISSUER_PATTERNS)
        ]

    def detect(self, text: str) -> IssuerDetection:
        """Detect issuer and language from statement text.

        Args:
            text: Normalized statement text

        Returns:
            IssuerDetection; ``issuer`` is None when nothing matched
        """
        if not text:
            return IssuerDetection()

        best: IssuerPattern | None = None
        for candidate in self._patterns:
            if candidate.matches(text) and (best is None or candidate.confidence > best.confidence):
                best = candidate

        if best is None:
            language = detect_language(text)
            logger.debug("No issuer detected", extra={"language": language.value})
            return IssuerDetection(language=language)

        language = Language.AUTO if best.language == "both" else Language(best.language)
        if language == Language.AUTO:
            language = detect_language(text)

        detection = IssuerDetection(
            issuer=best.name,
            language=language,
            confidence=best.confidence,
            hints=self.issuer_hints(text, best.name),
        )
        logger.debug(
            "Issuer detected",
            extra={"issuer": detection.issuer, "language": detection.language.value},
        )
        return detection

    def issuer_hints(self, text: str, issuer: str) -> list[str]:
        """Return issuer-specific hints. The text itself is left untouched."""
        lower = text.lower()
        return [hint for name, marker, hint in ISSUER_HINTS if name == issuer and marker in lower]

    def get_supported_issuers(self) -> list[str]:
        """Get the list of issuer names in ranking order."""
        return [pattern.name for pattern in self._patterns]

    def add_pattern(self, issuer: str, pattern: str, language: str = "en", confidence: float = 0.9) -> None:
        """Add a detection pattern, creating the issuer entry when needed.

        This allows extending detection rules at runtime.

        Args:
            issuer: Issuer display name (e.g., "Chase")
            pattern: Regex pattern to match
            language: "en", "es" or "both" for a new issuer
            confidence: Confidence of a hit for a new issuer
        """
        for existing in self._patterns:
            if existing.name == issuer:
                existing.patterns.append(pattern)
                existing.compiled.append(re.compile(pattern, re.IGNORECASE))
                return
        self._patterns.append(IssuerPattern(issuer, [pattern], language, confidence))
