"""Text normalization for reliable pattern matching.

The normalizer is a pure text -> text transform applied to every source
(PDF text, OCR output, CSV/OFX serializations, pasted text). It keeps line
structure intact because the installment and header heuristics work line by
line, and it records every transformation it applied.
"""

import re

from cardtruth.schemas.statement import NormalizationResult

# Context-scoped OCR splits; digit/letter substitution is never applied blindly.
OCR_CONTEXT_FIXES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bBal\s+ance\b"), "Balance"),
    (re.compile(r"\bPay\s+ment\b"), "Payment"),
    (re.compile(r"\bMin\s+imum\b"), "Minimum"),
    (re.compile(r"\bState\s+ment\b"), "Statement"),
    (re.compile(r"\bInter\s+est\b"), "Interest"),
    (re.compile(r"\bSal\s+do\b"), "Saldo"),
    (re.compile(r"\bPa\s+go\b"), "Pago"),
    (re.compile(r"\bM([íi])\s+nimo\b"), r"M\1nimo"),
    (re.compile(r"\bFe\s+cha\b"), "Fecha"),
    (re.compile(r"\bInter\s+eses\b"), "Intereses"),
    (re.compile(r"\bComis\s+iones\b"), "Comisiones"),
]

CURRENCY_SYMBOLS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"US\$\s?"), "USD "),
    (re.compile(r"MX\$\s?"), "MXN "),
    (re.compile(r"\$\s?"), "USD "),
    (re.compile(r"€\s?"), "EUR "),
    (re.compile(r"£\s?"), "GBP "),
    (re.compile(r"\bpesos?\b", re.IGNORECASE), "MXN"),
]

HEADER_FOOTER_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"^page\s+\d+",
        r"^p[áa]gina\s+\d+",
        r"^\d+\s+(?:of|de)\s+\d+$",
        r"^confidential",
        r"^private\b",
        r"^internal\s+use",
        r"^statement\s+of\s+account",
        r"^this\s+is\s+not\s+a\s+bill",
        r"^please\s+do\s+not\s+reply",
        r"^visit\s+our\s+website",
        r"^call\s+us\s+at",
        r"^customer\s+service",
        r"^servicio\s+al\s+cliente",
    ]
]

HYPHENATED_WORDS: list[tuple[str, str]] = [
    ("pay-ment", "payment"),
    ("bal-ance", "balance"),
    ("mini-mum", "minimum"),
    ("state-ment", "statement"),
    ("avail-able", "available"),
    ("cred-it", "credit"),
    ("inter-est", "interest"),
    ("com-mis-sion", "commission"),
    ("an-nu-al", "annual"),
    ("month-ly", "monthly"),
    ("ven-ci-mien-to", "vencimiento"),
]

_AMOUNT_IN_LINE = re.compile(r"\d[\d,]*\.\d{2}\b")
_PAGE_NUMBER = re.compile(r"^\d{1,3}$")
_EUROPEAN_AMOUNT = re.compile(r"(?<![\d.,])(\d{1,3}(?:\.\d{3})+),(\d{2})(?![\d,])")
_COMMA_DECIMAL = re.compile(r"(?<![\d.,])(\d+),(\d{2})(?![\d,])")


class TextNormalizer:
    """Cleans raw statement text.

    Steps, in order:
        1. whitespace collapse (line breaks preserved)
        2. context-scoped OCR fixes
        3. currency symbols -> ISO codes
        4. decimal separator disambiguation
        5. header/footer/page-number stripping
        6. hyphenation repair across line breaks
        7. best-effort multi-column collapse

    Example:
        >>> result = TextNormalizer().normalize(raw_text)
        >>> result.changes
        ['Normalized whitespace', 'Normalized currency symbols']
    """

    def normalize(self, text: str) -> NormalizationResult:
        """Run every normalization step over ``text``.

        Args:
            text: Raw extracted text

        Returns:
            NormalizationResult with the cleaned text and the list of changes
        """
        text = text or ""
        changes: list[str] = []
        normalized = text

        steps = [
            (self._normalize_whitespace, "Normalized whitespace"),
            (self._fix_ocr_errors, "Fixed OCR word splits"),
            (self._normalize_currency_symbols, "Normalized currency symbols"),
            (self._normalize_decimal_separators, "Normalized decimal separators"),
            (self._remove_headers_footers, "Removed headers/footers and page numbers"),
            (self._fix_hyphenations, "Fixed hyphenations"),
            (self._collapse_multi_columns, "Collapsed multi-column layout"),
        ]
        for step, description in steps:
            before = normalized
            normalized = step(normalized)
            if normalized != before:
                changes.append(description)

        return NormalizationResult(
            normalized_text=normalized,
            original_length=len(text),
            normalized_length=len(normalized),
            changes=changes,
        )

    def _normalize_whitespace(self, text: str) -> str:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[^\S\n]+", " ", text)
        text = "\n".join(line.strip() for line in text.split("\n"))
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def _fix_ocr_errors(self, text: str) -> str:
        for pattern, replacement in OCR_CONTEXT_FIXES:
            text = pattern.sub(replacement, text)
        return text

    def _normalize_currency_symbols(self, text: str) -> str:
        for pattern, replacement in CURRENCY_SYMBOLS:
            text = pattern.sub(replacement, text)
        return text

    def _normalize_decimal_separators(self, text: str) -> str:
        # 1.234,56 -> 1,234.56
        text = _EUROPEAN_AMOUNT.sub(lambda m: m.group(1).replace(".", ",") + "." + m.group(2), text)
        # 12,34 -> 12.34 (a comma followed by exactly two digits)
        return _COMMA_DECIMAL.sub(r"\1.\2", text)

    def _remove_headers_footers(self, text: str) -> str:
        kept = []
        previous = ""
        for line in text.split("\n"):
            stripped = line.strip()
            # A bare number after "Label:" is that label's wrapped value.
            label_value = previous.endswith(":")
            previous = stripped
            if stripped and not _AMOUNT_IN_LINE.search(stripped):
                if _PAGE_NUMBER.match(stripped) and not label_value:
                    continue
                if any(pattern.search(stripped) for pattern in HEADER_FOOTER_PATTERNS):
                    continue
            kept.append(line)
        return "\n".join(kept)

    def _fix_hyphenations(self, text: str) -> str:
        for hyphenated, fixed in HYPHENATED_WORDS:
            pattern = re.compile(r"\b" + hyphenated.replace("-", r"-\s*") + r"\b", re.IGNORECASE)
            text = pattern.sub(lambda m, fixed=fixed: _match_case(m.group(0), fixed), text)
        return re.sub(r"([A-Za-zÁÉÍÓÚáéíóúÑñ]+)-[^\S\n]*\n\s*([a-záéíóúñ]+)", r"\1\2", text)

    def _collapse_multi_columns(self, text: str) -> str:
        lines = text.split("\n")
        collapsed: list[str] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            next_line = lines[i + 1] if i + 1 < len(lines) else None
            if next_line and self._continues_on_next_line(line, next_line):
                collapsed.append(line + " " + next_line.strip())
                i += 2
                continue
            collapsed.append(line)
            i += 1
        return "\n".join(collapsed)

    @staticmethod
    def _continues_on_next_line(line: str, next_line: str) -> bool:
        stripped = line.strip()
        following = next_line.strip()
        if len(stripped) <= 5 or not following:
            return False
        if stripped[-1] in ".!?:" or _AMOUNT_IN_LINE.search(stripped):
            return False
        if abs(len(stripped) - len(following)) >= 10:
            return False
        return following[0].islower() or following[0].isdigit() or len(following) < 20


def _match_case(original: str, fixed: str) -> str:
    if original[:1].isupper():
        return fixed.capitalize()
    return fixed
