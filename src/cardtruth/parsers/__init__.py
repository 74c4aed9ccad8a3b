"""Statement parsing module for credit card statements.

This module turns statement files and pasted text into canonical values:
- TextExtractorRouter picks a text extractor per file format
- TextNormalizer cleans OCR and layout noise
- IssuerDetector identifies the issuer and statement language
- FieldExtractor applies the ranked extraction rules
- InstallmentExtractor finds explicit plans or infers them
- QuickSummaryParser and StructuredParser feed the summary and structured layers
"""

from cardtruth.parsers.detector import IssuerDetector
from cardtruth.parsers.extractor import TextExtractorRouter
from cardtruth.parsers.fields import FieldExtractor
from cardtruth.parsers.installments import InstallmentExtractor
from cardtruth.parsers.normalizer import TextNormalizer
from cardtruth.parsers.structured import StructuredParser
from cardtruth.parsers.summary import QuickSummaryParser

__all__ = [
    "TextExtractorRouter",
    "TextNormalizer",
    "IssuerDetector",
    "FieldExtractor",
    "InstallmentExtractor",
    "QuickSummaryParser",
    "StructuredParser",
]
