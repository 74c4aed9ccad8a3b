"""Text extraction from statement files of unknown format.

Each supported format has its own ``TextExtractor`` variant:
- PdfTextExtractor: embedded PDF text via pypdf
- PdfImageOcrExtractor: scanned PDFs rendered with PyMuPDF and read by Tesseract
- CsvExtractor / OfxExtractor: structured exports re-serialized as label-value lines
- ImageOcrExtractor: JPEG/PNG/... read by Tesseract
- PlainTextExtractor: pasted or .txt content

``TextExtractorRouter`` picks the variant from the file name, MIME type and
magic bytes. Extraction never silently returns empty text: it raises an
``ExtractionError`` or ``UnsupportedFormatError`` instead.
"""

import csv
import io
import logging
import re
from pathlib import PurePath
from typing import Any

from cardtruth.config import Settings, get_settings
from cardtruth.core.exceptions import ExtractionError, UnsupportedFormatError
from cardtruth.schemas.statement import ExtractedText

logger = logging.getLogger(__name__)

EXTENSION_TYPES: dict[str, str] = {
    ".pdf": "pdf",
    ".csv": "csv",
    ".tsv": "csv",
    ".ofx": "ofx",
    ".qfx": "ofx",
    ".jpg": "image",
    ".jpeg": "image",
    ".png": "image",
    ".gif": "image",
    ".bmp": "image",
    ".tif": "image",
    ".tiff": "image",
    ".webp": "image",
    ".txt": "text",
    ".text": "text",
}

MIME_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "text/csv": "csv",
    "text/tab-separated-values": "csv",
    "application/x-ofx": "ofx",
    "application/ofx": "ofx",
    "application/vnd.intu.qfx": "ofx",
    "text/plain": "text",
}

OFX_TAGS = [
    "DTPOSTED",
    "TRNTYPE",
    "TRNAMT",
    "NAME",
    "MEMO",
    "BALAMT",
    "DTSTART",
    "DTEND",
    "PAYMENTDUE",
    "MINPAYMENT",
    "MINPMTDUE",
    "CREDITLIMIT",
    "AVAILABLEBAL",
    "INSTALLMENTDUE",
]

_OFX_TAG_RE = re.compile(r"<(" + "|".join(OFX_TAGS) + r")>\s*([^<\r\n]+)", re.IGNORECASE)


def decode_text(data: bytes) -> str | None:
    """Decode bytes as UTF-8 (with or without BOM), falling back to Latin-1 for mostly-printable content."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass

    text = data.decode("latin-1")
    printable = sum(1 for ch in text if ch.isprintable() or ch in "\r\n\t")
    if text and printable / len(text) > 0.95:
        return text
    return None


def detect_file_type(filename: str | None, mime_type: str | None = None, data: bytes | None = None) -> str:
    """Classify a file as pdf, csv, ofx, image or text.

    Args:
        filename: Original file name (extension is checked first)
        mime_type: Declared MIME type, if any
        data: File content, used for magic-byte sniffing

    Returns:
        One of "pdf", "csv", "ofx", "image", "text"

    Raises:
        UnsupportedFormatError: If the type is unknown and the content is not text
    """
    suffix = PurePath(filename).suffix.lower() if filename else ""
    if suffix in EXTENSION_TYPES:
        return EXTENSION_TYPES[suffix]

    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime in MIME_TYPES:
        return MIME_TYPES[mime]
    if mime.startswith("image/"):
        return "image"

    if data:
        if data.startswith(b"%PDF"):
            return "pdf"
        if data.startswith((b"\x89PNG", b"\xff\xd8\xff", b"GIF8", b"BM", b"II*\x00", b"MM\x00*")):
            return "image"
        head = data[:512].lstrip()
        if head.upper().startswith((b"OFXHEADER", b"<OFX", b"<?XML")) and b"OFX" in data[:2048].upper():
            return "ofx"
        if decode_text(data) is not None:
            return "text"

    raise UnsupportedFormatError(details={"filename": filename, "mime_type": mime_type})


class TextExtractor:
    """Capability interface for text extractors."""

    method: str = "text"

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        """Extract text from file content.

        Args:
            data: File content as bytes
            password: Optional password for encrypted files

        Returns:
            ExtractedText with the raw text and extraction confidence
        """
        raise NotImplementedError


class OcrEngine:
    """Thin wrapper around Tesseract (pytesseract).

    Tesseract is imported lazily so the text-only paths work on hosts
    without the OCR stack installed.
    """

    def __init__(self, languages: str = "eng+spa"):
        self.languages = languages

    def read(self, image: Any) -> tuple[str, float]:
        """Read text from a PIL image.

        Returns:
            (text, confidence) where confidence is the mean word confidence / 100

        Raises:
            ExtractionError: EXT_002 if Tesseract is not available
        """
        try:
            import pytesseract
        except ImportError as e:
            raise ExtractionError("EXT_002", {"reason": "pytesseract not installed"}) from e

        try:
            data = pytesseract.image_to_data(
                image, lang=self.languages, output_type=pytesseract.Output.DICT
            )
        except pytesseract.TesseractNotFoundError as e:
            raise ExtractionError("EXT_002", {"reason": "tesseract binary not found"}) from e
        except pytesseract.TesseractError as e:
            raise ExtractionError("EXT_001", {"reason": "tesseract failed", "status": e.status}) from e

        lines: dict[tuple[int, int, int], list[str]] = {}
        confidences: list[float] = []
        for i, word in enumerate(data.get("text", [])):
            word = (word or "").strip()
            try:
                conf = float(data["conf"][i])
            except (KeyError, TypeError, ValueError):
                conf = -1.0
            if not word or conf < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word)
            confidences.append(conf)

        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        confidence = (sum(confidences) / len(confidences) / 100.0) if confidences else 0.0
        return text, max(0.0, min(1.0, confidence))


class PdfTextExtractor(TextExtractor):
    """Embedded PDF text, concatenated page by page."""

    method = "pdf-text"
    confidence = 0.95

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        from pypdf import PdfReader
        from pypdf.errors import PdfReadError

        try:
            reader = PdfReader(io.BytesIO(data))
        except (PdfReadError, ValueError, OSError) as e:
            raise ExtractionError("EXT_001", {"reason": "PDF could not be opened"}) from e

        if reader.is_encrypted:
            normalized_password = password.strip() if isinstance(password, str) else ""
            # Some PDFs are encrypted with an empty user password.
            if not reader.decrypt(normalized_password):
                if not normalized_password:
                    raise ExtractionError("EXT_004", http_status=401)
                raise ExtractionError("EXT_005", http_status=401)

        try:
            pages = [(page.extract_text() or "") for page in reader.pages]
        except PdfReadError as e:
            raise ExtractionError("EXT_001", {"reason": "PDF text layer unreadable"}) from e

        return ExtractedText(
            text="\n".join(pages).strip(),
            method=self.method,
            confidence=self.confidence,
            metadata={"page_count": len(pages)},
        )


class PdfImageOcrExtractor(TextExtractor):
    """Scanned PDFs: render each page with PyMuPDF and OCR it."""

    method = "pdf-ocr"

    def __init__(self, ocr: OcrEngine | None = None, dpi: int = 300):
        self.ocr = ocr or OcrEngine()
        self.dpi = dpi

    def render_pages(self, data: bytes, password: str | None = None) -> list[Any]:
        """Render PDF pages to PIL images."""
        try:
            import fitz
            from PIL import Image
        except ImportError as e:
            raise ExtractionError("EXT_002", {"reason": "PDF rendering stack not installed"}) from e

        images = []
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.needs_pass and not doc.authenticate(password or ""):
                    raise ExtractionError("EXT_005" if password else "EXT_004", http_status=401)
                for page in doc:
                    pix = page.get_pixmap(dpi=self.dpi, colorspace=fitz.csRGB, alpha=False)
                    images.append(Image.frombytes("RGB", (pix.width, pix.height), pix.samples))
        except (RuntimeError, ValueError) as e:
            raise ExtractionError("EXT_001", {"reason": "PDF could not be rendered"}) from e
        return images

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        images = self.render_pages(data, password)
        texts: list[str] = []
        confidences: list[float] = []
        for image in images:
            text, confidence = self.ocr.read(image)
            texts.append(text)
            confidences.append(confidence)

        return ExtractedText(
            text="\n".join(texts).strip(),
            method=self.method,
            confidence=(sum(confidences) / len(confidences)) if confidences else 0.0,
            metadata={"page_count": len(images), "language": self.ocr.languages},
        )


class ImageOcrExtractor(TextExtractor):
    """Raster images read by Tesseract (English + Spanish)."""

    method = "image-ocr"

    def __init__(self, ocr: OcrEngine | None = None):
        self.ocr = ocr or OcrEngine()

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        try:
            from PIL import Image, UnidentifiedImageError
        except ImportError as e:
            raise ExtractionError("EXT_002", {"reason": "Pillow not installed"}) from e

        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise UnsupportedFormatError(details={"reason": "unreadable image"}) from e

        text, confidence = self.ocr.read(image)
        return ExtractedText(
            text=text.strip(),
            method=self.method,
            confidence=confidence,
            metadata={"page_count": 1, "language": self.ocr.languages},
        )


class CsvExtractor(TextExtractor):
    """CSV/TSV exports re-serialized as ``cell | cell | cell`` lines."""

    method = "csv"
    confidence = 0.90

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        text = decode_text(data)
        if text is None:
            raise UnsupportedFormatError(details={"reason": "CSV is not text"})

        rows = read_delimited(text)
        lines = [" | ".join(cells) for cells in rows if cells]
        return ExtractedText(
            text="\n".join(lines),
            method=self.method,
            confidence=self.confidence,
            metadata={"row_count": len(lines)},
        )


def read_delimited(text: str, keep_empty: bool = False) -> list[list[str]]:
    """Split delimited text into rows of stripped cells.

    Blank rows are dropped. Empty cells are dropped too unless ``keep_empty``
    is set, which preserves column positions.
    """
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    delimiter = max(",;\t|", key=first_line.count) if first_line else ","
    if first_line.count(delimiter) == 0:
        delimiter = ","

    rows = []
    for row in csv.reader(io.StringIO(text), delimiter=delimiter):
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue
        rows.append(cells if keep_empty else [cell for cell in cells if cell])
    return rows


class OfxExtractor(TextExtractor):
    """OFX/QFX SGML or XML markup flattened to ``TAG: value`` lines."""

    method = "ofx"
    confidence = 0.85

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        text = decode_text(data)
        if text is None:
            raise UnsupportedFormatError(details={"reason": "OFX is not text"})

        lines = [f"{tag.upper()}: {value.strip()}" for tag, value in _OFX_TAG_RE.findall(text)]
        return ExtractedText(
            text="\n".join(lines),
            method=self.method,
            confidence=self.confidence,
            metadata={"tag_count": len(lines)},
        )


class PlainTextExtractor(TextExtractor):
    """Pasted text or .txt files."""

    method = "text"
    confidence = 0.95

    def extract(self, data: bytes, password: str | None = None) -> ExtractedText:
        text = decode_text(data)
        if text is None:
            raise UnsupportedFormatError(details={"reason": "binary content"})
        return ExtractedText(text=text.strip(), method=self.method, confidence=self.confidence)


class TextExtractorRouter:
    """Dispatches a file to the matching ``TextExtractor`` variant.

    Example:
        >>> router = TextExtractorRouter()
        >>> extracted = router.extract(pdf_bytes, "statement.pdf")
        >>> print(extracted.method, extracted.confidence)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        extractors: dict[str, TextExtractor] | None = None,
        pdf_ocr: TextExtractor | None = None,
    ):
        """Initialize the router.

        Args:
            settings: Application settings (OCR languages, PDF text threshold)
            extractors: Override the extractor used per file type
            pdf_ocr: Extractor used when a PDF has too little embedded text
        """
        self.settings = settings or get_settings()
        ocr = OcrEngine(self.settings.ocr_languages)
        self.extractors: dict[str, TextExtractor] = {
            "pdf": PdfTextExtractor(),
            "csv": CsvExtractor(),
            "ofx": OfxExtractor(),
            "image": ImageOcrExtractor(ocr),
            "text": PlainTextExtractor(),
        }
        if extractors:
            self.extractors.update(extractors)
        self.pdf_ocr = pdf_ocr or PdfImageOcrExtractor(ocr, dpi=self.settings.ocr_dpi)

    def extract(
        self,
        data: bytes,
        filename: str | None = None,
        mime_type: str | None = None,
        password: str | None = None,
    ) -> ExtractedText:
        """Extract text from a file.

        Args:
            data: File content as bytes
            filename: Original file name
            mime_type: Declared MIME type
            password: Optional password for encrypted PDFs

        Returns:
            ExtractedText (never empty)

        Raises:
            UnsupportedFormatError: If no extractor matches the file
            ExtractionError: If extraction fails or produces no text
        """
        if not data:
            raise ExtractionError("EXT_001", {"reason": "empty file"})

        file_type = detect_file_type(filename, mime_type, data)
        extractor = self.extractors.get(file_type)
        if extractor is None:
            raise UnsupportedFormatError(details={"file_type": file_type})

        logger.info("Extracting text", extra={"file_type": file_type, "size_bytes": len(data)})
        result = extractor.extract(data, password=password)

        if file_type == "pdf" and len(result.text.strip()) < self.settings.pdf_min_text_chars:
            logger.info(
                "PDF text layer too short, falling back to OCR",
                extra={"chars": len(result.text.strip())},
            )
            result = self.pdf_ocr.extract(data, password=password)

        if not result.text.strip():
            raise ExtractionError("EXT_001", {"file_type": file_type, "method": result.method})

        result.metadata.setdefault("file_type", file_type)
        logger.info(
            "Text extracted",
            extra={"method": result.method, "chars": len(result.text), "confidence": result.confidence},
        )
        return result
