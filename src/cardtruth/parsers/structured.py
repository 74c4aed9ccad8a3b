"""Structured statement ingestion (CSV/TSV and OFX/QFX exports).

Structured exports are the most reliable source of billing facts, so the
resulting ``StructuredData`` layer carries a high confidence (0.95). Values
are read from labelled rows (CSV) or tags (OFX); transaction rows are summed
into payments, purchases, fees and interest.
"""

import logging
import re
from datetime import date
from decimal import Decimal
from pathlib import PurePath

from cardtruth.core.exceptions import UnsupportedFormatError
from cardtruth.parsers.dates import DATE_RE, add_months, parse_date
from cardtruth.parsers.extractor import decode_text, detect_file_type, read_delimited
from cardtruth.parsers.money import parse_amount
from cardtruth.schemas.layers import StructuredData
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType

logger = logging.getLogger(__name__)

STRUCTURED_CONFIDENCE = 0.95
NO_TOTALS_CONFIDENCE = 0.85
DEFAULT_PERIOD_WARNING = "Statement period not found; assuming the month ending today"

_OFX_VALUE = r"<{tag}>\s*([^<\r\n]+)"
_STMTTRN_RE = re.compile(r"<STMTTRN>(.*?)(?=</STMTTRN>|<STMTTRN>|</BANKTRANLIST>|\Z)", re.IGNORECASE | re.DOTALL)
_OFX_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})")

# Whole-word keywords; substrings such as "coffee" or "pagoda" must not match.
_INTEREST_RE = re.compile(r"\b(?:interest|inter[eé]s(?:es)?)\b")
_FEE_RE = re.compile(r"\b(?:fees?|comisi[oó]n(?:es)?)\b")
_INSTALLMENT_RE = re.compile(r"\b(?:installments?|plan it|msi)\b")
_PAYMENT_RE = re.compile(r"\b(?:payments?|pagos?)\b")
_PURCHASE_RE = re.compile(r"\b(?:purchases?|charges?|compras?)\b")

OFX_TYPE_MAP: dict[str, TransactionType] = {
    "payment": TransactionType.PAYMENT,
    "credit": TransactionType.PAYMENT,
    "debit": TransactionType.PURCHASE,
    "purchase": TransactionType.PURCHASE,
    "pos": TransactionType.PURCHASE,
    "fee": TransactionType.FEE,
    "srvchg": TransactionType.FEE,
    "int": TransactionType.INTEREST,
    "interest": TransactionType.INTEREST,
}

# CSV summary rows: (field, keywords); first match wins per row.
CSV_SUMMARY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("minimum_due", ("minimum due", "minimum payment", "min payment", "pago minimo", "pago mínimo")),
    ("payment_due_date", ("payment due date", "due date", "fecha limite", "fecha límite")),
    ("aggregate_installment_due", ("installments due", "installment due", "installment")),
    ("statement_balance", ("statement balance", "current balance", "new balance", "saldo al corte", "nuevo saldo")),
    ("period_end", ("statement date", "period end", "closing date", "fecha de corte")),
    ("period_start", ("period start", "opening date", "billing period")),
]


class StructuredParser:
    """Parses CSV and OFX/QFX statement exports into ``StructuredData``.

    Example:
        >>> data = StructuredParser().parse_file(raw_bytes, "statement.ofx")
        >>> data.statement_balance, data.period_end
        (Decimal('2074.43'), datetime.date(2024, 10, 31))
    """

    def parse_file(self, data: bytes, filename: str | None, today: date | None = None) -> StructuredData:
        """Decode a raw upload and parse it.

        Raises:
            UnsupportedFormatError: The file is not CSV/TSV or OFX/QFX text
        """
        file_type = detect_file_type(filename, data=data)
        if file_type not in ("csv", "ofx"):
            raise UnsupportedFormatError(details={"file_type": file_type, "expected": "csv, ofx or qfx"})
        text = decode_text(data)
        if text is None:
            raise UnsupportedFormatError(details={"reason": "structured file is not text"})
        if file_type == "ofx" and filename and PurePath(filename).suffix.lower() == ".qfx":
            file_type = "qfx"
        return self.parse(text, file_type, today=today)

    def parse(self, text: str, file_type: str, today: date | None = None) -> StructuredData:
        """Parse decoded text.

        Args:
            text: Decoded file content
            file_type: "csv", "ofx" or "qfx"
            today: Reference date for the default period

        Returns:
            StructuredData for the ``L2_structured`` layer
        """
        if file_type == "csv":
            values = self._parse_csv(text)
        elif file_type in ("ofx", "qfx"):
            values = self._parse_ofx(text)
        else:
            raise UnsupportedFormatError(details={"file_type": file_type})

        warnings: list[str] = []
        if values.get("period_start") is None or values.get("period_end") is None:
            today = today or date.today()
            values["period_end"] = values.get("period_end") or today
            values["period_start"] = values.get("period_start") or add_months(values["period_end"], -1)
            warnings.append(DEFAULT_PERIOD_WARNING)

        has_totals = "statement_balance" in values or "minimum_due" in values
        result = StructuredData(
            **values,
            warnings=warnings,
            confidence=STRUCTURED_CONFIDENCE if has_totals else NO_TOTALS_CONFIDENCE,
            source=file_type,
        )
        logger.info(
            "Structured file parsed",
            extra={
                "source": file_type,
                "transactions": len(result.transactions),
                "has_totals": has_totals,
                "confidence": result.confidence,
            },
        )
        return result

    # ---------------------------------------------------------------------- CSV

    def _parse_csv(self, text: str) -> dict:
        values: dict = {}
        totals = {"payments": Decimal("0"), "purchases": Decimal("0"), "fees": Decimal("0"), "interest": Decimal("0")}
        transactions: list[LedgerTransaction] = []
        columns: dict[str, int] | None = None

        for row in read_delimited(text, keep_empty=True):
            header = _transaction_header([cell.lower() for cell in row])
            if header is not None:
                columns = header
                continue

            if columns is not None and len(row) > max(columns.values()):
                tx = _csv_transaction(row, columns)
                if tx is not None:
                    transactions.append(tx)
                    continue

            cells = [cell for cell in row if cell]
            label = " ".join(
                cell.lower() for cell in cells if parse_amount(cell) is None and not DATE_RE.search(cell)
            )
            self._apply_csv_row(label, cells, values, totals)

        for tx in transactions:
            _add_to_totals(totals, tx)

        values.update(totals)
        values["transactions"] = transactions
        return values

    @staticmethod
    def _apply_csv_row(label: str, cells: list[str], values: dict, totals: dict) -> None:
        for field_name, keywords in CSV_SUMMARY_KEYWORDS:
            if not any(keyword in label for keyword in keywords):
                continue
            if field_name in ("period_end", "period_start", "payment_due_date"):
                dates = _dates_in(cells)
                if not dates:
                    return
                if field_name == "period_start" and len(dates) >= 2:
                    values.setdefault("period_start", dates[0])
                    values.setdefault("period_end", dates[-1])
                else:
                    values.setdefault(field_name, dates[0])
                return
            amount = _last_amount(cells)
            if amount is not None:
                values.setdefault(field_name, abs(amount))
            return

        amount = _last_amount(cells)
        if amount is None or amount == 0:
            return
        if _PAYMENT_RE.search(label):
            totals["payments"] += abs(amount)
        elif _INTEREST_RE.search(label):
            totals["interest"] += abs(amount)
        elif _FEE_RE.search(label):
            totals["fees"] += abs(amount)
        elif _PURCHASE_RE.search(label):
            totals["purchases"] += abs(amount)

    # ---------------------------------------------------------------------- OFX

    def _parse_ofx(self, text: str) -> dict:
        values: dict = {}

        balance = _ofx_amount(text, "BALAMT")
        if balance is not None:
            values["statement_balance"] = abs(balance)
        minimum = _ofx_amount(text, "MINPMTDUE") or _ofx_amount(text, "MINPAYMENT")
        if minimum is not None:
            values["minimum_due"] = abs(minimum)
        installments = _ofx_amount(text, "INSTALLMENTDUE")
        if installments is not None:
            values["aggregate_installment_due"] = abs(installments)

        for field_name, tag in (("period_start", "DTSTART"), ("period_end", "DTEND"), ("payment_due_date", "PAYMENTDUE")):
            parsed = _ofx_date(_ofx_value(text, tag))
            if parsed is not None:
                values[field_name] = parsed

        totals = {"payments": Decimal("0"), "purchases": Decimal("0"), "fees": Decimal("0"), "interest": Decimal("0")}
        transactions = []
        for block in _STMTTRN_RE.findall(text):
            tx = _ofx_transaction(block)
            if tx is not None:
                transactions.append(tx)
                _add_to_totals(totals, tx)

        values.update(totals)
        values["transactions"] = transactions
        return values


def _transaction_header(lowered: list[str]) -> dict[str, int] | None:
    """Column map for a ``date, description, amount`` header row."""
    columns = {}
    for index, cell in enumerate(lowered):
        if "date" in cell or cell == "fecha":
            columns.setdefault("date", index)
        elif cell in ("description", "merchant", "payee", "name", "descripcion", "descripción", "concepto"):
            columns.setdefault("description", index)
        elif cell in ("amount", "monto", "importe"):
            columns.setdefault("amount", index)
        elif cell in ("type", "tipo"):
            columns.setdefault("type", index)
    if {"date", "description", "amount"} <= columns.keys():
        return columns
    return None


def _csv_transaction(cells: list[str], columns: dict[str, int]) -> LedgerTransaction | None:
    posted = parse_date(cells[columns["date"]])
    amount = parse_amount(cells[columns["amount"]])
    if posted is None or amount is None:
        return None
    description = cells[columns["description"]]
    type_hint = cells[columns["type"]].lower() if "type" in columns and columns["type"] < len(cells) else ""
    return LedgerTransaction(
        transaction_date=posted,
        amount=amount,
        description=description,
        type=_classify(f"{type_hint} {description}".lower(), amount, credit_sign=-1),
    )


def _ofx_transaction(block: str) -> LedgerTransaction | None:
    amount = parse_amount(_ofx_value(block, "TRNAMT"))
    posted = _ofx_date(_ofx_value(block, "DTPOSTED"))
    if amount is None or posted is None:
        return None
    trn_type = (_ofx_value(block, "TRNTYPE") or "").strip().lower()
    description = (_ofx_value(block, "NAME") or _ofx_value(block, "MEMO") or "").strip()
    tx_type = OFX_TYPE_MAP.get(trn_type) or _classify(description.lower(), amount, credit_sign=1)
    return LedgerTransaction(transaction_date=posted, amount=amount, description=description, type=tx_type)


def _classify(text: str, amount: Decimal, credit_sign: int) -> TransactionType:
    """Classify by keyword, then by sign (``credit_sign`` is the sign of a payment)."""
    if _INTEREST_RE.search(text):
        return TransactionType.INTEREST
    if _FEE_RE.search(text):
        return TransactionType.FEE
    if _INSTALLMENT_RE.search(text):
        return TransactionType.INSTALLMENT
    if _PAYMENT_RE.search(text):
        return TransactionType.PAYMENT
    if amount * credit_sign > 0:
        return TransactionType.PAYMENT
    return TransactionType.PURCHASE


def _add_to_totals(totals: dict, tx: LedgerTransaction) -> None:
    if tx.type == TransactionType.PAYMENT:
        totals["payments"] += tx.amount
    elif tx.type == TransactionType.FEE:
        totals["fees"] += tx.amount
    elif tx.type == TransactionType.INTEREST:
        totals["interest"] += tx.amount
    else:
        totals["purchases"] += tx.amount


def _last_amount(cells: list[str]) -> Decimal | None:
    for cell in reversed(cells):
        if DATE_RE.search(cell):
            continue
        amount = parse_amount(cell)
        if amount is not None:
            return amount
    return None


def _dates_in(cells: list[str]) -> list[date]:
    return [parsed for parsed in (parse_date(cell) for cell in cells) if parsed is not None]


def _ofx_value(text: str, tag: str) -> str | None:
    match = re.search(_OFX_VALUE.format(tag=tag), text, re.IGNORECASE)
    return match.group(1).strip() if match else None


def _ofx_amount(text: str, tag: str) -> Decimal | None:
    return parse_amount(_ofx_value(text, tag))


def _ofx_date(value: str | None) -> date | None:
    """OFX dates are ``YYYYMMDD[HHMMSS[.XXX][TZ]]``."""
    if not value:
        return None
    match = _OFX_DATE_RE.match(value)
    if not match:
        return parse_date(value)
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None
