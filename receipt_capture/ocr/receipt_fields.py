"""Receipt field extraction: date, total amount and payee.

Two parsers feed the same :class:`ReceiptFields` result: a rule-based
parser for raw OCR text and a parser for structured (JSON) replies from
an external recognition service, which falls back to per-field regexes
when the reply is not valid JSON.
"""

import json
import re
from dataclasses import asdict, dataclass
from datetime import date

from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ReceiptFields:
    """Fields recognized on a receipt; every field may be missing."""

    date: str | None = None
    amount: int | None = None
    payee: str | None = None
    raw_text: str = ""
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.date is None and self.amount is None and self.payee is None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


# (regex, component order)
_DATE_PATTERNS: list[tuple[str, str]] = [
    (r"(\d{4})\s*[/\-.年]\s*(\d{1,2})\s*[/\-.月]\s*(\d{1,2})", "ymd"),
    (r"\b(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})\b", "mdy"),
]

_TOTAL_PATTERNS: list[str] = [
    r"(?:合計|総合計|お支払(?:金額|い)?|ご請求(?:金)?額)"
    r"\s*[:：]?\s*[¥￥$]?\s*([\d,]+(?:\.\d+)?)",
    r"(?<![Ss]ub)(?<![Ss]ub\s)(?:Grand\s*Total|Total\s*Due|Amount\s*Due|Total)"
    r"\s*[:：]?\s*[¥￥$]?\s*([\d,]+(?:\.\d+)?)",
]

_CURRENCY_PATTERNS: list[str] = [
    r"[¥￥$]\s*([\d,]+(?:\.\d+)?)",
    r"([\d,]+)\s*円",
]

_PHONE_PATTERN = r"(?:TEL|Tel|tel|電話)|\d{2,4}-\d{2,4}-\d{3,4}"
_NAME_PATTERN = r"[^\W\d_]{2,}"


def _make_date(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date(text: str) -> str | None:
    """Find the first valid date in ``text`` and return it as ISO-8601.

    Supports ``YYYY-MM-DD``, ``YYYY/MM/DD``, ``YYYY.MM.DD``,
    ``YYYY年M月D日`` and ``MM/DD/YYYY`` (``DD/MM/YYYY`` when the first
    number cannot be a month).
    """
    for pattern, order in _DATE_PATTERNS:
        for match in re.finditer(pattern, text):
            a, b, c = (int(g) for g in match.groups())
            if order == "ymd":
                result = _make_date(a, b, c)
            else:
                result = _make_date(c, a, b) or _make_date(c, b, a)
            if result:
                return result
    return None


def parse_amount(value: object) -> int | None:
    """Convert an amount to a positive integer, dropping separators and cents."""
    if value is None or value == "null" or isinstance(value, bool):
        return None
    try:
        amount = int(float(str(value).replace(",", "").strip()))
    except ValueError:
        return None
    return amount if amount > 0 else None


def _find_amount(text: str) -> int | None:
    for pattern in _TOTAL_PATTERNS:
        matches = re.findall(pattern, text, re.IGNORECASE)
        amounts = [a for a in (parse_amount(m) for m in matches) if a is not None]
        if amounts:
            return amounts[-1]

    amounts = [
        a
        for pattern in _CURRENCY_PATTERNS
        for a in (parse_amount(m) for m in re.findall(pattern, text))
        if a is not None
    ]
    return max(amounts) if amounts else None


def _find_payee(text: str) -> str | None:
    for line in text.splitlines():
        line = line.strip()
        if not line or not re.search(_NAME_PATTERN, line):
            continue
        if parse_date(line) or re.search(_PHONE_PATTERN, line):
            continue
        if any(re.search(p, line, re.IGNORECASE) for p in _TOTAL_PATTERNS):
            continue
        return line
    return None


def parse_receipt_text(text: str) -> ReceiptFields:
    """Extract receipt fields from raw OCR text.

    Args:
        text: OCR output for one receipt.

    Returns:
        Parsed fields with ``raw_text`` set to the input.
    """
    fields = ReceiptFields(
        date=parse_date(text),
        amount=_find_amount(text),
        payee=_find_payee(text),
        raw_text=text,
    )
    logger.info(
        "Parsed receipt text: date=%s amount=%s payee=%s",
        fields.date,
        fields.amount,
        fields.payee,
    )
    return fields


def _clean_payee(value: object) -> str | None:
    if value is None or value == "null":
        return None
    payee = str(value).strip()
    return payee or None


def parse_structured_response(text: str) -> ReceiptFields:
    """Parse a JSON reply (optionally inside a json code fence).

    Falls back to regex extraction of each field when the payload is not
    a JSON object.

    Args:
        text: Reply text from a recognition service.

    Returns:
        Parsed fields with ``raw_text`` set to the reply.
    """
    fence = re.search(r"```json\s*(.*?)\s*```", text, re.DOTALL)
    payload = fence.group(1) if fence else text

    try:
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Reply is not a JSON object")
    except ValueError as exc:
        logger.warning("Structured reply is not valid JSON (%s), using fallback", exc)
        return _parse_fallback(text)

    raw_date = data.get("date")
    return ReceiptFields(
        date=parse_date(str(raw_date)) if raw_date and raw_date != "null" else None,
        amount=parse_amount(data.get("amount")),
        payee=_clean_payee(data.get("payee")),
        raw_text=text,
    )


def _parse_fallback(text: str) -> ReceiptFields:
    date_match = re.search(r"(\d{4})-(\d{2})-(\d{2})", text)
    amount_match = re.search(r'"amount":\s*(\d+)', text)
    payee_match = re.search(r'"payee":\s*"([^"]+)"', text)
    return ReceiptFields(
        date=_make_date(*(int(g) for g in date_match.groups())) if date_match else None,
        amount=parse_amount(amount_match.group(1)) if amount_match else None,
        payee=_clean_payee(payee_match.group(1)) if payee_match else None,
        raw_text=text,
    )
