"""Receipt text extraction.

No OCR engine is wired in yet: extract_text_from_receipt returns a canned
receipt and runs it through the same parser a real engine's output would go
through.
"""

import logging
import re
import time
from datetime import datetime, timedelta

from coliving_platform.domain.models import utcnow

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "SAMPLE RECEIPT\nTotal: $25.99\nDate: 2025-08-15\nMerchant: Sample Store"
PLACEHOLDER_CONFIDENCE = 0.85

AMOUNT_PATTERNS = [
    re.compile(r"total[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
    re.compile(r"amount[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
    re.compile(r"\$(\d+\.\d{2})"),
    re.compile(r"(\d+\.\d{2})\s*$", re.MULTILINE),
]
MAX_RECEIPT_AMOUNT = 10_000

MERCHANT_PATTERNS = [
    re.compile(r"^([A-Z][A-Z &'-]+[A-Z])", re.MULTILINE),
    re.compile(
        r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s*(?:store|shop|market|restaurant|cafe)",
        re.IGNORECASE,
    ),
]

# pattern -> strptime formats to try on the match
DATE_PATTERNS = [
    (re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4})"), ["%m/%d/%Y", "%m/%d/%y"]),
    (re.compile(r"(\d{4}-\d{1,2}-\d{1,2})"), ["%Y-%m-%d"]),
    (re.compile(r"(\d{1,2}-\d{1,2}-\d{2,4})"), ["%m-%d-%Y", "%m-%d-%y"]),
    (
        re.compile(
            r"((?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{1,2},?\s+\d{4})",
            re.IGNORECASE,
        ),
        ["%b %d %Y", "%B %d %Y"],
    ),
]

ITEM_PRICE_RE = re.compile(r"\$\d+\.\d{2}")
MIN_ITEM_LINE_LENGTH = 10


def _parse_amount(raw: str) -> float | None:
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(raw)
        if not match:
            continue
        try:
            amount = float(match.group(1))
        except ValueError:
            continue
        if 0 < amount < MAX_RECEIPT_AMOUNT:
            return amount
    return None


def _parse_date(raw: str) -> datetime | None:
    for pattern, formats in DATE_PATTERNS:
        match = pattern.search(raw)
        if not match:
            continue
        text = match.group(1).replace(",", "")
        for fmt in formats:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return None


def parse_receipt_text(raw: str) -> dict:
    """Pull amount, merchant, date and priced line items out of receipt text."""
    result: dict = {}

    amount = _parse_amount(raw)
    if amount is not None:
        result["amount"] = amount

    for pattern in MERCHANT_PATTERNS:
        match = pattern.search(raw)
        if match:
            result["merchant"] = match.group(1).strip()
            break

    parsed_date = _parse_date(raw)
    if parsed_date is not None:
        result["date"] = parsed_date

    items = [
        line.strip()
        for line in raw.splitlines()
        if line.strip() and ITEM_PRICE_RE.search(line) and len(line) > MIN_ITEM_LINE_LENGTH
    ]
    if items:
        result["items"] = items
    return result


def extract_text_from_receipt(data: bytes) -> dict:
    """Returns {success, extracted_text, error, processing_time_ms}."""
    started = time.monotonic()
    extracted = {"raw_text": PLACEHOLDER_TEXT, "confidence": PLACEHOLDER_CONFIDENCE}
    extracted.update(parse_receipt_text(PLACEHOLDER_TEXT))
    elapsed = int((time.monotonic() - started) * 1000)
    logger.info("Receipt OCR (%d bytes) finished in %d ms", len(data), elapsed)
    return {
        "success": True,
        "extracted_text": extracted,
        "error": None,
        "processing_time_ms": elapsed,
    }


def validate_extracted_text(extracted: dict, now: datetime | None = None) -> dict:
    """Score how trustworthy an extraction is.

    Valid when the adjusted confidence stays above 0.5 with fewer than three
    issues.
    """
    now = now or utcnow()
    issues: list[str] = []
    confidence = extracted.get("confidence", 0.0)

    amount = extracted.get("amount")
    if not amount:
        issues.append("No amount detected")
        confidence *= 0.7
    if not extracted.get("merchant"):
        issues.append("No merchant name detected")
        confidence *= 0.8
    receipt_date = extracted.get("date")
    if not receipt_date:
        issues.append("No date detected")
        confidence *= 0.9

    if amount and (amount < 0.01 or amount > 50_000):
        issues.append("Amount seems unreasonable")
        confidence *= 0.6

    if receipt_date:
        one_year_ago = now - timedelta(days=365)
        if receipt_date < one_year_ago or receipt_date > now + timedelta(days=7):
            issues.append("Date seems unreasonable")
            confidence *= 0.8

    return {
        "is_valid": confidence > 0.5 and len(issues) < 3,
        "confidence": round(confidence, 4),
        "issues": issues,
    }
