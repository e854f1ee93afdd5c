"""LLM-based expense extraction from bank notification emails."""
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .json_response import parse_json_response
from .models import ExtractedExpense
from mailspend.gmail.models import EmailImage
from mailspend.utils.exceptions import LLMError
from mailspend.utils.logger import get_logger
from mailspend.utils.retry import RETRYABLE_LLM_ERRORS, retry_with_backoff

logger = get_logger()

EXTRACTION_INSTRUCTIONS = """You extract expense data from bank notification emails \
(for example BBVA, BCP, Interbank, Scotiabank or Yape in Peru). The emails were \
forwarded by the account holder, so ignore the forwarding header.

Extract from the email:
- local: the merchant or establishment where the purchase was made
- amount: the amount charged, a number only, without currency symbols
- bank: the bank's name
- paymentMethod: credit card, debit card, transfer, etc., when stated
- date: the transaction date as YYYY-MM-DD, when stated

IMPORTANT:
- If the email is NOT about a confirmed transaction or expense (promotions, \
statements, pending authorizations, security alerts), answer null
- amount must be a positive number
- If the email lists several transactions, extract only the first one

Answer ONLY with a JSON object or null, without explanations."""

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")
_THOUSANDS_RE = re.compile(r"^\d{1,3}(,\d{3})+(\.\d+)?$")
_DECIMAL_COMMA_RE = re.compile(r"^\d+,\d{1,2}$")
_CENT = Decimal("0.01")
_MAX_AMOUNT = Decimal("1e12")

_DATE_FORMATS = ["%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d"]


class ExpensePayload(BaseModel):
    """Pydantic schema for the extraction answer; types are loose on purpose."""
    model_config = ConfigDict(extra="ignore")

    local: Optional[str] = Field(default=None, description="Merchant label as printed in the email")
    amount: Any = Field(default=None, description="Amount charged")
    bank: Optional[str] = Field(default=None, description="Bank name")
    paymentMethod: Optional[str] = Field(default=None, description="Payment method")
    date: Optional[str] = Field(default=None, description="Transaction date, YYYY-MM-DD")


def parse_amount(value: Any) -> Optional[Decimal]:
    """Coerce a model-provided amount to a positive two-place Decimal, else None."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    elif isinstance(value, str):
        if re.search(r"-\s*\d", value):
            return None
        # Drop currency symbols/codes around the number ("S/ 156.40", "156.40 PEN")
        text = re.sub(r"^[^\d]+|[^\d]+$", "", value.strip())
        if _THOUSANDS_RE.match(text):
            text = text.replace(",", "")
        elif _DECIMAL_COMMA_RE.match(text):
            text = text.replace(",", ".")
        if not _AMOUNT_RE.match(text):
            return None
    else:
        return None

    try:
        amount = Decimal(text)
        if not amount.is_finite() or amount >= _MAX_AMOUNT:
            return None
        amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None

    if amount <= 0:
        return None
    return amount


def parse_utc_date(value: Optional[str]) -> Optional[date]:
    """Interpret a model-provided date as a UTC calendar date; None when unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None

    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc)
        return parsed.date()

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


class ExpenseExtractor:
    """Turns one email into an ExtractedExpense, or None when it is not a transaction."""

    def __init__(
        self,
        client: genai.Client,
        model_name: str = "gemini-2.5-flash-lite",
        temperature: float = 0.1,
        prompt_html_chars: int = 8000
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.prompt_html_chars = prompt_html_chars

    def extract(
        self,
        html_body: str,
        subject: str,
        images: Optional[List[EmailImage]] = None
    ) -> Optional[ExtractedExpense]:
        """
        Extract a candidate expense from an email.

        None covers both "not a transaction" and a failed model call; the latter
        is retried first and logged at error level, the former is never retried.
        Never raises.
        """
        try:
            response_text = self._request_extraction(html_body or "", subject or "", images or [])
        except Exception as e:
            logger.error(f"Expense extraction failed for '{subject}': {e}")
            return None

        try:
            data = parse_json_response(response_text)
        except LLMError as e:
            logger.warning(f"Unusable extraction answer for '{subject}': {e}")
            return None

        try:
            expense = self._to_expense(data)
        except Exception as e:
            logger.warning(f"Unusable extraction answer for '{subject}': {e}")
            return None

        if expense is None:
            logger.debug(f"No transaction found in '{subject}'")
        return expense

    @retry_with_backoff(max_retries=2, retryable_exceptions=RETRYABLE_LLM_ERRORS)
    def _request_extraction(self, html_body: str, subject: str, images: List[EmailImage]) -> str:
        contents = [self._build_prompt(html_body, subject)]
        for image in images:
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.mime_type))

        response = self.client.models.generate_content(
            model=self.model_name,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=EXTRACTION_INSTRUCTIONS,
                response_mime_type="application/json",
                temperature=self.temperature
            )
        )
        return response.text or ""

    def _build_prompt(self, html_body: str, subject: str) -> str:
        return f"Subject: {subject}\n\nHTML content:\n{html_body[:self.prompt_html_chars]}"

    @staticmethod
    def _to_expense(data: Any) -> Optional[ExtractedExpense]:
        """Validate the answer; anything missing merchant or amount is absent."""
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict) or not data:
            return None

        try:
            payload = ExpensePayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Extraction answer does not match expected schema: {e}")
            return None

        merchant = (payload.local or "").strip()
        if not merchant:
            return None

        amount = parse_amount(payload.amount)
        if amount is None:
            logger.debug(f"Rejected amount {payload.amount!r} for '{merchant}'")
            return None

        payment_method = (payload.paymentMethod or "").strip() or None
        return ExtractedExpense(
            merchant=merchant,
            amount=amount,
            bank=(payload.bank or "").strip(),
            payment_method=payment_method,
            date=parse_utc_date(payload.date)
        )
