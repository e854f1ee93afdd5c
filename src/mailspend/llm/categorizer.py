"""LLM-based merchant name resolution and categorization."""
import json
from typing import Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field

from .json_response import parse_json_response
from .merchant_cache import MerchantCache
from .models import CategorizedMerchant, Category
from mailspend.utils.logger import get_logger
from mailspend.utils.retry import RETRYABLE_LLM_ERRORS, retry_with_backoff

logger = get_logger()


class CategoryPayload(BaseModel):
    """Pydantic schema for the categorization answer."""
    model_config = ConfigDict(extra="ignore")

    actualLocal: Optional[str] = Field(default=None, description="Real business name")
    category: Optional[str] = Field(default=None, description="One taxonomy label")


def _build_instructions() -> str:
    categories = [c.value for c in Category.taxonomy()]
    return f"""You identify businesses from the abbreviated labels printed on bank notifications \
and categorize them.

1. Identify the REAL business name behind the label (e.g. "WONG SUPERMERCADO" -> "Wong").
2. Assign exactly ONE of these categories (use the label exactly as written):
{json.dumps(categories, ensure_ascii=False, indent=2)}

IMPORTANT:
- Use your knowledge of the given country to recognize local businesses
- If you cannot identify the business, keep the label you were given

Answer ONLY with a JSON object:
{{"actualLocal": "Real business name", "category": "Category"}}"""


CATEGORIZATION_INSTRUCTIONS = _build_instructions()


class MerchantCategorizer:
    """Resolves a merchant's display name and category. Always returns a result."""

    def __init__(
        self,
        client: genai.Client,
        model_name: str = "gemini-2.5-flash-lite",
        temperature: float = 0.2,
        cache: Optional[MerchantCache] = None
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.cache = cache

    def categorize(self, merchant: str, country: str) -> CategorizedMerchant:
        """
        Categorize a raw merchant label in a country context.

        Falls back to the label unchanged with category Otros on any failure,
        and to the Indeterminado marker when there is no label to work with.
        """
        if not merchant or not merchant.strip():
            return CategorizedMerchant(name=merchant or "", category=Category.INDETERMINATE.value, degraded=True)

        if self.cache:
            cached = self.cache.lookup(country, merchant)
            if cached:
                return CategorizedMerchant(name=cached.name, category=cached.category)

        try:
            response_text = self._request_categorization(merchant, country)
            payload = CategoryPayload.model_validate(parse_json_response(response_text))
        except Exception as e:
            logger.warning(f"Categorization degraded for '{merchant}': {e}")
            return self._fallback(merchant)

        category = (payload.category or "").strip()
        if not category:
            logger.warning(f"Categorizer returned no category for '{merchant}'")
            return self._fallback(merchant)

        result = CategorizedMerchant(name=(payload.actualLocal or "").strip() or merchant, category=category)

        if self.cache and Category.coerce(category) in Category.taxonomy():
            self.cache.add_mapping(country, merchant, result.name, Category.coerce(category).value)

        return result

    @staticmethod
    def _fallback(merchant: str) -> CategorizedMerchant:
        return CategorizedMerchant(name=merchant, category=Category.OTHER.value, degraded=True)

    @retry_with_backoff(max_retries=2, retryable_exceptions=RETRYABLE_LLM_ERRORS)
    def _request_categorization(self, merchant: str, country: str) -> str:
        response = self.client.models.generate_content(
            model=self.model_name,
            contents=f"Country: {country or 'unknown'}\nMerchant label: {merchant}",
            config=types.GenerateContentConfig(
                system_instruction=CATEGORIZATION_INSTRUCTIONS,
                response_mime_type="application/json",
                temperature=self.temperature
            )
        )
        return response.text or ""
