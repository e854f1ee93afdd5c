"""LLM processing module."""
from .models import Category, CategorizedMerchant, ExtractedExpense
from .extractor import ExpenseExtractor
from .categorizer import MerchantCategorizer
from .merchant_cache import MerchantCache
from .client import create_client

__all__ = [
    "Category",
    "CategorizedMerchant",
    "ExtractedExpense",
    "ExpenseExtractor",
    "MerchantCategorizer",
    "MerchantCache",
    "create_client",
]
