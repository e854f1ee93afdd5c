"""Data models for LLM processing."""
import re
import unicodedata
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


class Category(str, Enum):
    """Fixed spending taxonomy; values are the labels stored on transactions."""
    HEALTH = "Salud"
    EDUCATION = "Educación"
    ENTERTAINMENT = "Entretenimiento"
    TRAVEL = "Viajes"
    FOOD_AND_RESTAURANTS = "Comida & Restaurantes"
    TRANSPORT = "Transporte"
    SERVICES = "Servicios"
    SHOPPING = "Compras"
    HOME = "Hogar"
    OTHER = "Otros"
    # Marker outside the taxonomy proper: not even a default could be assigned
    INDETERMINATE = "Indeterminado"

    @classmethod
    def taxonomy(cls) -> list["Category"]:
        return [c for c in cls if c is not cls.INDETERMINATE]

    @classmethod
    def coerce(cls, value: Optional[str]) -> Optional["Category"]:
        """Map a label (stored Spanish value or English name) onto a member, else None."""
        if not value:
            return None
        return _LOOKUP.get(_category_key(value))


_ENGLISH_LABELS = {
    Category.HEALTH: "Health",
    Category.EDUCATION: "Education",
    Category.ENTERTAINMENT: "Entertainment",
    Category.TRAVEL: "Travel",
    Category.FOOD_AND_RESTAURANTS: "Food&Restaurants",
    Category.TRANSPORT: "Transport",
    Category.SERVICES: "Services",
    Category.SHOPPING: "Shopping",
    Category.HOME: "Home",
    Category.OTHER: "Other",
    Category.INDETERMINATE: "Indeterminate",
}


def _category_key(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "", ascii_value.lower())


_LOOKUP = {}
for _member in Category:
    _LOOKUP[_category_key(_member.value)] = _member
    _LOOKUP[_category_key(_member.name)] = _member
    _LOOKUP[_category_key(_ENGLISH_LABELS[_member])] = _member


@dataclass
class ExtractedExpense:
    """Candidate expense pulled out of one email."""
    merchant: str  # label as it appears in the email
    amount: Decimal  # positive, two decimal places
    bank: str
    payment_method: Optional[str] = None
    date: Optional[date] = None  # UTC calendar date, when the email states one


@dataclass
class CategorizedMerchant:
    """Resolved merchant name and category label as returned by the categorizer."""
    name: str
    category: str
    degraded: bool = False  # True when the categorizer fell back to a default
