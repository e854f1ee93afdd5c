"""Merchant-to-category mapping cache."""
import json
import re
import threading
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import Levenshtein

from mailspend.utils.logger import get_app_dir, get_logger

logger = get_logger()


@dataclass
class CachedMerchant:
    name: str
    category: str


class MerchantCache:
    """Remembers categorizer answers per country, with fuzzy matching of raw labels."""

    def __init__(self, fuzzy_threshold: int = 2, min_fuzzy_length: int = 6, cache_dir: Optional[Path] = None):
        """
        Initialize merchant cache.

        Args:
            fuzzy_threshold: Maximum Levenshtein distance for fuzzy match
            min_fuzzy_length: Labels shorter than this only match exactly
            cache_dir: Directory holding one JSON file per country
        """
        self.fuzzy_threshold = fuzzy_threshold
        self.min_fuzzy_length = min_fuzzy_length
        self.cache_dir = cache_dir or get_app_dir() / "merchants"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def lookup(self, country: str, merchant: str) -> Optional[CachedMerchant]:
        """
        Look up a previously categorized merchant.

        Args:
            country: Country context the merchant was categorized under
            merchant: Raw merchant label from the email

        Returns:
            CachedMerchant or None if not found
        """
        mappings = self._load_mappings(country)
        normalized = self._normalize_merchant(merchant)

        if normalized in mappings:
            logger.debug(f"Exact merchant match: {merchant} -> {mappings[normalized]}")
            return CachedMerchant(**mappings[normalized])

        if len(normalized) < self.min_fuzzy_length:
            return None

        best = None
        best_distance = self.fuzzy_threshold + 1
        for cached_merchant, entry in mappings.items():
            if len(cached_merchant) < self.min_fuzzy_length:
                continue
            distance = Levenshtein.distance(normalized, cached_merchant)
            if distance < best_distance:
                best, best_distance = cached_merchant, distance

        if best is not None:
            logger.debug(f"Fuzzy merchant match: {merchant} -> {best} (distance: {best_distance})")
            return CachedMerchant(**mappings[best])

        return None

    def add_mapping(self, country: str, merchant: str, name: str, category: str) -> None:
        """Remember the resolved name and category for a raw merchant label."""
        normalized = self._normalize_merchant(merchant)
        with self._lock:
            mappings = self._load_mappings(country)
            if normalized not in mappings:
                mappings[normalized] = {"name": name, "category": category}
                self._save_mappings(country, mappings)
                logger.debug(f"Added merchant mapping: {merchant} -> {name} / {category}")

    def get_all_mappings(self, country: str) -> Dict[str, Dict[str, str]]:
        return self._load_mappings(country)

    def _cache_file(self, country: str) -> Path:
        return self.cache_dir / f"{self._country_slug(country)}.json"

    def _load_mappings(self, country: str) -> Dict[str, Dict[str, str]]:
        cache_file = self._cache_file(country)

        if not cache_file.exists():
            return {}

        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load merchant cache for {country}: {e}")
            return {}

    def _save_mappings(self, country: str, mappings: Dict[str, Dict[str, str]]) -> None:
        cache_file = self._cache_file(country)

        try:
            with open(cache_file, "w", encoding="utf-8") as f:
                json.dump(mappings, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.error(f"Failed to save merchant cache for {country}: {e}")

    @staticmethod
    def _normalize_merchant(merchant: str) -> str:
        """Normalize merchant label for matching."""
        return re.sub(r"\s+", " ", merchant.strip().lower())

    @staticmethod
    def _country_slug(country: str) -> str:
        ascii_name = unicodedata.normalize("NFKD", country or "").encode("ascii", "ignore").decode("ascii")
        slug = re.sub(r"[^a-z0-9]+", "_", ascii_name.lower()).strip("_")
        return slug or "unknown"
