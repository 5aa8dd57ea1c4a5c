import math
from typing import Any, List, Optional

from src.analytics.config import config


class Validator:
    """
    Lenient coercion utilities for host event payloads.
    Malformed values degrade to None/empty instead of raising.
    """

    @staticmethod
    def sanitize_string(s: Any, max_len: int = 512, default: Optional[str] = None) -> Optional[str]:
        """
        Coerce identifiers/codes to a bounded string.
        Containers and booleans are not identifiers and map to the default.
        """
        if s is None or isinstance(s, (bool, dict, list, tuple, set)):
            return default
        if isinstance(s, float) and math.isnan(s):
            return default

        s = str(s).strip()
        if not s:
            return default
        if len(s) > max_len:
            return s[:max_len]
        return s

    @staticmethod
    def parse_number(value: Any) -> Optional[float]:
        """
        Parse a numeric field. Returns None for missing, NaN, infinite or invalid input.
        """
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (ValueError, TypeError):
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number

    @staticmethod
    def parse_list(value: Any) -> List[Any]:
        """Anything that is not a list/tuple is treated as empty."""
        if isinstance(value, (list, tuple)):
            return list(value)
        return []

    @staticmethod
    def truncate_list(value: Any, limit: int = config.max_advertiser_domains) -> Optional[List[Any]]:
        """Keep a bounded prefix of a list; None when there is nothing to keep."""
        items = Validator.parse_list(value)
        if not items:
            return None
        return items[:limit]
