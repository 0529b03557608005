"""Data normalization for investor and target profile fields.

Profile data arrives from the CRM as loosely typed values: JSON-encoded
arrays, comma separated strings, amount strings like "$1M - $5M" and
free-text timelines. The Normalizer turns these into the plain lists,
ranges and canonical labels the scorers work with.
"""

import json
import logging
import re
from difflib import SequenceMatcher
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Normalizer:
    """Normalizes raw profile values to a consistent format."""

    # Multipliers for shorthand amounts ("2.5m", "500k")
    AMOUNT_SUFFIXES = {
        "k": 1_000,
        "thousand": 1_000,
        "m": 1_000_000,
        "mm": 1_000_000,
        "mn": 1_000_000,
        "million": 1_000_000,
        "b": 1_000_000_000,
        "bn": 1_000_000_000,
        "billion": 1_000_000_000,
    }

    # Canonical timeline buckets, ordered from soonest to latest.
    # "flexible" sits outside the ordering.
    TIMELINE_BUCKETS = [
        "immediate",
        "1-3 months",
        "3-6 months",
        "6-12 months",
        "12-24 months",
        "24+ months",
    ]
    FLEXIBLE_TIMELINE = "flexible"

    TIMELINE_KEYWORDS = {
        "immediate": "immediate",
        "immediately": "immediate",
        "asap": "immediate",
        "urgent": "immediate",
        "now": "immediate",
        "short term": "3-6 months",
        "short-term": "3-6 months",
        "medium term": "6-12 months",
        "medium-term": "6-12 months",
        "mid term": "6-12 months",
        "long term": "12-24 months",
        "long-term": "12-24 months",
        "flexible": "flexible",
        "negotiable": "flexible",
        "open": "flexible",
        "any": "flexible",
    }

    # Words dropped before fuzzy comparison of names
    NOISE_WORDS = {"and", "&", "the", "of", "for", "in", "on", "at", "to", "a", "an"}

    def normalize_text(self, value: Optional[str]) -> str:
        """Lowercase, trim and collapse whitespace."""
        if not value:
            return ""
        return re.sub(r"\s+", " ", str(value).strip().lower())

    def parse_multi_value(self, value: Any) -> List[Any]:
        """Parse a multi-value field into a list.

        Handles lists, JSON-encoded arrays, delimited strings
        ("Thailand, Vietnam" or "a; b | c") and single scalars.

        Args:
            value: Raw field value

        Returns:
            List of non-empty values (strings are stripped)
        """
        if value is None:
            return []

        if isinstance(value, (list, tuple, set)):
            items = list(value)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return []
            if text[0] in "[{":
                try:
                    decoded = json.loads(text)
                except ValueError:
                    logger.debug(f"Value looks like JSON but did not parse: {text[:50]}")
                    decoded = None
                if isinstance(decoded, list):
                    items = decoded
                elif isinstance(decoded, dict):
                    items = [decoded]
                else:
                    items = re.split(r"[,;|]", text)
            else:
                items = re.split(r"[,;|]", text)
        else:
            items = [value]

        cleaned = []
        for item in items:
            if isinstance(item, str):
                item = item.strip()
                if not item:
                    continue
            elif item is None:
                continue
            cleaned.append(item)
        return cleaned

    def normalize_amount(
        self, amount_str: Optional[str]
    ) -> Tuple[Optional[float], Optional[float]]:
        """Convert an amount string to a (min, max) range.

        Handles formats like:
        - "$5,000,000"
        - "$1M - $5M"
        - "Up to 10m"
        - "500k+"
        - "USD 2.5 million"

        Args:
            amount_str: Amount string in various formats

        Returns:
            Tuple of (min, max), either may be None
        """
        if not amount_str:
            return None, None

        text = str(amount_str).strip().lower()

        if "varies" in text or "undisclosed" in text or "n/a" == text:
            return None, None

        pattern = r"(\d[\d,]*(?:\.\d+)?)\s*(thousand|million|billion|mm|mn|bn|k|m|b)?\b"
        parsed = []
        for number, suffix in re.findall(pattern, text):
            try:
                amount = float(number.replace(",", ""))
            except ValueError:
                continue
            if suffix:
                amount *= self.AMOUNT_SUFFIXES[suffix]
            parsed.append(amount)

        if not parsed:
            return None, None

        if len(parsed) == 1:
            amount = parsed[0]
            if "up to" in text or "maximum" in text or "max" in text or "below" in text:
                return None, amount
            if text.endswith("+") or "over" in text or "at least" in text or "min" in text:
                return amount, None
            return amount, amount

        return min(parsed), max(parsed)

    def normalize_percentage(self, value: Any) -> Optional[float]:
        """Parse "51%", "51" or 51 into a float percentage."""
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)):
            return float(value)
        match = re.search(r"(\d+(?:\.\d+)?)", str(value))
        if not match:
            return None
        return float(match.group(1))

    def normalize_timeline(self, value: Optional[str]) -> Optional[str]:
        """Map a free-text timeline to a canonical bucket.

        Args:
            value: Timeline description ("ASAP", "3-6 months", "1-2 years")

        Returns:
            One of TIMELINE_BUCKETS, FLEXIBLE_TIMELINE, or None if unparseable
        """
        text = self.normalize_text(value)
        if not text:
            return None

        if text in self.TIMELINE_BUCKETS or text == self.FLEXIBLE_TIMELINE:
            return text

        for keyword, bucket in self.TIMELINE_KEYWORDS.items():
            if re.search(rf"\b{re.escape(keyword)}\b", text):
                return bucket

        numbers = [float(n) for n in re.findall(r"\d+(?:\.\d+)?", text)]
        if not numbers:
            logger.debug(f"Could not parse timeline: {value}")
            return None

        upper = max(numbers)
        if re.search(r"\b(year|years|yr|yrs)\b", text):
            upper *= 12
        elif not re.search(r"\b(month|months|mo|mos)\b", text):
            logger.debug(f"Timeline has no unit: {value}")
            return None

        if "+" in text or "more than" in text or "over" in text:
            upper += 1

        return self.bucket_for_months(upper)

    def bucket_for_months(self, months: float) -> str:
        """Return the timeline bucket covering the given number of months."""
        if months <= 0:
            return "immediate"
        if months <= 3:
            return "1-3 months"
        if months <= 6:
            return "3-6 months"
        if months <= 12:
            return "6-12 months"
        if months <= 24:
            return "12-24 months"
        return "24+ months"

    def tokenize(self, value: str) -> List[str]:
        """Split a name into meaningful lowercase tokens."""
        words = re.split(r"[^\w]+", self.normalize_text(value))
        return [w for w in words if w and w not in self.NOISE_WORDS]

    def text_similarity(self, a: str, b: str) -> float:
        """Similarity ratio between two strings (0.0-1.0).

        Uses SequenceMatcher on the normalized strings.
        """
        norm_a = self.normalize_text(a)
        norm_b = self.normalize_text(b)

        if not norm_a or not norm_b:
            return 0.0
        if norm_a == norm_b:
            return 1.0

        return SequenceMatcher(None, norm_a, norm_b).ratio()

    def token_overlap(self, a: str, b: str) -> float:
        """Jaccard overlap of the meaningful tokens of two names.

        "Logistics & Transportation" vs "Transportation Logistics" -> 1.0
        """
        tokens_a = set(self.tokenize(a))
        tokens_b = set(self.tokenize(b))
        if not tokens_a or not tokens_b:
            return 0.0
        return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
