"""
Date Extractor
Pulls filed, served and hearing dates out of raw filing text with an
ordered regular-expression cascade
"""

import logging
import re
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2035

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}


@dataclass
class ExtractedDate:
    """A single dated fact pulled from a document"""
    value: str  # ISO YYYY-MM-DD
    date_type: str  # filed, served, hearing
    confidence: float
    source: str  # regex, ai, fallback
    raw_match: str

    def to_dict(self) -> Dict:
        return asdict(self)

    def as_date(self) -> date:
        return date.fromisoformat(self.value)


@dataclass
class DateExtractionResult:
    """Filed, served and hearing dates; each None when nothing matched"""
    filed_date: Optional[ExtractedDate] = None
    served_date: Optional[ExtractedDate] = None
    hearing_date: Optional[ExtractedDate] = None

    def to_dict(self) -> Dict:
        return {
            "filed": self.filed_date.to_dict() if self.filed_date else None,
            "served": self.served_date.to_dict() if self.served_date else None,
            "hearing": self.hearing_date.to_dict() if self.hearing_date else None,
        }


def _build_iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _parse_iso(cleaned: str) -> Optional[str]:
    match = re.search(r"(\d{4})-(\d{1,2})-(\d{1,2})", cleaned)
    if not match:
        return None
    return _build_iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def _parse_us_numeric(cleaned: str) -> Optional[str]:
    match = re.search(r"(\d{1,2})/(\d{1,2})/(\d{2,4})", cleaned)
    if not match:
        return None
    year = match.group(3)
    if len(year) == 2:
        year = f"20{year}"
    return _build_iso(int(year), int(match.group(1)), int(match.group(2)))


def _parse_named_month(cleaned: str) -> Optional[str]:
    # Month D Y
    match = re.search(r"([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?\s*,?\s*(\d{4})", cleaned)
    if match:
        month = MONTHS.get(match.group(1).lower())
        if month:
            return _build_iso(int(match.group(3)), month, int(match.group(2)))

    # D Month Y
    match = re.search(r"(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)\.?\s+(\d{4})", cleaned)
    if match:
        month = MONTHS.get(match.group(2).lower())
        if month:
            return _build_iso(int(match.group(3)), month, int(match.group(1)))

    return None


# First successful parser wins
DATE_PARSERS: List[Callable[[str], Optional[str]]] = [
    _parse_iso,
    _parse_us_numeric,
    _parse_named_month,
]


def parse_date(raw: str) -> Optional[str]:
    """
    Normalize a date string to ISO format

    Accepts ISO (YYYY-MM-DD), US numeric (M/D/Y with 2- or 4-digit year)
    and named-month (Month D, Y or D Month Y) forms.

    Args:
        raw: Captured date text

    Returns:
        ISO date string, or None when no parser accepts the text
    """

    if not raw:
        return None

    cleaned = raw.strip().replace(",", "")
    for parser in DATE_PARSERS:
        parsed = parser(cleaned)
        if parsed:
            return parsed
    return None


def in_year_bounds(iso_value: str) -> bool:
    """Reject OCR noise outside the sane year window"""
    return MIN_YEAR <= int(iso_value[:4]) <= MAX_YEAR


class DateExtractor:
    """
    Regex cascade date extractor.

    Each date category has an ordered list of patterns, most contextual
    first. Within a category the first pattern that yields a parseable,
    in-bounds date wins, even if a later pattern would match a "better"
    date. The first tier scores 0.9 and every later tier 0.7.
    """

    FILED_PATTERNS: List[Pattern] = [
        re.compile(r"(?:filed|filing\s+date|date\s+filed|stamped|entered)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:dated|date)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:file\s+stamp|court\s+stamp)[:\s]*([^\n;]{6,30})", re.IGNORECASE),
    ]

    SERVED_PATTERNS: List[Pattern] = [
        re.compile(r"(?:served\s+on|date\s+of\s+service|service\s+date|served)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:certificate\s+of\s+service)[\s\S]{0,100}?(?:on|dated?)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:mailed|emailed|e-served|served\s+via)[:\s\w]*(?:on)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
    ]

    HEARING_PATTERNS: List[Pattern] = [
        re.compile(r"(?:hearing\s+(?:set\s+for|date|on|is\s+scheduled))[:\s]+([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:will\s+be\s+heard\s+on)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:oral\s+argument|hearing|trial)[:\s]+(?:on\s+)?([^\n;]{6,30})", re.IGNORECASE),
        re.compile(r"(?:scheduled\s+for)[:\s]+([^\n;]{6,30})", re.IGNORECASE),
    ]

    FIRST_TIER_CONFIDENCE = 0.9
    LATER_TIER_CONFIDENCE = 0.7
    FALLBACK_CONFIDENCE = 0.2

    def extract(self, text: str) -> DateExtractionResult:
        """
        Extract filed, served and hearing dates from document text

        Args:
            text: Raw extracted document text

        Returns:
            DateExtractionResult with a None entry for every category that
            had no valid match
        """

        if not text or len(text) < 10:
            return DateExtractionResult()

        result = DateExtractionResult(
            filed_date=self._extract_from_patterns(text, self.FILED_PATTERNS, "filed"),
            served_date=self._extract_from_patterns(text, self.SERVED_PATTERNS, "served"),
            hearing_date=self._extract_from_patterns(text, self.HEARING_PATTERNS, "hearing"),
        )

        found = [k for k, v in result.to_dict().items() if v]
        logger.debug(f"Regex date extraction found: {found or 'nothing'}")
        return result

    def _extract_from_patterns(self,
                               text: str,
                               patterns: List[Pattern],
                               date_type: str) -> Optional[ExtractedDate]:
        for tier, pattern in enumerate(patterns):
            for match in pattern.finditer(text):
                parsed = parse_date(match.group(1))
                if not parsed or not in_year_bounds(parsed):
                    continue
                return ExtractedDate(
                    value=parsed,
                    date_type=date_type,
                    confidence=self.FIRST_TIER_CONFIDENCE if tier == 0 else self.LATER_TIER_CONFIDENCE,
                    source="regex",
                    raw_match=match.group(0).strip()[:80],
                )
        return None

    def fallback_date(self, upload_date: Optional[datetime] = None) -> ExtractedDate:
        """
        Build a low-confidence filed date from the upload timestamp.

        Only meant for filings where neither classification nor regex
        extraction produced a filed or served date.
        """

        moment = upload_date or datetime.now()
        return ExtractedDate(
            value=moment.date().isoformat(),
            date_type="filed",
            confidence=self.FALLBACK_CONFIDENCE,
            source="fallback",
            raw_match="Upload date used as fallback",
        )


def extract_dates_from_text(text: str) -> DateExtractionResult:
    """Module-level shortcut for DateExtractor().extract"""
    return DateExtractor().extract(text)
