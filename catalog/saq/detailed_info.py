"""
Parsing and cleanup of the "Detailed Info" section of SAQ product pages.

The section is a list of label/value pairs written for humans, i.e.

    Degree of alcohol   14,5 %
    Size                6 x 296 ml
    Grape variety       Zinfandel 80 %, Petite sirah 16 %, Cabernet sauvignon
    Sugar content       <1.2 g/L

Labels are matched case, accent, whitespace and punctuation insensitively
against FIELD_RULES, which maps each canonical key to its cleanup strategy.
A value that fails its cleanup is dropped with a warning; labels that match
no rule are kept verbatim in DetailedInfo.unrecognized.
"""

import logging
import math
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from catalog.choices import ProductOfQuebec, SugarContentEquality

logger = logging.getLogger(__name__)

DETAILED_INFO_SELECTOR = "#product-data-item-additional ul li [data-th]"


@dataclass
class Size:
    """Number of containers and the volume of each, i.e. "6 x 296 ml"."""

    container_count: int
    container_milliliters: int


@dataclass
class SugarContent:
    """Sugar in grams per liter, and whether the real value is above/below it."""

    grams_per_liter: float
    equality: str = SugarContentEquality.EQUAL


@dataclass
class DetailedInfo:
    """
    Cleaned Detailed Info values.

    Attributes:
        values: canonical key -> cleaned value (see FIELD_RULES)
        unrecognized: raw label -> raw value for labels no rule matched
    """

    values: Dict[str, Any] = field(default_factory=dict)
    unrecognized: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.values


# ============================================================
# Text normalization
# ============================================================

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_label(label: str) -> str:
    """
    Reduce a label to a comparison key.

    "Product of Québec" -> "product of quebec"
    "  SAQ code: " -> "saq code"
    """
    decomposed = unicodedata.normalize("NFKD", label)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM_RE.sub(" ", stripped.lower()).strip()


def clean_text(value: str) -> str:
    """Collapse runs of whitespace (non-breaking spaces included) to one space."""
    return _WHITESPACE_RE.sub(" ", value).strip()


def _to_float(text: str) -> float:
    return float(text.replace(",", "."))


# ============================================================
# Cleanup strategies
# ============================================================
#
# Each strategy takes the whitespace-normalized value and returns the cleaned
# value, raising ValueError when the text does not have the expected shape.

_NUMBER = r"\d+(?:[.,]\d+)?"

_PERCENT_RE = re.compile(rf"({_NUMBER})\s*%?")
_SIZE_RE = re.compile(rf"(?:(\d+)\s*[xX×]\s*)?({_NUMBER})\s*(ml|cl|l)", re.IGNORECASE)
_SUGAR_RE = re.compile(rf"([<>])?\s*({_NUMBER})\s*g\s*/\s*l", re.IGNORECASE)
_GRAPE_PERCENT_RE = re.compile(r"\s*(\d+)\s*%\Z")

_MILLILITERS_PER_UNIT = {"ml": 1, "cl": 10, "l": 1000}


def parse_text(value: str) -> str:
    if not value:
        raise ValueError("empty value")
    return value


def parse_percentage(value: str) -> float:
    """Parse "14,5 %" as 14.5 and "12 %" as 12.0."""
    match = _PERCENT_RE.fullmatch(value)
    if not match:
        raise ValueError(f"failed to match {value!r}")
    return _to_float(match.group(1))


def parse_size(value: str) -> Size:
    """
    "750 ml" -> Size(1, 750)
    "6 x 296 ml" -> Size(6, 296)
    "1,5 L" -> Size(1, 1500)
    """
    match = _SIZE_RE.fullmatch(value)
    if not match:
        raise ValueError(f"failed to match {value!r}")

    count_text, volume_text, unit = match.groups()
    container_count = int(count_text) if count_text else 1
    if container_count < 1:
        raise ValueError(f"invalid container count in {value!r}")

    milliliters = _to_float(volume_text) * _MILLILITERS_PER_UNIT[unit.lower()]
    return Size(
        container_count=container_count,
        container_milliliters=math.ceil(round(milliliters, 6)),
    )


def parse_sugar_content(value: str) -> SugarContent:
    """Parse "<1.2 g/L" as SugarContent(1.2, "<") and "2.9 g/L" as SugarContent(2.9, "=")."""
    match = _SUGAR_RE.fullmatch(value)
    if not match:
        raise ValueError(f"failed to match {value!r}")

    comparator, number = match.groups()
    return SugarContent(
        grams_per_liter=_to_float(number),
        equality=comparator or SugarContentEquality.EQUAL,
    )


def parse_grape_varieties(value: str) -> Dict[str, Optional[int]]:
    """
    Split a grape composition into an ordered name -> percentage mapping.

    Percentages need not add up to 100 and may be missing:

        "Cabernet Sauvignon 60 %, Merlot 40 %" -> {"Cabernet Sauvignon": 60, "Merlot": 40}
        "Zinfandel 80 %, Cabernet sauvignon" -> {"Zinfandel": 80, "Cabernet sauvignon": None}
    """
    varieties: Dict[str, Optional[int]] = {}

    for part in value.split(","):
        part = part.strip()
        if not part:
            continue

        name = part
        percentage = None

        match = _GRAPE_PERCENT_RE.search(part)
        if match:
            percentage = int(match.group(1))
            if percentage > 100:
                raise ValueError(f"percentage out of range in {part!r}")
            name = part[: match.start()].strip()

        if not name:
            raise ValueError(f"could not detect name in {part!r}")

        varieties[name] = percentage

    if not varieties:
        raise ValueError(f"no grape variety in {value!r}")
    return varieties


_PRODUCT_OF_QUEBEC_LABELS = {
    normalize_label(choice.label): choice.value for choice in ProductOfQuebec
}


def parse_product_of_quebec(value: str) -> Optional[str]:
    """Map "Bottled in Québec" to "bottled_in_quebec"; anything unknown to None."""
    product_of_quebec = _PRODUCT_OF_QUEBEC_LABELS.get(normalize_label(value))
    if product_of_quebec is None:
        logger.warning(f"Unknown 'Product of Québec' value {value!r}")
    return product_of_quebec


def parse_list(value: str) -> List[str]:
    """Split "Natural Wine, Orange Wine" on ", ", keeping order and dropping duplicates."""
    items = []
    for item in value.split(", "):
        item = item.strip()
        if item and item not in items:
            items.append(item)
    if not items:
        raise ValueError("empty list")
    return items


# ============================================================
# Field table
# ============================================================


@dataclass(frozen=True)
class FieldRule:
    labels: Tuple[str, ...]
    clean: Callable[[str], Any]


FIELD_RULES: Dict[str, FieldRule] = {
    "producer": FieldRule(("Producer",), parse_text),
    "saq_code": FieldRule(("SAQ code",), parse_text),
    "promoting_agent": FieldRule(("Promoting agent",), parse_text),
    "abv_percentage": FieldRule(("Degree of alcohol",), parse_percentage),
    "size": FieldRule(("Size",), parse_size),
    "color": FieldRule(("Color",), parse_text),
    "region": FieldRule(("Region",), parse_text),
    "upc_code": FieldRule(("UPC code",), parse_text),
    "country": FieldRule(("Country",), parse_text),
    "product_of_quebec": FieldRule(("Product of Québec",), parse_product_of_quebec),
    "grape_varieties": FieldRule(("Grape variety", "Grape varieties"), parse_grape_varieties),
    "sugar_content": FieldRule(("Sugar content",), parse_sugar_content),
    "regulated_designation": FieldRule(("Regulated Designation",), parse_text),
    "designation_of_origin": FieldRule(("Designation of origin",), parse_text),
    "classification": FieldRule(("Classification",), parse_text),
    "special_features": FieldRule(("Special feature", "Special features"), parse_list),
}

LABEL_INDEX: Dict[str, str] = {
    normalize_label(label): key
    for key, rule in FIELD_RULES.items()
    for label in rule.labels
}


# ============================================================
# Public API
# ============================================================


def extract_detailed_info_pairs(document: Union[str, BeautifulSoup]) -> List[Tuple[str, str]]:
    """
    Read the raw (label, value) pairs of a product page's Detailed Info section.

    Args:
        document: Raw HTML or an already parsed BeautifulSoup

    Returns:
        Pairs in page order, i.e. [("Designation of origin", "Mercurey"), ...]
    """
    soup = document if isinstance(document, BeautifulSoup) else BeautifulSoup(document, "lxml")

    pairs = []
    for element in soup.select(DETAILED_INFO_SELECTOR):
        label = element.get("data-th")
        if label is None:
            continue
        pairs.append((label, element.get_text()))
    return pairs


def parse_detailed_info(pairs: Iterable[Tuple[str, str]]) -> DetailedInfo:
    """
    Turn Detailed Info label/value pairs into a DetailedInfo.

    When a label appears more than once the last value wins. Values that
    fail their cleanup are left unset; they never fail the whole record.

    Args:
        pairs: (label, value) pairs as found on the page

    Returns:
        DetailedInfo with cleaned values and the unrecognized remainder
    """
    raw: Dict[str, Tuple[str, str]] = {}
    unrecognized: Dict[str, str] = {}

    for label, value in pairs:
        value = clean_text(value or "")
        key = LABEL_INDEX.get(normalize_label(label or ""))
        if key is None:
            unrecognized[label or ""] = value
        else:
            raw[key] = (label, value)

    values: Dict[str, Any] = {}
    for key, (label, value) in raw.items():
        try:
            cleaned = FIELD_RULES[key].clean(value)
        except ValueError as e:
            logger.warning(f"Dropping Detailed Info {label!r}={value!r}: {e}")
            continue
        if cleaned is not None:
            values[key] = cleaned

    if unrecognized:
        logger.debug(f"Unrecognized Detailed Info labels: {sorted(unrecognized)}")

    return DetailedInfo(values=values, unrecognized=unrecognized)
