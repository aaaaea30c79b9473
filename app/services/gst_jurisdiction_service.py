"""GST jurisdiction resolution.

Maps free-text addresses to 2-digit GST state codes and decides whether a
supply is intra-state (CGST + SGST) or inter-state (IGST).

Known collisions of the rule table: abbreviations are matched as whole
words, so ordinary English words that equal one still resolve. "or"
resolves to Odisha (21) and "as" to Assam (18), e.g. "MG Road or Brigade
Road, Bengaluru" gives 21 unless a full state name is present.
"""
import logging
import re
from typing import List, NamedTuple, Optional, Tuple

from app.config import settings
from app.core.exceptions import UnresolvableJurisdiction
from app.models.billing import SupplyType
from app.schemas.billing import SupplyClassification


logger = logging.getLogger(__name__)


# GST State Code mapping
GST_STATE_CODES = {
    "01": "Jammu & Kashmir", "02": "Himachal Pradesh", "03": "Punjab",
    "04": "Chandigarh", "05": "Uttarakhand", "06": "Haryana",
    "07": "Delhi", "08": "Rajasthan", "09": "Uttar Pradesh",
    "10": "Bihar", "11": "Sikkim", "12": "Arunachal Pradesh",
    "13": "Nagaland", "14": "Manipur", "15": "Mizoram",
    "16": "Tripura", "17": "Meghalaya", "18": "Assam",
    "19": "West Bengal", "20": "Jharkhand", "21": "Odisha",
    "22": "Chhattisgarh", "23": "Madhya Pradesh", "24": "Gujarat",
    "26": "Dadra & Nagar Haveli and Daman & Diu", "27": "Maharashtra",
    "28": "Andhra Pradesh (Old)", "29": "Karnataka", "30": "Goa",
    "31": "Lakshadweep", "32": "Kerala", "33": "Tamil Nadu",
    "34": "Puducherry", "35": "Andaman & Nicobar Islands",
    "36": "Telangana", "37": "Andhra Pradesh",
    "38": "Ladakh", "97": "Other Territory"
}


class JurisdictionRule(NamedTuple):
    code: str
    names: Tuple[str, ...]
    abbreviations: Tuple[str, ...]


# Evaluated top to bottom, first match wins.
JURISDICTION_RULES: List[JurisdictionRule] = [
    JurisdictionRule("09", ("uttar pradesh",), ("up",)),
    JurisdictionRule("19", ("west bengal",), ("wb",)),
    JurisdictionRule("27", ("maharashtra",), ("mh",)),
    JurisdictionRule("33", ("tamil nadu",), ("tn",)),
    JurisdictionRule("24", ("gujarat",), ("gj",)),
    JurisdictionRule("08", ("rajasthan",), ("rj",)),
    JurisdictionRule("03", ("punjab",), ("pb",)),
    JurisdictionRule("06", ("haryana",), ("hr",)),
    JurisdictionRule("07", ("delhi",), ("dl",)),
    JurisdictionRule("29", ("karnataka",), ("ka",)),
    JurisdictionRule("37", ("andhra pradesh",), ("ap",)),
    JurisdictionRule("36", ("telangana",), ("ts",)),
    JurisdictionRule("32", ("kerala",), ("kl",)),
    JurisdictionRule("21", ("odisha", "orissa"), ("or",)),
    JurisdictionRule("10", ("bihar",), ("br",)),
    JurisdictionRule("20", ("jharkhand",), ("jh",)),
    JurisdictionRule("18", ("assam",), ("as",)),
    JurisdictionRule("23", ("madhya pradesh",), ("mp",)),
    JurisdictionRule("22", ("chhattisgarh", "chattisgarh"), ("cg",)),
    JurisdictionRule("02", ("himachal pradesh",), ("hp",)),
    JurisdictionRule("05", ("uttarakhand", "uttaranchal"), ("uk",)),
    JurisdictionRule("30", ("goa",), ("ga",)),
]

# Rules understood by the legacy substring matcher
LEGACY_RULE_COUNT = 17

_ABBREVIATION_PATTERNS = {
    abbr: re.compile(rf"\b{abbr}\b")
    for rule in JURISDICTION_RULES
    for abbr in rule.abbreviations
}


def state_name(code: str) -> str:
    """Human readable state name for a GST state code."""
    return GST_STATE_CODES.get(code, "Unknown")


def _match_legacy(address: str) -> Optional[str]:
    # Plain substring tests on the first name or abbreviation per rule, over
    # the first 17 states only. "Udupi" contains "up" and "Kolkata"
    # contains "ka", both match.
    for rule in JURISDICTION_RULES[:LEGACY_RULE_COUNT]:
        if any(keyword in address for keyword in rule.names[:1] + rule.abbreviations):
            return rule.code
    return None


def _match_words(address: str) -> Optional[str]:
    # Full state names first, so "Tamil Nadu" can never lose to an
    # abbreviation of an earlier rule; abbreviations only as whole words.
    for rule in JURISDICTION_RULES:
        if any(name in address for name in rule.names):
            return rule.code
    for rule in JURISDICTION_RULES:
        if any(_ABBREVIATION_PATTERNS[abbr].search(address) for abbr in rule.abbreviations):
            return rule.code
    return None


def match_state_code(address: Optional[str], legacy: Optional[bool] = None) -> Optional[str]:
    """
    Find the GST state code mentioned in an address.

    Returns None when nothing matches.
    """
    if not address or not address.strip():
        return None
    if legacy is None:
        legacy = settings.LEGACY_JURISDICTION_MATCHING

    normalized = address.lower()
    return _match_legacy(normalized) if legacy else _match_words(normalized)


def resolve_state_code(
    address: Optional[str],
    default_code: Optional[str] = None,
    strict: Optional[bool] = None,
    legacy: Optional[bool] = None,
) -> str:
    """
    Resolve an address to a GST state code.

    Falls back to ``default_code`` (DEFAULT_STATE_CODE, Uttar Pradesh) with a
    warning when nothing matches. In strict mode raises
    UnresolvableJurisdiction instead. Empty addresses always fall back
    silently.
    """
    if strict is None:
        strict = settings.STRICT_JURISDICTION
    fallback = default_code or settings.DEFAULT_STATE_CODE

    code = match_state_code(address, legacy=legacy)
    if code:
        return code

    if address and address.strip():
        if strict:
            raise UnresolvableJurisdiction(address)
        logger.warning(
            f"Could not find state code in address '{address}', "
            f"defaulting to {state_name(fallback)} ({fallback})"
        )
    return fallback


def classify_supply(
    place_of_supply: Optional[str] = None,
    buyer_address: Optional[str] = None,
    customer_address: Optional[str] = None,
    seller_state_code: Optional[str] = None,
    strict: Optional[bool] = None,
    legacy: Optional[bool] = None,
) -> SupplyClassification:
    """
    Classify a supply as intra-state or inter-state.

    The place of supply is taken from the first non-empty of the explicit
    place of supply, the buyer address and the customer address.
    """
    seller_code = (seller_state_code or settings.SELLER_STATE_CODE).strip().zfill(2)

    resolved_from = "DEFAULT"
    address = None
    for source, candidate in (
        ("PLACE_OF_SUPPLY", place_of_supply),
        ("BUYER_ADDRESS", buyer_address),
        ("CUSTOMER_ADDRESS", customer_address),
    ):
        if candidate and candidate.strip():
            resolved_from, address = source, candidate
            break

    pos_code = resolve_state_code(address, strict=strict, legacy=legacy)
    supply_type = SupplyType.INTRA_STATE if pos_code == seller_code else SupplyType.INTER_STATE

    return SupplyClassification(
        supply_type=supply_type,
        seller_state_code=seller_code,
        place_of_supply_code=pos_code,
        resolved_from=resolved_from,
    )
