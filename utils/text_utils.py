"""
Text utilities for SKU and product-name handling during catalog imports.

Pure functions, no I/O. Parent-name recovery is heuristic: it works
on trailing descriptor words only and is best-effort, not exact.
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional


# 001-002 → parent "001", variant "002"
PARENT_SKU_PATTERN = re.compile(r"^(\d{3})-(\d{3})$")

COLOR_WORDS = frozenset({
    "black", "white", "grey", "gray", "silver", "gold", "red", "blue",
    "navy", "green", "olive", "yellow", "orange", "pink", "purple",
    "brown", "beige", "cream", "ivory", "natural", "charcoal", "teal",
    "aqua", "turquoise", "burgundy", "mustard", "taupe", "stone", "sand",
    "copper", "bronze", "chrome", "clear", "multi", "multicolour",
    "multicolor",
})

SIZE_WORDS = frozenset({
    "xxs", "xs", "s", "sm", "small", "m", "md", "medium", "l", "lg",
    "large", "xl", "xxl", "xxxl", "2xl", "3xl", "4xl", "extra", "mini",
    "single", "double", "king", "queen", "superking", "one-size",
})

MATERIAL_WORDS = frozenset({
    "cotton", "linen", "polyester", "velvet", "wool", "silk", "leather",
    "faux", "pvc", "vinyl", "wood", "wooden", "oak", "walnut", "pine",
    "bamboo", "metal", "steel", "aluminium", "aluminum", "glass",
    "ceramic", "plastic", "fabric",
})

# 60cm, 1.5L, 120x160cm, 42"
DIMENSION_PATTERN = re.compile(
    r'^\d+(?:\.\d+)?(?:x\d+(?:\.\d+)?)?(?:cm|mm|in|inch|inches|ml|l|")$',
    re.IGNORECASE
)

TOKEN_PUNCTUATION = ",;:/|-()[]"

# Value after a literal "Size": "Size 42", "Size 8/10", "Size UK8"
SIZE_VALUE_PATTERN = re.compile(r"^[\w./\-]{1,4}$")

TRUTHY_FLAGS = frozenset({"1", "true", "yes", "y", "x", "parent"})


def normalize_sku(sku: Optional[str]) -> str:
    """
    Canonical SKU used for lookups and in-batch deduplication.

    - " 001-002 " → "001-002"
    - "abc-red" → "ABC-RED"
    """
    if not sku:
        return ""
    return sku.strip().upper()


def normalize_for_comparison(name: Optional[str]) -> str:
    """
    Normalize a product name for equality checks.

    Handles accents, case and inner whitespace:
    - "Décor  Blind" → "DECOR BLIND"

    Returns:
        Uppercase ASCII string with single spaces ("" for empty input)
    """
    if not name:
        return ""

    # NFD separates base chars from accents
    normalized = unicodedata.normalize("NFD", name.strip())
    ascii_name = "".join(
        c for c in normalized
        if unicodedata.category(c) != "Mn"
    )

    return " ".join(ascii_name.split()).upper()


def extract_parent_sku_prefix(sku: Optional[str]) -> Optional[str]:
    """
    Extract the three-digit parent prefix from a variant SKU.

    Only the exact NNN-NNN form is recognised. Anything else returns
    None so the row falls through to name-based grouping.

    Args:
        sku: Variant SKU as typed in the upload

    Returns:
        Parent prefix ("001") or None
    """
    if not sku:
        return None

    match = PARENT_SKU_PATTERN.match(sku.strip())
    if not match:
        return None

    return match.group(1)


def _is_descriptor(token: str) -> bool:
    """True if a token is a colour, size, material or dimension word."""
    word = token.strip(TOKEN_PUNCTUATION).lower()
    if not word:
        # Bare separator such as "-" left behind by "Blind - Blue"
        return True
    return (
        word in COLOR_WORDS
        or word in SIZE_WORDS
        or word in MATERIAL_WORDS
        or DIMENSION_PATTERN.match(word) is not None
    )


def strip_variant_descriptors(name: Optional[str]) -> str:
    """
    Remove trailing colour/size/material tokens from a product name.

    Scans from the end and stops at the first token that is not a
    descriptor. "Size <value>" at the end is removed as a pair.
    Never returns an empty string for non-empty input: if every token
    would be stripped, the original name is returned unchanged.

    Examples:
        "Blackout Roller Blind Blue 60cm" → "Blackout Roller Blind"
        "Linen Cushion Size 45" → "Linen Cushion"
        "X" → "X"
    """
    if not name or not name.strip():
        return name or ""

    original = name.strip()
    tokens = original.split()

    while tokens:
        last = tokens[-1]
        if (
            len(tokens) >= 2
            and tokens[-2].strip(TOKEN_PUNCTUATION).lower() == "size"
            and (SIZE_VALUE_PATTERN.match(last) or _is_descriptor(last))
        ):
            tokens = tokens[:-2]
            continue
        if last.strip(TOKEN_PUNCTUATION).lower() == "size" or _is_descriptor(last):
            tokens.pop()
            continue
        break

    if not tokens:
        return original

    return " ".join(tokens)


def _tie_break_key(name: str) -> tuple[int, str]:
    return (len(name), name)


def similarity_group_key(names: Iterable[str]) -> str:
    """
    Derive a group name from variant names that share no SKU prefix.

    Computes the longest common leading word sequence across all names
    (case-insensitive). When the names share no leading word, falls back
    to the shortest name, ties broken lexicographically.

    This is a heuristic: "Test Product 1" and "Test Product 2" group
    under "Test Product" even if they are unrelated products.

    Returns:
        Group name, or "" when no non-blank names were given
    """
    cleaned = sorted(
        {" ".join(n.split()) for n in names if n and n.strip()},
        key=_tie_break_key
    )
    if not cleaned:
        return ""

    # Capitalisation comes from the tie-break winner so the result
    # does not depend on row order.
    reference = cleaned[0]
    reference_tokens = reference.split()
    token_lists = [n.casefold().split() for n in cleaned]

    common = 0
    for position, token in enumerate(reference_tokens):
        folded = token.casefold()
        if all(len(t) > position and t[position] == folded for t in token_lists):
            common += 1
        else:
            break

    if common == 0:
        return reference

    return " ".join(reference_tokens[:common])


def names_are_similar(first: Optional[str], second: Optional[str]) -> bool:
    """
    True when two names share leading words covering more than half of
    the longer name.

    "Test Product 1" / "Test Product 2" are similar (2 of 3 words);
    "Classic Tee" / "Classic Hoodie" are not (1 of 2).
    """
    first_tokens = normalize_for_comparison(first).split()
    second_tokens = normalize_for_comparison(second).split()
    if not first_tokens or not second_tokens:
        return False

    common = 0
    for a, b in zip(first_tokens, second_tokens):
        if a != b:
            break
        common += 1

    return common * 2 > max(len(first_tokens), len(second_tokens))


def clean_cell(value: Any) -> str:
    """
    Turn a decoded spreadsheet cell into a trimmed string.

    None and NaN become "". Floats with no fractional part lose the
    trailing ".0" pandas adds to numeric columns (barcodes, SKUs).
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def parse_price(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a price cell into a Decimal.

    Currency symbols and spaces are dropped. A lone comma is read as a
    decimal separator ("12,50" → 12.50); with both separators present
    the comma is a thousands separator ("1,299.00" → 1299.00).

    Returns:
        Positive Decimal, or None if the value is blank, unparseable,
        zero or negative
    """
    if not value:
        return None

    cleaned = re.sub(r"[^\d.,\-]", "", str(value))
    if not cleaned:
        return None

    if "," in cleaned and "." in cleaned:
        cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")

    try:
        price = Decimal(cleaned)
        if price <= 0:
            return None
        return price.quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def parse_bool_flag(value: Optional[str]) -> bool:
    """True for 1/true/yes/y/x/parent (any case)."""
    if not value:
        return False
    return value.strip().lower() in TRUTHY_FLAGS


def optional_text(value: Optional[str]) -> Optional[str]:
    """Blank strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None