"""
Normalization module for Pattern Alerts.

Domain-name helpers shared by the evaluator and the inventory query builder,
plus expansion of the structured shorthand users can type instead of a regex.
"""

import re
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# =============================================================================
# DOMAIN NAMES
# =============================================================================

def split_domain(domain_name: str) -> tuple[str, str]:
    """
    Split a domain into (name without TLD, TLD).

    The TLD is everything after the last dot, so "shop.co.uk" splits into
    ("shop.co", "uk"). A name with no dot has an empty TLD.
    """
    name = domain_name.strip().lower()
    if "." not in name:
        return name, ""
    head, _, tld = name.rpartition(".")
    return head, tld


def normalize_tld(tld: Optional[str]) -> str:
    """Normalize a TLD for comparison: lowercase, no leading dot(s)."""
    if not tld:
        return ""
    return tld.strip().lower().lstrip(".")


# =============================================================================
# STRUCTURED SHORTHAND
# =============================================================================

# L = any letter, N = digit, C = consonant, V = vowel, "-" = literal hyphen
SHORTHAND_CLASSES: dict[str, str] = {
    "L": "[a-z]",
    "N": "[0-9]",
    "C": "[bcdfghjklmnpqrstvwxyz]",
    "V": "[aeiou]",
    "-": "-",
}

SHORTHAND_RE = re.compile(r"[LNCV-]+")


def is_shorthand(text: str) -> bool:
    """True if the text is written entirely in structured shorthand (e.g. "LLNN")."""
    return bool(SHORTHAND_RE.fullmatch(text.strip()))


def expand_shorthand(text: str) -> str:
    """
    Expand structured shorthand into an anchored regex.

    Runs of the same symbol collapse into a counted quantifier, so "LLLN"
    becomes ``^[a-z]{3}[0-9]$`` and "CVCV" becomes four single classes.

    Raises:
        ValueError: If the text is not valid shorthand.
    """
    text = text.strip()
    if not is_shorthand(text):
        raise ValueError(f"Not a structured shorthand: {text!r}")

    parts = []
    for match in re.finditer(r"([LNCV-])\1*", text):
        run = match.group(0)
        piece = SHORTHAND_CLASSES[run[0]]
        if len(run) > 1:
            piece = f"{piece}{{{len(run)}}}"
        parts.append(piece)

    expanded = "^" + "".join(parts) + "$"
    logger.debug(f"Expanded shorthand {text!r} -> {expanded!r}")
    return expanded
