"""
Probe descriptors and bounded tree helpers.

Provider payloads have no fixed schema. Each field we care about is located
by an ordered list of Probe descriptors (dotted paths into the nested
mapping). Extraction code iterates the list and takes the first usable
value, so supporting a new payload variant means adding a probe, not
another branch.

All helpers here are pure and never raise on malformed input.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Sequence, Tuple

# Hard ceiling for every recursive walk over untrusted payloads
MAX_WALK_DEPTH = 8

# "+" optional, then digits with internal spaces/hyphens
_PHONE_SHAPE = re.compile(r"^\+?[0-9][0-9\s\-]*[0-9]$")
_PHONE_SEPARATORS = re.compile(r"[\s\-]")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 20


@dataclass(frozen=True)
class Probe:
    """A dotted path into a nested mapping.

    Attributes:
        path: Key sequence, e.g. ("data", "metadata", "phone_call", "direction")
    """
    path: Tuple[str, ...]

    @property
    def label(self) -> str:
        return ".".join(self.path)

    def resolve(self, event: Any) -> Any:
        """Follow the path; None if any hop is missing or not a mapping."""
        node = event
        for key in self.path:
            if not isinstance(node, Mapping):
                return None
            node = node.get(key)
            if node is None:
                return None
        return node


def probes(*paths: str) -> Tuple[Probe, ...]:
    """Build an ordered probe tuple from dotted path strings."""
    return tuple(Probe(tuple(p.split("."))) for p in paths)


def is_present(value: Any) -> bool:
    """True for values that count as "found" (non-empty, non-blank)."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True


def to_json(value: Any) -> str:
    """Serialize anything; unserializable leaves fall back to str()."""
    try:
        return json.dumps(value, default=str, ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        return str(value)


# =============================================================================
# PHONE NUMBERS
# =============================================================================

def phone_digits(value: Any) -> str:
    """Digits only, used for every "same number?" comparison."""
    if not isinstance(value, str):
        return ""
    return "".join(ch for ch in value if ch.isdigit())


def normalize_phone(value: Any) -> Optional[str]:
    """
    Normalize a phone-shaped string by stripping spaces and hyphens.

    Returns None when the value is not phone-shaped: a leading "+" is
    optional and 10-20 digits are required.
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not _PHONE_SHAPE.match(candidate):
        return None
    normalized = _PHONE_SEPARATORS.sub("", candidate)
    digit_count = len(normalized.lstrip("+"))
    if digit_count < PHONE_MIN_DIGITS or digit_count > PHONE_MAX_DIGITS:
        return None
    return normalized


def is_excluded_phone(value: str, excluded_numbers: Sequence[str]) -> bool:
    """True if value has the same digits as any excluded (gateway/agent) number."""
    digits = phone_digits(value)
    if not digits:
        return False
    return any(digits == phone_digits(n) for n in excluded_numbers if n)


def mask_phone(phone: Optional[str]) -> str:
    """Mask a phone number for logs, keeping the last 4 digits."""
    if not phone:
        return "(none)"
    if len(phone) <= 4:
        return "****"
    return f"****{phone[-4:]}"


# =============================================================================
# BOUNDED WALK
# =============================================================================

def walk_strings(
    tree: Any,
    max_depth: int = MAX_WALK_DEPTH,
    _path: str = "",
    _depth: int = 0,
) -> Iterator[Tuple[str, str]]:
    """
    Yield (path, value) for every string leaf, depth-first in traversal order.

    Mappings are visited in key order, sequences by index. Anything nested
    deeper than max_depth is skipped, which guarantees termination on
    hostile input.
    """
    if _depth > max_depth:
        return
    if isinstance(tree, Mapping):
        items = ((str(k), v) for k, v in tree.items())
    elif isinstance(tree, (list, tuple)):
        items = ((str(i), v) for i, v in enumerate(tree))
    else:
        return

    for key, value in items:
        path = f"{_path}.{key}" if _path else key
        if isinstance(value, str):
            yield path, value
        elif isinstance(value, (Mapping, list, tuple)):
            yield from walk_strings(value, max_depth, path, _depth + 1)
