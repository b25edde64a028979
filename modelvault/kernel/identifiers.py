"""
Composite hierarchical identifiers.

Resources are named by their ancestry chain joined with a reserved delimiter:
``org``, ``org:project``, ``org:project:branch`` and
``org:project:branch:artifact``. Everything here is pure string logic.
"""

import re
from typing import List

from modelvault.errors import InvalidIdentifier

ID_DELIMITER = ":"

# Each part: starts alphanumeric, then letters, digits, '_' or '-'
PART_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_\-]{0,63}$")

# Leaf names that collide with API path segments
RESERVED_WORDS = frozenset({"null", "undefined", "json", "settings", "edit", "search"})


def compose(*parts: str) -> str:
    """
    Join identifier parts into a composite ID.

    Raises:
        InvalidIdentifier: if no parts are given, or a part is empty or
            contains the delimiter
    """
    if not parts:
        raise InvalidIdentifier("Cannot compose an identifier from zero parts.")
    for part in parts:
        if not isinstance(part, str) or not part:
            raise InvalidIdentifier("Identifier parts must be non-empty strings.")
        if ID_DELIMITER in part:
            raise InvalidIdentifier(
                f"Identifier part [{part}] cannot contain '{ID_DELIMITER}'."
            )
    return ID_DELIMITER.join(parts)


def decompose(composite_id: str) -> List[str]:
    """Split a composite ID into its parts."""
    if not isinstance(composite_id, str) or not composite_id:
        raise InvalidIdentifier("Identifier must be a non-empty string.")
    parts = composite_id.split(ID_DELIMITER)
    if any(not p for p in parts):
        raise InvalidIdentifier(f"Identifier [{composite_id}] has an empty part.")
    return parts


def validate_part(part: str) -> str:
    """Check a single user-supplied part against the allowed character set."""
    if not isinstance(part, str) or not PART_PATTERN.fullmatch(part):
        raise InvalidIdentifier(f"Invalid identifier part [{part}].")
    if part.lower() in RESERVED_WORDS:
        raise InvalidIdentifier(f"Identifier part [{part}] is a reserved word.")
    return part


def leaf_of(composite_id: str) -> str:
    return decompose(composite_id)[-1]


def org_of(composite_id: str) -> str:
    return decompose(composite_id)[0]


def parent_of(composite_id: str) -> str:
    """Return the parent composite ID; organizations have no parent."""
    parts = decompose(composite_id)
    if len(parts) == 1:
        raise InvalidIdentifier(f"Identifier [{composite_id}] has no parent.")
    return compose(*parts[:-1])


def child_id(parent_id: str, leaf: str) -> str:
    """Extend a composite ID by one level: ``child_id("acme:rocket", "dev")``."""
    return compose(*decompose(parent_id), leaf)
