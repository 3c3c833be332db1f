"""Branch naming for work items.

Branch names are derived from the work item id and title so that repeated
runs for the same item always land on the same branch. Matching is looser
than derivation: a branch created under another developer's prefix, or
before the item was renamed, still counts as belonging to the item as long
as it carries ``/<id>-`` somewhere in its name.
"""

import re

HEADS_PREFIX = "refs/heads/"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def encode(item_id: int | str, title: str, prefix: str = "") -> str:
    """Build the canonical branch name for a work item.

    Examples:
        >>> encode(123, "Fix Bug!!", "tor/")
        'tor/123-fix-bug'
        >>> encode(7, "  --Hello, World--  ")
        '7-hello-world'
    """
    combined = f"{item_id} {title}".lower()
    slug = _NON_ALNUM_RE.sub("-", combined).strip("-")
    return f"{prefix}{slug}"


def matches(existing_branch: str, item_id: int | str, title: str) -> bool:
    """Check whether an existing branch name belongs to a work item.

    An unprefixed branch equal to the slug itself also matches.

    Examples:
        >>> matches("refs/heads/other/123-fix-bug", 123, "Fix Bug!!")
        True
        >>> matches("refs/heads/feature/456-fix-bug", 123, "Fix Bug!!")
        False
        >>> matches("123-fix-bug", 123, "Fix Bug!!")
        True
    """
    lower = existing_branch.lower()
    slug = encode(item_id, title)
    id_needle = f"/{item_id}-"
    return lower.endswith(f"/{slug}") or id_needle in lower or strip_heads_prefix(lower) == slug


def is_head_ref(ref: str) -> bool:
    """Return True for refs under the heads namespace."""
    return ref.lower().startswith(HEADS_PREFIX)


def strip_heads_prefix(ref: str) -> str:
    """Remove a leading ``refs/heads/`` from a ref name."""
    if is_head_ref(ref):
        return ref[len(HEADS_PREFIX) :]
    return ref
