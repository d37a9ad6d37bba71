from typing import Optional

# Branch labels that stand for a boolean outcome
BRANCH_ALIASES = {
    "yes": "true",
    "true": "true",
    "no": "false",
    "false": "false",
}


def normalize_branch(label: Optional[str]) -> Optional[str]:
    """Branch key an edge label selects; ``Yes`` and ``TRUE`` are the same branch."""
    if label is None:
        return None
    key = label.strip().lower()
    return BRANCH_ALIASES.get(key, key)
