from collections.abc import Iterable


def normalize_tags(values: Iterable[object] | None) -> list[str]:
    """Lower-case, strip and de-duplicate tags, keeping first-seen order."""
    if not values:
        return []
    tags: list[str] = []
    seen = set()
    for item in values:
        tag = str(item).strip().lower()
        if tag and tag not in seen:
            tags.append(tag)
            seen.add(tag)
    return tags
