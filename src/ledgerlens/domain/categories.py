from collections.abc import Iterable

from rapidfuzz import fuzz, process

from ledgerlens.models import CategoryRef, TransactionType

FUZZY_NAME_THRESHOLD = 90.0


def build_category_signal(
    user_categories: Iterable[CategoryRef],
    system_categories: Iterable[CategoryRef] = (),
) -> list[CategoryRef]:
    """Merge user and system categories into the list offered to the categorizers.

    Entries are de-duplicated on (name, type); a user-defined category hides
    the system default of the same name and type. The result is sorted by name.
    """
    merged: list[CategoryRef] = []
    seen: set[tuple[str, str]] = set()
    for category in [*user_categories, *system_categories]:
        key = (category.name, category.type)
        if key in seen:
            continue
        seen.add(key)
        merged.append(category)
    return sorted(merged, key=lambda category: category.name.lower())


def find_category(
    categories: Iterable[CategoryRef],
    name: str,
    type_: TransactionType | None = None,
    threshold: float = FUZZY_NAME_THRESHOLD,
) -> CategoryRef | None:
    candidates = [c for c in categories if type_ is None or c.type == type_]
    if not candidates or not name:
        return None

    wanted = name.strip().lower()
    for category in candidates:
        if category.name.strip().lower() == wanted:
            return category

    match = process.extractOne(
        wanted,
        [c.name.lower() for c in candidates],
        scorer=fuzz.token_sort_ratio,
        score_cutoff=threshold,
    )
    if match is None:
        return None
    _, _, index = match
    return candidates[index]


def find_category_by_id(categories: Iterable[CategoryRef], category_id: str | None) -> CategoryRef | None:
    if not category_id:
        return None
    for category in categories:
        if category.id == category_id:
            return category
    return None
