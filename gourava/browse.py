import random

from .utils import normalize_text

ORDER_ALPHABETICAL = "alphabetical"
ORDER_RANDOM = "random"
ORDER_RATING_ASC = "ratingAsc"
ORDER_RATING_DESC = "ratingDesc"

ORDER_CHOICES = (ORDER_ALPHABETICAL, ORDER_RANDOM, ORDER_RATING_ASC, ORDER_RATING_DESC)


def _to_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def average_rating(criteria):
    if not criteria:
        return 0
    total = sum(_to_float((c or {}).get("rating")) for c in criteria)
    return total / len(criteria)


def _tag_names(item):
    return [t.get("name") or "" for t in item.get("tags") or []]


def all_tag_names(items):
    out = []
    seen = set()
    for item in items or []:
        for name in _tag_names(item):
            if name and name not in seen:
                seen.add(name)
                out.append(name)
    return out


def _matches_query(item, query):
    if query in (item.get("title") or "").lower():
        return True
    if any(query in name.lower() for name in _tag_names(item)):
        return True
    return any(query in (c.get("name") or "").lower() for c in item.get("criteriaRatings") or [])


def filter_items(items, q="", tags=None):
    """Keep items matching ``q`` (title, tag or criterion name) that carry every tag in ``tags``."""
    query = normalize_text(q).lower()
    selected = [t for t in (tags or []) if t]
    out = []
    for item in items or []:
        if query and not _matches_query(item, query):
            continue
        names = set(_tag_names(item))
        if selected and not all(tag in names for tag in selected):
            continue
        out.append(item)
    return out


def sort_items(items, order_by=""):
    items = list(items or [])
    if order_by == ORDER_ALPHABETICAL:
        return sorted(items, key=lambda item: (item.get("title") or "").lower())
    if order_by == ORDER_RANDOM:
        random.shuffle(items)
        return items
    if order_by == ORDER_RATING_ASC:
        return sorted(items, key=lambda item: average_rating(item.get("criteriaRatings")))
    if order_by == ORDER_RATING_DESC:
        return sorted(items, key=lambda item: average_rating(item.get("criteriaRatings")), reverse=True)
    return items
