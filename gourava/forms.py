"""Input cleaning for item and template forms.

The store persists whatever it is given; these helpers are where titles,
tags and ratings are checked before anything is written.
"""

import math

from .constants import MAX_RATING, MIN_RATING, RATING_STEP
from .utils import name_of, normalize_text


class FormError(ValueError):
    pass


def parse_rating(value):
    """Parse a 0-5 rating in half steps; ``"3,5"`` is accepted as ``3.5``."""
    if isinstance(value, bool) or value is None:
        raise FormError(f"invalid rating: {value!r}")
    if isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            raise FormError("rating is required")
    else:
        text = value
    try:
        rating = float(text)
    except (TypeError, ValueError):
        raise FormError(f"invalid rating: {value!r}")
    if math.isnan(rating) or rating < MIN_RATING or rating > MAX_RATING:
        raise FormError(f"rating must be between {MIN_RATING:g} and {MAX_RATING:g}")
    if (rating / RATING_STEP) % 1 != 0:
        raise FormError(f"rating must be a multiple of {RATING_STEP:g}")
    return int(rating) if rating.is_integer() else rating


def _clean_names(values, label):
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise FormError(f"{label} must be a list")
    out = []
    for value in values:
        name = normalize_text(name_of(value))
        if name:
            out.append(name)
    return out


def clean_item_form(title, tags, criteria):
    title = normalize_text(title)
    tag_names = _clean_names(tags, "tags")
    if not title or not tag_names:
        raise FormError("Please provide a title and at least one tag.")

    if criteria is not None and not isinstance(criteria, (list, tuple)):
        raise FormError("criteria must be a list")
    cleaned = []
    for row in criteria or []:
        if not isinstance(row, dict):
            raise FormError(f"invalid criterion: {row!r}")
        name = normalize_text(row.get("name"))
        if not name:
            continue
        try:
            rating = parse_rating(row.get("rating"))
        except FormError as exc:
            raise FormError(f"criterion {name!r}: {exc}") from exc
        cleaned.append({"name": name, "rating": rating})

    return title, [{"name": name} for name in tag_names], cleaned


def clean_template_form(name, tags, criteria):
    name = normalize_text(name)
    tag_names = _clean_names(tags, "tags")
    if not name or not tag_names:
        raise FormError("Please provide a name and at least one tag.")
    return name, tag_names, _clean_names(criteria, "criteria")


def draft_from_template(template):
    """Build an item-form pre-fill from a template; ratings start empty."""
    template = template or {}
    return {
        "title": template.get("name") or "",
        "tags": _clean_names(template.get("tags"), "tags"),
        "criteria": [
            {"name": name, "rating": ""} for name in _clean_names(template.get("criteria"), "criteria")
        ],
    }
