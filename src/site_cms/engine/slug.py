import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

DEFAULT_SLUG = "event"


def slugify(title: str | None) -> str:
    # No uniqueness check: two events with the same title share a slug.
    slug = _NON_ALNUM.sub("-", (title or "").lower()).strip("-")
    return slug or DEFAULT_SLUG
