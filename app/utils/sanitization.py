import re

_TAGS = re.compile(r"<[^>]*>")


def sanitize_string(v):
    """Strip HTML tags and surrounding whitespace from user-supplied text."""
    if not isinstance(v, str):
        return v
    return _TAGS.sub("", v).strip()


def sanitize_optional(v):
    """Like sanitize_string, but blank optional text is stored as NULL."""
    v = sanitize_string(v)
    if isinstance(v, str) and not v:
        return None
    return v


def normalize_color(v):
    if isinstance(v, str):
        return v.strip().upper()
    return v
