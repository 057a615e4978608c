def parse_tags(raw) -> list[str]:
    """Split a comma/semicolon separated string (or list) into tag names.

    Order is kept and duplicates are not removed.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        tokens = raw.replace(";", ",").split(",")
    else:
        tokens = [str(item) for item in raw]
    return [t.strip().lower() for t in tokens if t and t.strip()]


def safe_redirect_target(raw_next: str | None, fallback: str) -> str:
    candidate = (raw_next or "").strip()
    if candidate.startswith("/") and not candidate.startswith("//"):
        return candidate
    return fallback


def clean_optional(value) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None
