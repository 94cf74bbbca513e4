import re

_DISALLOWED_RE = re.compile(r"[^a-z0-9]")


def sanitize_name(raw: str, max_length: int) -> str:
    """
    Fold a project/stack string into a provider-safe name: lowercase,
    only [a-z0-9], at most max_length characters. Never raises.
    """
    if max_length <= 0:
        return ""
    text = raw if isinstance(raw, str) else str(raw)
    return _DISALLOWED_RE.sub("", text.lower())[:max_length]
