from __future__ import annotations

import re

FALLBACK_SUMMARY_CHARS = 600

_ELLIPSIS_RUN = re.compile(r"[.]{3,}")
_FOLLOWERS_PIPE = re.compile(r"\|\s*\d[\d,.]*\s*[kKmM]?\s*followers.*$", re.IGNORECASE | re.DOTALL)
_FOLLOWERS_LINKEDIN = re.compile(r"\bfollowers on LinkedIn\b.*$", re.IGNORECASE | re.DOTALL)
_WS = re.compile(r"\s+")

# Boilerplate slogans scraped from footers that keep leaking into summaries
KNOWN_SLOGANS: tuple[str, ...] = ("Conserving Resources. Improving Life.",)


def collapse_ws(s: str) -> str:
    return _WS.sub(" ", s or "").strip()


def truncate(s: str, limit: int) -> str:
    if limit <= 0:
        return ""
    return s if len(s) <= limit else s[:limit]


def sanitize_summary(text: str | None) -> str:
    s = text or ""
    s = _ELLIPSIS_RUN.sub(" ", s)
    s = _FOLLOWERS_PIPE.sub("", s)
    s = _FOLLOWERS_LINKEDIN.sub("", s)
    for slogan in KNOWN_SLOGANS:
        s = s.replace(slogan, "")
    return collapse_ws(s)


def fallback_summary(name: str | None, texts: list[str]) -> str:
    joined = collapse_ws(" ".join(t for t in texts if t))
    if joined:
        return truncate(joined, FALLBACK_SUMMARY_CHARS)
    label = (name or "").strip() or "This company"
    return f"{label} company overview unavailable."
