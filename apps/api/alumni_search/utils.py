"""Shared utilities."""


def strip_json_from_response(raw: str) -> str:
    """Strip markdown/code fences from an LLM response and return JSON text."""
    s = (raw or "").strip()
    if "```" not in s:
        return s
    for part in s.split("```"):
        p = part.strip()
        if p.lower().startswith("json"):
            p = p[4:].strip()
        if p.startswith("{"):
            return p
    return s


def elapsed_ms(started_at: float, now: float) -> int:
    """Milliseconds between two monotonic clock readings, never negative."""
    return max(0, int(round((now - started_at) * 1000)))
