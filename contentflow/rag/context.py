from typing import List, Sequence

from contentflow.providers.base import VectorMatch

CONTEXT_DELIMITER = "\n\n---\n\n"
NO_CONTEXT = "No relevant context found."


def select_matches(matches: Sequence[VectorMatch], threshold: float, limit: int) -> List[VectorMatch]:
    """Keep matches scoring at least threshold, ordered by descending score (ties keep retrieval order), capped at limit."""
    qualifying = [m for m in matches if m.score >= threshold]
    return sorted(qualifying, key=lambda m: -m.score)[:limit]


def pack_context(matches: Sequence[VectorMatch]) -> str:
    """Build the LLM context from selected matches: one "Title: ...\\n\\nContent: ..." block per match, joined by a delimiter. No matches gives the fixed no-context sentence.
    Why available: Single place that formats retrieved chunks for the answer prompt."""
    if not matches:
        return NO_CONTEXT
    blocks = []
    for m in matches:
        title = m.metadata.get("title") or "Untitled"
        text = m.metadata.get("text") or ""
        blocks.append(f"Title: {title}\n\nContent: {text}".strip())
    return CONTEXT_DELIMITER.join(blocks)


def video_links(matches: Sequence[VectorMatch]) -> List[str]:
    """media_url of each VIDEO match, in selection order."""
    out: List[str] = []
    for m in matches:
        url = m.metadata.get("media_url")
        if m.metadata.get("content_kind") == "VIDEO" and url:
            out.append(url)
    return out
