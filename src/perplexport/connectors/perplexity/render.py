"""Render a thread payload as markdown."""
import json
from typing import Any, Dict, List, Optional

from perplexport.connectors.perplexity.schema import ConversationPayload


def _answer_from_blocks(entry: Dict[str, Any]) -> Optional[str]:
    for block in entry.get("blocks") or []:
        markdown = (block or {}).get("markdown_block") or {}
        answer = markdown.get("answer")
        if answer:
            return answer
        chunks = markdown.get("chunks")
        if chunks:
            return "".join(chunks)
    return None


def _answer_from_text(entry: Dict[str, Any]) -> Optional[str]:
    text = entry.get("text")
    if not text:
        return None
    try:
        decoded = json.loads(text)
    except (TypeError, ValueError):
        return text
    # Older threads wrap the answer in a list of steps
    if isinstance(decoded, list):
        for step in reversed(decoded):
            if isinstance(step, dict) and step.get("step_type") == "FINAL":
                decoded = step.get("content") or {}
                break
    if isinstance(decoded, dict):
        answer = decoded.get("answer")
        if isinstance(answer, str):
            try:
                inner = json.loads(answer)
                if isinstance(inner, dict) and inner.get("answer"):
                    return inner["answer"]
            except ValueError:
                return answer
            return answer
    return None


def entry_answer(entry: Dict[str, Any]) -> str:
    """Answer text of one entry, whichever shape the API used."""
    return (
        _answer_from_blocks(entry)
        or entry.get("answer")
        or _answer_from_text(entry)
        or ""
    )


def _sources(entry: Dict[str, Any]) -> List[str]:
    lines = []
    for i, result in enumerate(entry.get("web_results") or [], start=1):
        if not isinstance(result, dict):
            continue
        title = result.get("name") or result.get("title") or result.get("url") or f"Source {i}"
        url = result.get("url")
        lines.append(f"{i}. [{title}]({url})" if url else f"{i}. {title}")
    return lines


def render_conversation(payload: ConversationPayload) -> str:
    """Markdown document for one thread."""
    if payload.is_placeholder or not payload.entries:
        return "# Untitled\n\n_No conversation data could be captured for this thread._\n"

    first = payload.entries[0]
    title = (first.get("thread_title") or first.get("query_str") or "Untitled").strip()
    parts = [f"# {title}", ""]

    for entry in payload.entries:
        query = (entry.get("query_str") or "").strip()
        if query:
            parts += [f"## {query}", ""]
        answer = entry_answer(entry).strip()
        if answer:
            parts += [answer, ""]
        sources = _sources(entry)
        if sources:
            parts += ["### Sources", ""] + sources + [""]

    return "\n".join(parts).rstrip() + "\n"
