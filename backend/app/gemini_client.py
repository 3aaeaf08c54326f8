import base64
import json
import re
from typing import Any, Dict, Iterator, List, Optional

from google import genai
from google.genai import types

from .models import DEFAULT_SOURCE_TITLE, MediaPayload, Source

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


# --- Setup ---

def build_client(api_key: str) -> genai.Client:
    """
    Build a client for one call. Cheap to construct, so callers build a new one
    whenever the credential may have changed instead of sharing a module global.
    """
    return genai.Client(api_key=api_key)


def close_client(client: genai.Client) -> None:
    """Release the HTTP connections held by a per-call client."""
    client.close()


def media_part(media: MediaPayload) -> types.Part:
    return types.Part.from_bytes(
        data=base64.b64decode(media.raw_b64),
        mime_type=media.mime_type,
    )


def response_text(resp: Any) -> str:
    return (getattr(resp, "text", None) or "") if resp is not None else ""


# --- Helpers ---

def _balanced_blocks(text: str) -> Iterator[str]:
    """Yield each top-level ``{...}`` block, skipping braces inside JSON strings."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Try to parse a JSON object from Gemini text output.

    Direct parse first (markdown fences tolerated), then the first balanced
    top-level block that parses. Returns None if nothing usable is found.
    """
    if not text or not text.strip():
        return None

    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    for block in _balanced_blocks(text):
        try:
            parsed = json.loads(block)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def extract_sources(resp: Any) -> List[Source]:
    """Web citations from the first candidate's grounding metadata; [] when absent."""
    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources: List[Source] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if not web:
            continue
        sources.append(
            Source(
                title=getattr(web, "title", None) or DEFAULT_SOURCE_TITLE,
                uri=getattr(web, "uri", None) or "",
            )
        )
    return sources
