# backend/app/agents/listing_agent.py

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from google.genai import types

from ..config import Settings, load_settings, resolve_api_key
from ..gemini_client import (
    build_client,
    close_client,
    extract_json,
    extract_sources,
    media_part,
    response_text,
)
from ..logging_config import inc_metric, measure
from ..models import DEFAULT_PRICE, MediaPayload, OptimizedListing, Platform

log = logging.getLogger("listing-agent")

FALLBACK_TITLE = "New Listing"
NO_ZIP = "Not provided (global market)"

LISTING_SYSTEM = """You are ListingPro AI, a specialist tool for resellers.
Your mission: Analyze product media (photos or videos) and notes to create professional marketplace listings.

Capabilities:
1. VISION: Watch videos or look at photos to identify brand, model, features, and condition.
2. SEO: Generate high-conversion titles and descriptions for specific platforms.
3. PRICING: Provide market-value estimates for the seller's area using live search results.

Platform Context:
- eBay: Professional and specs-heavy.
- Poshmark: Brand-focused and social.
- Etsy: Story-telling and artisanal.
- Facebook Marketplace / TikTok: Catchy and value-driven.
- Amazon: Feature bullets, compliance-safe claims.
- General Dropshipping: Benefit-led, broad keywords.

Return ONLY a valid JSON object in this shape:
{
  "title": "...",
  "description": "...",
  "hashtags": ["..."],
  "keywords": ["..."],
  "suggestedPrice": "...",
  "agentInsights": { "research": "...", "marketAnalysis": "..." }
}
"""

_STRING = types.Schema(type=types.Type.STRING)
_STRING_LIST = types.Schema(type=types.Type.ARRAY, items=_STRING)

LISTING_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "title": _STRING,
        "description": _STRING,
        "hashtags": _STRING_LIST,
        "keywords": _STRING_LIST,
        "suggestedPrice": _STRING,
        "agentInsights": types.Schema(
            type=types.Type.OBJECT,
            properties={"research": _STRING, "marketAnalysis": _STRING},
            required=["research", "marketAnalysis"],
        ),
    },
    required=["title", "description", "hashtags", "suggestedPrice", "agentInsights"],
)


def build_prompt(
    platform: str,
    rough_text: str,
    zip_code: Optional[str] = None,
    media: Optional[MediaPayload] = None,
) -> str:
    media_note = ""
    if media is not None:
        kind = "video clip" if media.is_video else "photo"
        media_note = (
            f"I have attached a {kind} of the item. "
            "Use it to extract brand details, condition, and specific features."
        )

    return f"""Analyze this {platform} listing.
Initial Info: "{rough_text}".
Zip Code: {zip_code or NO_ZIP}.
{media_note}

Provide the optimized listing in JSON format."""


def build_generation_config(enforce_schema: bool) -> types.GenerateContentConfig:
    # Search grounding and a strict response schema are rejected together by
    # some model versions, so only one of them is sent.
    if enforce_schema:
        return types.GenerateContentConfig(
            system_instruction=LISTING_SYSTEM,
            response_mime_type="application/json",
            response_schema=LISTING_SCHEMA,
        )
    return types.GenerateContentConfig(
        system_instruction=LISTING_SYSTEM,
        tools=[types.Tool(google_search=types.GoogleSearch())],
    )


def _text_field(value: Any) -> str:
    """String value as given, or "" when missing or blank."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else ""


def degraded_result(rough_text: str, text: str) -> Dict[str, Any]:
    return {
        "title": _text_field(rough_text) or FALLBACK_TITLE,
        "description": text,
        "hashtags": [],
        "keywords": [],
        "suggestedPrice": DEFAULT_PRICE,
        "agentInsights": {
            "research": "Analysis complete.",
            "marketAnalysis": "Check sources below.",
        },
    }


def normalize_listing(text: str, rough_text: str, sources=None) -> OptimizedListing:
    """
    Turn raw model text into an OptimizedListing. Never raises on bad output.
    """
    parsed = extract_json(text)
    if parsed is None:
        log.warning("Listing Agent: model returned non-JSON text, using degraded listing.")
        inc_metric("listing_parse_fallbacks")
        parsed = degraded_result(rough_text, text)

    title = _text_field(parsed.get("title")) or _text_field(rough_text) or FALLBACK_TITLE
    description = _text_field(parsed.get("description")) or _text_field(text) or title

    return OptimizedListing(
        title=title,
        description=description,
        hashtags=parsed.get("hashtags"),
        keywords=parsed.get("keywords"),
        suggested_price=parsed.get("suggestedPrice"),
        agent_insights=parsed.get("agentInsights"),
        sources=sources or [],
    )


async def optimize_listing(
    platform: Union[Platform, str],
    rough_text: str,
    zip_code: Optional[str] = None,
    media: Optional[MediaPayload] = None,
    *,
    api_key: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> OptimizedListing:
    """
    Listing agent:
    - Builds the directive + optional inline media part.
    - Calls Gemini with search grounding (or a response schema).
    - Normalizes the output and attaches cited web sources.

    Provider errors (auth, quota, missing project) propagate unchanged.
    """
    settings = settings or load_settings()
    key = resolve_api_key(api_key)
    platform_name = platform.value if isinstance(platform, Platform) else str(platform)

    parts = [types.Part.from_text(text=build_prompt(platform_name, rough_text, zip_code, media))]
    if media is not None:
        parts.append(media_part(media))

    client = build_client(key)
    config = build_generation_config(settings.enforce_schema)

    log.info(
        "🧠 Listing Agent started (platform=%s, media=%s, schema=%s)",
        platform_name,
        media.mime_type if media else None,
        settings.enforce_schema,
    )
    inc_metric("listing_requests")

    try:
        with measure("listing_generate"):
            # Sync SDK call runs in a worker thread so the event loop stays free
            resp = await asyncio.to_thread(
                client.models.generate_content,
                model=settings.listing_model,
                contents=parts,
                config=config,
            )
    except Exception as e:
        log.error("❌ Listing Agent failed: %s", e)
        inc_metric("listing_errors")
        raise
    finally:
        close_client(client)

    listing = normalize_listing(response_text(resp), rough_text, extract_sources(resp))
    log.info("✅ Listing Agent complete (%d sources)", len(listing.sources))
    return listing
