import asyncio
import base64
import json

import pytest

from backend.app.agents import listing_agent
from backend.app.agents.listing_agent import (
    LISTING_SCHEMA,
    build_prompt,
    normalize_listing,
    optimize_listing,
)
from backend.app.logging_config import get_metrics_snapshot
from backend.app.models import MediaPayload, Platform


@pytest.fixture
def fake_genai(monkeypatch, helpers):
    """Install a fake client; returns (models, keys used to build clients)."""
    models = helpers.FakeModels()
    models.clients = []
    keys = []

    def build_client(api_key):
        keys.append(api_key)
        client = helpers.FakeGenaiClient(models=models)
        models.clients.append(client)
        return client

    monkeypatch.setattr(listing_agent, "build_client", build_client)
    return models, keys


def run(coro):
    return asyncio.run(coro)


def test_valid_json_fields_and_sources(fake_genai, helpers, settings):
    models, _ = fake_genai
    payload = {
        "title": "Sony WH-1000XM4 Wireless Headphones - Black",
        "description": "Industry-leading noise cancelling.",
        "hashtags": ["sony", "headphones"],
        "keywords": ["noise cancelling", "bluetooth"],
        "suggestedPrice": "$180 - $210",
        "agentInsights": {"research": "Model WH-1000XM4", "marketAnalysis": "Strong demand"},
    }
    models.response = helpers.fake_response(
        json.dumps(payload),
        chunks=[helpers.web_chunk("https://www.ebay.com/sch/sold", "eBay sold")],
    )

    listing = run(optimize_listing(Platform.EBAY, "sony headphones", settings=settings))

    assert listing.title == payload["title"]
    assert listing.description == payload["description"]
    assert listing.hashtags == ["sony", "headphones"]
    assert listing.keywords == ["noise cancelling", "bluetooth"]
    assert listing.suggested_price == "$180 - $210"
    assert listing.agent_insights.research == "Model WH-1000XM4"
    assert listing.agent_insights.market_analysis == "Strong demand"
    assert [(s.title, s.uri) for s in listing.sources] == [("eBay sold", "https://www.ebay.com/sch/sold")]
    assert listing.video_uri is None


def test_json_embedded_in_prose(fake_genai, helpers, settings):
    models, _ = fake_genai
    models.response = helpers.fake_response(
        'Here you go: {"title":"Vintage Levi\'s Denim Jacket - Size L","description":"Classic piece.",'
        '"hashtags":["vintage"],"suggestedPrice":"$45","agentInsights":{"research":"Levi\'s trucker jacket",'
        '"marketAnalysis":"Sells $40-60"}}'
    )

    listing = run(optimize_listing(Platform.EBAY, "Vintage Levi's jacket, size L", settings=settings))

    assert listing.title == "Vintage Levi's Denim Jacket - Size L"
    assert listing.description == "Classic piece."
    assert listing.hashtags == ["vintage"]
    assert listing.keywords == []
    assert listing.suggested_price == "$45"
    assert listing.agent_insights.market_analysis == "Sells $40-60"
    assert listing.sources == []


def test_non_json_output_degrades_without_raising(fake_genai, helpers, settings):
    models, _ = fake_genai
    text = "Sorry, I can only describe this as a nice blue vase."
    models.response = helpers.fake_response(text)

    listing = run(optimize_listing(Platform.ETSY, "blue vase", settings=settings))

    assert listing.title == "blue vase"
    assert listing.description == text
    assert listing.hashtags == []
    assert listing.keywords == []
    assert listing.suggested_price == "Market Price"
    assert listing.agent_insights.research == "Analysis complete."
    assert listing.agent_insights.market_analysis == "Check sources below."
    assert get_metrics_snapshot()["listing_parse_fallbacks"] == 1


def test_empty_rough_text_uses_placeholder_title():
    listing = normalize_listing("not json at all", "   ")
    assert listing.title == "New Listing"
    assert listing.description == "not json at all"


def test_missing_fields_fall_back_field_by_field():
    listing = normalize_listing('{"hashtags": "oops", "suggestedPrice": 45}', "old camera")
    assert listing.title == "old camera"
    assert listing.description == '{"hashtags": "oops", "suggestedPrice": 45}'
    assert listing.hashtags == []
    assert listing.suggested_price == "45"
    assert listing.agent_insights.research == "Analyzing..."


def test_degraded_description_keeps_surrounding_whitespace():
    text = "\nSorry, I can only describe this as a nice blue vase.\n  "
    listing = normalize_listing(text, "  blue vase ")
    assert listing.description == text
    assert listing.title == "  blue vase "


def test_parsed_values_pass_through_untrimmed():
    text = '{"title": " Brass Lamp ", "description": "Brass lamp.\\n", "hashtags": ["", " lamp"]}'
    listing = normalize_listing(text, "lamp")
    assert listing.title == " Brass Lamp "
    assert listing.description == "Brass lamp.\n"
    assert listing.hashtags == ["", " lamp"]


def test_client_closed_after_call(fake_genai, helpers, settings):
    models, _ = fake_genai
    models.response = helpers.fake_response('{"title": "Lamp", "description": "Brass"}')

    run(optimize_listing(Platform.ETSY, "lamp", settings=settings))

    assert [c.closed for c in models.clients] == [True]


def test_client_closed_when_call_fails(fake_genai, settings):
    models, _ = fake_genai
    models.error = RuntimeError("503 UNAVAILABLE")

    with pytest.raises(RuntimeError):
        run(optimize_listing(Platform.ETSY, "lamp", settings=settings))

    assert [c.closed for c in models.clients] == [True]


def test_transport_error_propagates_unchanged(fake_genai, settings):
    models, _ = fake_genai
    error = RuntimeError("401 UNAUTHENTICATED. API key not valid. Please pass a valid API key.")
    models.error = error

    with pytest.raises(RuntimeError) as exc_info:
        run(optimize_listing(Platform.EBAY, "anything", settings=settings))

    assert exc_info.value is error
    assert get_metrics_snapshot()["listing_errors"] == 1


def test_search_mode_request(fake_genai, helpers, settings):
    models, keys = fake_genai
    models.response = helpers.fake_response('{"title": "T", "description": "D"}')

    run(optimize_listing("Poshmark", "silk scarf", "94107", settings=settings))

    call = models.calls[0]
    assert call["model"] == "gemini-test"
    config = call["config"]
    assert "ListingPro AI" in config.system_instruction
    assert config.tools[0].google_search is not None
    assert config.response_schema is None
    assert keys == ["test-key"]

    prompt = call["contents"][0].text
    assert "Analyze this Poshmark listing." in prompt
    assert '"silk scarf"' in prompt
    assert "Zip Code: 94107." in prompt


def test_schema_mode_request(fake_genai, helpers, settings):
    models, _ = fake_genai
    models.response = helpers.fake_response('{"title": "T", "description": "D"}')
    settings.enforce_schema = True

    run(optimize_listing(Platform.AMAZON, "usb hub", settings=settings))

    config = models.calls[0]["config"]
    assert config.tools is None
    assert config.response_mime_type == "application/json"
    assert config.response_schema == LISTING_SCHEMA


def test_media_attached_as_inline_part(fake_genai, helpers, settings):
    models, keys = fake_genai
    models.response = helpers.fake_response('{"title": "T", "description": "D"}')
    raw = b"fake mp4 bytes"
    media = MediaPayload(
        data="data:video/mp4;base64," + base64.b64encode(raw).decode("utf-8"),
        mime_type="video/mp4",
    )

    run(optimize_listing(Platform.FACEBOOK, "", None, media, api_key="user-key", settings=settings))

    contents = models.calls[0]["contents"]
    assert len(contents) == 2
    assert "video clip" in contents[0].text
    assert contents[1].inline_data.data == raw
    assert contents[1].inline_data.mime_type == "video/mp4"
    assert keys == ["user-key"]


def test_prompt_without_zip_or_media():
    prompt = build_prompt("eBay", "desk lamp")
    assert "Zip Code: Not provided (global market)." in prompt
    assert "attached" not in prompt
