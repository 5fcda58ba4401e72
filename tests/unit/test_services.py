# tests/unit/test_services.py
import base64
import json

import httpx
import pytest
from unittest.mock import AsyncMock

from clinic_intake.llm.interface import LLMUnavailableError, UnavailableLLMProvider
from clinic_intake.schemas.analysis import ImageAssessment
from clinic_intake.schemas.settings import DEFAULT_SETTINGS, ChatbotSettings
from clinic_intake.services.csv_export import export_consultations
from clinic_intake.services.image_analysis import ImageAnalysisService, InvalidImageError, clean_base64
from clinic_intake.services.portal_webhook import PortalWebhookForwarder, decode_data_url
from clinic_intake.services.settings_provider import PortalSettingsClient, SettingsCache

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# --- Settings Provider ---

@pytest.mark.asyncio
async def test_settings_cache_serves_fresh_value_without_refetch():
    fetcher = AsyncMock(return_value=ChatbotSettings(botDisplayName="Aoife"))
    clock = FakeClock()
    cache = SettingsCache(fetcher, ttl=300, clock=clock)

    first = await cache.get()
    clock.now += 299
    second = await cache.get()

    assert first.bot_display_name == second.bot_display_name == "Aoife"
    fetcher.assert_awaited_once()


@pytest.mark.asyncio
async def test_settings_cache_refetches_after_ttl():
    fetcher = AsyncMock(side_effect=[ChatbotSettings(botDisplayName="Aoife"), ChatbotSettings(botDisplayName="Ciara")])
    clock = FakeClock()
    cache = SettingsCache(fetcher, ttl=300, clock=clock)

    await cache.get()
    clock.now += 301
    refreshed = await cache.get()

    assert refreshed.bot_display_name == "Ciara"
    assert fetcher.await_count == 2


@pytest.mark.asyncio
async def test_settings_cache_falls_back_to_defaults_then_last_good_value():
    fetcher = AsyncMock(side_effect=httpx.ConnectError("offline"))
    clock = FakeClock()
    cache = SettingsCache(fetcher, ttl=300, clock=clock)

    assert await cache.get() == DEFAULT_SETTINGS

    fetcher.side_effect = [ChatbotSettings(botDisplayName="Aoife"), httpx.ReadTimeout("slow")]
    await cache.refresh()
    clock.now += 301
    assert (await cache.get()).bot_display_name == "Aoife"


@pytest.mark.asyncio
async def test_portal_settings_client_merges_over_defaults():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/chatbot-settings"
        return httpx.Response(200, json={"botDisplayName": "Aoife", "welcomeMessage": "", "unknown": 1})

    client = PortalSettingsClient(
        url="https://portal.test/api/chatbot-settings",
        transport=httpx.MockTransport(handler),
    )
    fetched = await client()

    assert fetched.bot_display_name == "Aoife"
    assert fetched.welcome_message == DEFAULT_SETTINGS.welcome_message
    assert fetched.cta_label == DEFAULT_SETTINGS.cta_label


@pytest.mark.asyncio
async def test_portal_settings_client_raises_on_http_error():
    client = PortalSettingsClient(
        url="https://portal.test/api/chatbot-settings",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await client()


@pytest.mark.asyncio
async def test_settings_cache_backs_off_after_failed_fetch():
    fetcher = AsyncMock(side_effect=[httpx.ConnectError("offline"), ChatbotSettings(botDisplayName="Aoife")])
    clock = FakeClock()
    cache = SettingsCache(fetcher, ttl=300, retry_ttl=30, clock=clock)

    assert await cache.get() == DEFAULT_SETTINGS
    clock.now += 29
    assert await cache.get() == DEFAULT_SETTINGS
    fetcher.assert_awaited_once()

    clock.now += 2
    assert (await cache.get()).bot_display_name == "Aoife"
    assert fetcher.await_count == 2


# --- Portal Webhook Forwarder ---

@pytest.mark.asyncio
async def test_forwarder_posts_enriched_multipart_with_secret():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["secret"] = request.headers["X-Webhook-Secret"]
        captured["body"] = request.content
        return httpx.Response(200, json={"received": True})

    forwarder = PortalWebhookForwarder(
        url="https://portal.test/webhook",
        secret="s3cret",
        transport=httpx.MockTransport(handler),
    )
    result = await forwarder.forward({"name": "Jane Doe", "consultation_id": 4}, PNG_DATA_URL)

    assert result.success
    assert result.response == {"received": True}
    assert captured["secret"] == "s3cret"
    assert b'name="data"' in captured["body"]
    assert b'name="image"; filename="patient_image.png"' in captured["body"]
    assert b"png-bytes" in captured["body"]
    assert b'"chatbotSource": "nailsurgery"' in captured["body"]


@pytest.mark.asyncio
async def test_forwarder_reports_http_failure():
    forwarder = PortalWebhookForwarder(
        url="https://portal.test/webhook",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
    )
    result = await forwarder.forward({"name": "Jane Doe"})

    assert not result.success
    assert result.message.startswith("Webhook failed: 500")
    assert result.response == {"rawResponse": "boom"}


@pytest.mark.asyncio
async def test_forwarder_never_raises_on_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    forwarder = PortalWebhookForwarder(url="https://portal.test/webhook", transport=httpx.MockTransport(handler))
    result = await forwarder.forward({"name": "Jane Doe"})

    assert not result.success
    assert "unreachable" in result.message


def test_enrich_stamps_clinic_identity():
    enriched = PortalWebhookForwarder(url="https://portal.test/webhook").enrich({"name": "Jane Doe"})
    assert enriched["source"] == "nailsurgery"
    assert enriched["clinic_group"] == "The Nail Surgery Clinic"
    assert enriched["preferred_clinic"] == "Nail Surgery Clinic"
    assert "created_at" in enriched
    json.dumps(enriched)


def test_decode_data_url():
    assert decode_data_url(PNG_DATA_URL) == ("image/png", b"png-bytes")
    assert decode_data_url("https://cdn.example/nail.png") is None


# --- Image Analysis Service ---

def test_clean_base64_strips_prefix_and_checks_payload():
    assert clean_base64("data:image/jpeg;base64,aGVsbG8=") == "aGVsbG8="
    with pytest.raises(InvalidImageError):
        clean_base64("data:image/jpeg;base64,")
    with pytest.raises(InvalidImageError):
        clean_base64("not base64 at all!")


@pytest.mark.asyncio
async def test_image_analysis_builds_vision_request():
    llm = AsyncMock()
    llm.generate_structured_output.return_value = ImageAssessment(
        condition="Fungal nail infection",
        severity="moderate",
        recommendations=["a", "b", "c", "d"],
    )
    service = ImageAnalysisService(llm, clinic_name="The Nail Surgery Clinic")

    analysis = await service.analyze("data:image/jpeg;base64,aGVsbG8=")

    assert analysis.condition == "Fungal nail infection"
    assert analysis.recommendations == ["a", "b", "c"]
    assert not analysis.is_fallback

    kwargs = llm.generate_structured_output.await_args.kwargs
    system, user = kwargs["messages"]
    assert "The Nail Surgery Clinic" in system["content"]
    assert "ingrown toenails" in system["content"]
    assert user["content"][1]["image_url"]["url"] == "data:image/jpeg;base64,aGVsbG8="
    assert kwargs["response_model"] is ImageAssessment


@pytest.mark.asyncio
async def test_unavailable_provider_fails_fast():
    service = ImageAnalysisService(UnavailableLLMProvider())
    with pytest.raises(LLMUnavailableError):
        await service.analyze("data:image/jpeg;base64,aGVsbG8=")


# --- CSV Export ---

def test_csv_export_flattens_records():
    csv_text = export_consultations([
        {
            "id": 1,
            "name": "Jane Doe",
            "has_image": True,
            "image_analysis": {"condition": "Ingrown toenail"},
            "email": None,
        }
    ])
    header, row = csv_text.strip().splitlines()
    assert header.startswith("ID,Date Created,Patient Name")
    assert row.startswith("1,,Jane Doe,,Yes,")
    assert '""condition"": ""Ingrown toenail""' in row
