# backend/app/agents/video_agent.py
"""
Veo video generation for a finished listing.

Submits a long-running generate_videos operation, then polls it on a fixed
interval until it reports done. The credential is re-read before every status
check so a key changed mid-flight is used without restarting the job.
"""

import asyncio
import base64
import logging
from typing import Any, Callable, Dict, Optional

from google.genai import types

from ..config import Settings, load_settings, resolve_api_key
from ..errors import VideoGenerationError, VideoTimeoutError
from ..gemini_client import build_client, close_client
from ..logging_config import inc_metric, measure, set_metric
from ..models import MediaPayload

log = logging.getLogger("listing-agent")

KeyProvider = Callable[[], str]

VIDEO_PROMPT = (
    "A cinematic, high-end commercial product showcase of {title}. "
    "Smooth slow orbit around the item, soft studio lighting, shallow depth of field, "
    "clean minimal background, crisp detail on materials, textures and branding."
)


def build_video_request(
    title: str,
    media: Optional[MediaPayload],
    settings: Settings,
) -> Dict[str, Any]:
    request_params: Dict[str, Any] = {
        "model": settings.video_model,
        "prompt": VIDEO_PROMPT.format(title=title),
        "config": types.GenerateVideosConfig(
            number_of_videos=1,
            resolution=settings.video_resolution,
            aspect_ratio=settings.video_aspect_ratio,
        ),
    }

    if media is not None:
        if media.is_video:
            # Only still images can condition the first frame
            log.info("[Video] Ignoring %s upload for conditioning", media.mime_type)
        else:
            request_params["image"] = types.Image(
                image_bytes=base64.b64decode(media.raw_b64),
                mime_type=media.mime_type,
            )
    return request_params


def extract_video_uri(operation: Any) -> str:
    error = getattr(operation, "error", None)
    if error:
        raise VideoGenerationError(f"Video generation failed: {error}")

    result = getattr(operation, "response", None) or getattr(operation, "result", None)
    videos = getattr(result, "generated_videos", None) or []
    video = getattr(videos[0], "video", None) if videos else None
    uri = getattr(video, "uri", None) if video else None
    if not uri:
        raise VideoGenerationError("Video generation completed but returned no video.")
    return uri


def downloadable_uri(uri: str, api_key: str) -> str:
    return f"{uri}&key={api_key}"


_active_jobs = 0


def _set_active(delta: int) -> None:
    global _active_jobs
    _active_jobs += delta
    set_metric("video_jobs_active", _active_jobs)


async def _call(api_key: str, fn: Callable[[Any], Any]) -> Any:
    """Run one SDK call on a fresh client built from api_key, then close it."""
    client = build_client(api_key)
    try:
        return await asyncio.to_thread(fn, client)
    finally:
        close_client(client)


async def synthesize_video(
    title: str,
    media: Optional[MediaPayload] = None,
    *,
    key_provider: Optional[KeyProvider] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Generate a short showcase video and return a directly downloadable URI.

    Args:
        title: Listing title used in the prompt template.
        media: Optional photo used as the conditioning image.
        key_provider: Returns the current credential; called on submit and
            before every status check. Defaults to the environment lookup.
        settings: Poll interval, poll bound and output parameters.

    Raises:
        VideoGenerationError: operation finished with an error or no video.
        VideoTimeoutError: not done after ``settings.video_max_polls`` checks.
        Provider SDK errors propagate unchanged.
    """
    settings = settings or load_settings()
    key_provider = key_provider or resolve_api_key

    api_key = key_provider()

    log.info("🎬 Video Agent started (model=%s, title=%s)", settings.video_model, title[:80])
    inc_metric("video_jobs_submitted")
    _set_active(1)

    try:
        with measure("video_generate"):
            operation = await _call(
                api_key,
                lambda client: client.models.generate_videos(
                    **build_video_request(title, media, settings)
                ),
            )
            log.info("[Video] Operation submitted: %s", getattr(operation, "name", None))

            checks = 0
            while not operation.done:
                if checks >= settings.video_max_polls:
                    raise VideoTimeoutError(
                        f"Video generation timed out after {checks} status checks "
                        f"({checks * settings.video_poll_interval}s)."
                    )
                await asyncio.sleep(settings.video_poll_interval)

                api_key = key_provider()
                current = operation
                operation = await _call(api_key, lambda client: client.operations.get(current))
                checks += 1
                inc_metric("video_status_checks")
                log.info(
                    "[Video] Waiting... (%ds elapsed, done=%s)",
                    checks * settings.video_poll_interval,
                    bool(operation.done),
                )

            uri = extract_video_uri(operation)
    except Exception as e:
        log.error("❌ Video Agent failed: %s", e)
        inc_metric("video_errors")
        raise
    finally:
        _set_active(-1)

    log.info("✅ Video Agent complete")
    return downloadable_uri(uri, api_key)
