# backend/app/main.py
from dotenv import load_dotenv

load_dotenv()  # Loads .env automatically

from typing import Optional

from fastapi import (
    FastAPI,
    UploadFile,
    File,
    Form,
    Header,
    HTTPException,
    BackgroundTasks,
)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .agents.listing_agent import optimize_listing
from .agents.video_agent import synthesize_video
from .config import resolve_api_key
from .errors import error_detail, error_info
from .logging_config import log, get_metrics_snapshot
from .jobs.jobs import create_job, set_job_running, set_job_result, set_job_error, get_job
from .models import (
    JobStatus,
    MediaPayload,
    OptimizationRequest,
    OptimizedListing,
    Platform,
    VideoRequest,
    VideoResult,
)
from .utils import guess_mime_type, media_from_upload


app = FastAPI(title="Gemini Listing Optimizer", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _read_media(file: Optional[UploadFile]) -> Optional[MediaPayload]:
    if file is None or not file.filename:
        return None
    data = await file.read()
    if not data:
        return None
    try:
        return media_from_upload(data, guess_mime_type(file.filename, file.content_type))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _provider_error(e: Exception, stage: str) -> HTTPException:
    info = error_info(e)
    log.error(f"❌ {stage} failed ({info.kind}): {e}")
    return HTTPException(status_code=info.status_code, detail=error_detail(e))


def _key_provider(override: Optional[str]):
    # Re-resolved on every call so env changes are picked up mid-job
    return lambda: resolve_api_key(override)


# ==========================================================
#                    LISTING OPTIMIZER
# ==========================================================


@app.post(
    "/api/v1/listing/optimize",
    response_model=OptimizedListing,
    response_model_exclude_none=True,
)
async def optimize(
    platform: Platform = Form(...),
    rough_text: str = Form(""),
    zip_code: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    x_api_key: Optional[str] = Header(None),
):
    """
    Turn rough notes (plus an optional photo/video) into a marketplace listing.
    """
    request = OptimizationRequest(
        platform=platform,
        rough_text=rough_text,
        zip_code=(zip_code or "").strip() or None,
        media=await _read_media(file),
    )
    if not request.rough_text.strip() and request.media is None:
        raise HTTPException(
            status_code=400,
            detail="No payload detected. Enter text or upload a photo or video.",
        )

    log.info(f"🚀 Optimizing listing for {request.platform.value}")
    try:
        return await optimize_listing(
            request.platform,
            request.rough_text,
            request.zip_code,
            request.media,
            api_key=x_api_key,
        )
    except Exception as e:
        raise _provider_error(e, "Listing optimization")


# ==========================================================
#                    VIDEO SYNTHESIZER
# ==========================================================


async def _video_request(
    title: str,
    file: Optional[UploadFile],
    listing_json: Optional[str],
) -> VideoRequest:
    if not title.strip():
        raise HTTPException(status_code=400, detail="A listing title is required for video generation.")
    listing = None
    if listing_json:
        try:
            listing = OptimizedListing.model_validate_json(listing_json)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid listing: {e}")
    return VideoRequest(title=title.strip(), media=await _read_media(file), listing=listing)


def _video_result(request: VideoRequest, uri: str) -> VideoResult:
    listing = request.listing.with_video(uri) if request.listing else None
    return VideoResult(video_uri=uri, listing=listing)


@app.post(
    "/api/v1/listing/video",
    response_model=VideoResult,
    response_model_exclude_none=True,
)
async def generate_video(
    title: str = Form(...),
    file: Optional[UploadFile] = File(None),
    listing: Optional[str] = Form(None),
    x_api_key: Optional[str] = Header(None),
):
    """
    Run the Veo job to completion and return the downloadable URI.
    Blocks until the provider reports done (minutes).
    """
    request = await _video_request(title, file, listing)
    try:
        uri = await synthesize_video(
            request.title,
            request.media,
            key_provider=_key_provider(x_api_key),
        )
    except Exception as e:
        raise _provider_error(e, "Video generation")
    return _video_result(request, uri)


@app.post("/api/v1/listing/video_async")
async def generate_video_async(
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    file: Optional[UploadFile] = File(None),
    listing: Optional[str] = Form(None),
    x_api_key: Optional[str] = Header(None),
):
    """
    Background wrapper around generate_video; poll /api/v1/jobs/{job_id}.
    """
    request = await _video_request(title, file, listing)
    job_id = create_job("video")

    async def run_background():
        set_job_running(job_id)
        try:
            uri = await synthesize_video(
                request.title,
                request.media,
                key_provider=_key_provider(x_api_key),
            )
            set_job_result(job_id, _video_result(request, uri).model_dump(by_alias=True, exclude_none=True))
        except Exception as e:
            log.error(f"❌ Video job {job_id} failed: {e}")
            set_job_error(job_id, str(e), guidance=error_info(e).guidance)

    background_tasks.add_task(run_background)
    return {"job_id": job_id, "status": "queued"}


@app.get("/api/v1/jobs/{job_id}", response_model=JobStatus)
async def get_job_status(job_id: str):
    job = get_job(job_id)
    if job["status"] == "not_found":
        raise HTTPException(status_code=404, detail="Job not found")
    return job


# ==========================================================
#                     METRICS + HEALTH
# ==========================================================


@app.get("/metrics")
async def metrics():
    return get_metrics_snapshot()


@app.get("/health")
async def health():
    return {"status": "ok", "agents": ["listing", "video"]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app.main:app", host="127.0.0.1", port=8000, reload=True)
