import json
import os
import time

import requests
import streamlit as st

API_BASE = os.getenv("LISTING_API_BASE", "http://127.0.0.1:8000")
API_OPTIMIZE = f"{API_BASE}/api/v1/listing/optimize"
API_VIDEO_ASYNC = f"{API_BASE}/api/v1/listing/video_async"
API_JOBS = f"{API_BASE}/api/v1/jobs"

PAGE_TITLE = "ListingPro · Gemini Agent"

PLATFORMS = [
    "eBay",
    "Poshmark",
    "Etsy",
    "Facebook Marketplace",
    "Amazon",
    "General Dropshipping",
]

VIDEO_POLL_SECONDS = float(os.getenv("LISTING_VIDEO_POLL_SECONDS", "10"))
VIDEO_POLL_LIMIT = 70


def _headers():
    key = st.session_state.get("api_key", "").strip()
    return {"X-Api-Key": key} if key else {}


def _show_error(r: requests.Response):
    try:
        detail = r.json().get("detail")
    except ValueError:
        detail = r.text
    if isinstance(detail, dict):
        st.error(detail.get("guidance") or "Request failed.")
        st.caption(detail.get("message", ""))
    else:
        st.error(str(detail))


def _upload_files(uploaded):
    if uploaded is None:
        return None
    return {"file": (uploaded.name, uploaded.getvalue(), uploaded.type)}


st.set_page_config(page_title=PAGE_TITLE, layout="wide", initial_sidebar_state="expanded")

st.markdown(
    """
    <style>
    .section-label {
        font-size: 0.78rem;
        text-transform: uppercase;
        color: #6b7280;
        margin-bottom: 0.55rem;
        letter-spacing: 0.12em;
    }
    .tag {
        display: inline-block;
        font-size: 0.72rem;
        padding: 0.2rem 0.65rem;
        margin: 0 0.3rem 0.3rem 0;
        border-radius: 999px;
        border: 1px solid rgba(148,163,184,0.4);
    }
    </style>
    """,
    unsafe_allow_html=True,
)

# ---------- STATE ----------
if "last_result" not in st.session_state:
    st.session_state.last_result = None
if "last_upload" not in st.session_state:
    st.session_state.last_upload = None

# ---------- SIDEBAR: CREDENTIAL ----------
with st.sidebar:
    st.markdown("### Gemini API key")
    st.text_input(
        "API key (optional)",
        type="password",
        key="api_key",
        help="Overrides GEMINI_API_KEY from the backend's .env for your requests. "
        "Video generation needs a key from a project with billing enabled.",
    )

st.markdown(f"## {PAGE_TITLE}")
st.caption("Describe an item, add a photo or clip, and get a marketplace-ready listing with live pricing sources.")

left, right = st.columns([1.0, 1.0])

# =========================================================
# LEFT: INPUT
# =========================================================
with left:
    st.markdown('<div class="section-label">Item</div>', unsafe_allow_html=True)
    platform = st.selectbox("Marketplace", PLATFORMS)
    rough_text = st.text_area("What are you selling?", height=120)
    zip_code = st.text_input("Zip code (optional)")
    uploaded = st.file_uploader(
        "Photo or video (optional)",
        type=["png", "jpg", "jpeg", "webp", "mp4", "mov", "webm"],
    )

    if st.button("Optimize listing"):
        if not rough_text.strip() and uploaded is None:
            st.warning("Enter a description or upload a photo or video first.")
        else:
            data = {"platform": platform, "rough_text": rough_text, "zip_code": zip_code}
            try:
                with st.spinner("Researching the market and writing your listing…"):
                    r = requests.post(
                        API_OPTIMIZE,
                        data=data,
                        files=_upload_files(uploaded),
                        headers=_headers(),
                        timeout=120,
                    )
            except requests.exceptions.RequestException as e:
                st.error(f"Could not reach backend: {e}")
            else:
                if not r.ok:
                    _show_error(r)
                else:
                    st.session_state.last_result = r.json()
                    st.session_state.last_upload = uploaded

# =========================================================
# RIGHT: RESULT
# =========================================================
with right:
    result = st.session_state.last_result
    if not result:
        st.caption("No listing yet. Fill in the item on the left and click Optimize listing.")
        st.stop()

    st.markdown('<div class="section-label">Title</div>', unsafe_allow_html=True)
    st.code(result.get("title", ""), language=None)

    st.markdown('<div class="section-label">Description</div>', unsafe_allow_html=True)
    st.code(result.get("description", ""), language=None)

    st.metric("Suggested price", result.get("suggestedPrice", ""))

    tags = result.get("hashtags", []) + result.get("keywords", [])
    if tags:
        st.markdown(
            "".join(f"<span class='tag'>{t}</span>" for t in tags),
            unsafe_allow_html=True,
        )

    insights = result.get("agentInsights") or {}
    with st.expander("Agent insights", expanded=True):
        st.write("**Research:**", insights.get("research", ""))
        st.write("**Market analysis:**", insights.get("marketAnalysis", ""))

    sources = result.get("sources") or []
    if sources:
        with st.expander(f"Sources ({len(sources)})"):
            for s in sources:
                st.markdown(f"- [{s.get('title')}]({s.get('uri')})")

    st.markdown("<hr style='opacity:0.22;'>", unsafe_allow_html=True)

    if result.get("videoUri"):
        st.video(result["videoUri"])
    elif st.button("Generate showcase video"):
        try:
            r = requests.post(
                API_VIDEO_ASYNC,
                data={"title": result.get("title", ""), "listing": json.dumps(result)},
                files=_upload_files(st.session_state.last_upload),
                headers=_headers(),
                timeout=60,
            )
        except requests.exceptions.RequestException as e:
            st.error(f"Could not reach backend: {e}")
            st.stop()
        if not r.ok:
            _show_error(r)
            st.stop()

        job_id = r.json()["job_id"]
        job = {}
        with st.spinner("Rendering video with Veo… this usually takes a few minutes."):
            for _ in range(VIDEO_POLL_LIMIT):
                time.sleep(VIDEO_POLL_SECONDS)
                try:
                    job = requests.get(f"{API_JOBS}/{job_id}", timeout=30).json()
                except (requests.exceptions.RequestException, ValueError) as e:
                    job = {"status": "unreachable", "error": str(e)}
                    break
                if job.get("status") in ("done", "error"):
                    break

        if job.get("status") == "done":
            result = job["result"].get("listing") or dict(result, videoUri=job["result"]["videoUri"])
            st.session_state.last_result = result
            st.video(result["videoUri"])
        elif job.get("status") == "error":
            st.error(job.get("guidance") or "Video generation failed.")
            st.caption(job.get("error", ""))
        elif job.get("status") == "unreachable":
            st.error(f"Lost contact with backend while rendering: {job.get('error')}")
            st.caption(f"Job {job_id} may still finish; check {API_JOBS}/{job_id} later.")
        else:
            st.warning("Video is still rendering. Try again in a minute.")
