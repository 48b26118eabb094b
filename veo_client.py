"""
veo_client.py — Veo integration for the cinematic background video.

Long-running job: submit → poll → fetch → save.
The poll loop has no attempt cap or deadline; it ends when the job reports
done, or when the caller sets its cancel event.
"""

import os
import uuid
import threading
import requests
from pathlib import Path

from google.genai import types

import gemini_service

VIDEO_MODEL = "veo-3.1-fast-generate-preview"
POLL_INTERVAL = 8  # seconds between job status checks

VIDEO_PROMPT = (
    "Cinematic drone sweep around {landmark} in {city}. Golden hour, soft lighting, 1080p, "
    "ultra-smooth motion, professional travel documentary style."
)

MEDIA_URL_PREFIX = "/media"


class VideoGenerationError(Exception):
    """The job finished without a usable result, or the download failed."""


class VideoCancelled(Exception):
    """Polling was abandoned because the owning cycle was cancelled."""


def get_media_dir():
    """Directory the downloaded clips are served from."""
    media_dir = Path(os.environ.get("SKYSYNC_MEDIA_DIR", Path(__file__).parent / "media"))
    media_dir.mkdir(parents=True, exist_ok=True)
    return media_dir


def submit_video_generation(landmark_name, city):
    """
    Submit a Veo job for one 720p 16:9 clip.

    Returns:
        The job handle (GenerateVideosOperation)
    """
    client = gemini_service.init_client()
    return client.models.generate_videos(
        model=VIDEO_MODEL,
        prompt=VIDEO_PROMPT.format(landmark=landmark_name, city=city),
        config=types.GenerateVideosConfig(
            number_of_videos=1,
            resolution="720p",
            aspect_ratio="16:9",
        ),
    )


def wait_for_completion(operation, cancel_event=None, poll_interval=POLL_INTERVAL):
    """Poll until the job reports done.

    Args:
        operation: Job handle returned by submit_video_generation
        cancel_event: Optional threading.Event; once set, polling stops
        poll_interval: Seconds between status checks

    Returns:
        The completed job handle
    """
    client = gemini_service.init_client()
    cancel_event = cancel_event or threading.Event()

    while not operation.done:
        # Event.wait returns True as soon as the event is set
        if cancel_event.wait(poll_interval):
            raise VideoCancelled("Cycle cancelled while polling")
        operation = client.operations.get(operation)

    return operation


def get_video_uri(operation):
    """Result locator of the first generated video."""
    if getattr(operation, "error", None):
        raise VideoGenerationError(f"Video job failed: {operation.error}")

    response = getattr(operation, "response", None)
    videos = getattr(response, "generated_videos", None) or []
    if not videos or not videos[0].video or not videos[0].video.uri:
        raise VideoGenerationError(f"No video URI in job result: {response}")
    return videos[0].video.uri


def download_video(video_uri, save_path):
    """Download the clip (API key appended as the `key` parameter) to a local path."""
    response = requests.get(
        video_uri,
        params={"key": gemini_service.get_api_key()},
        stream=True,
        timeout=120,
    )
    response.raise_for_status()

    path = Path(save_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "wb") as f:
        for chunk in response.iter_content(chunk_size=8192):
            f.write(chunk)

    return str(path)


def generate_landmark_video(landmark_name, city, cancel_event=None, progress_callback=None,
                            poll_interval=POLL_INTERVAL):
    """
    Full pipeline: submit → poll → fetch → save.

    Args:
        landmark_name: Landmark from the weather lookup
        city: City from the weather lookup
        cancel_event: Optional threading.Event owned by the load cycle
        progress_callback: Optional callback(message, type)
        poll_interval: Seconds between status checks

    Returns:
        URL path of the playable clip (/media/<file>.mp4), or "" on any failure
    """
    state = "submitted"
    try:
        operation = submit_video_generation(landmark_name, city)
        if progress_callback:
            progress_callback("🎬 Video job submitted. Waiting for Veo...", "info")

        state = "polling"
        operation = wait_for_completion(operation, cancel_event=cancel_event, poll_interval=poll_interval)

        state = "fetching"
        if progress_callback:
            progress_callback("📥 Video ready. Downloading...", "info")
        video_uri = get_video_uri(operation)

        filename = f"{uuid.uuid4().hex[:12]}.mp4"
        download_video(video_uri, get_media_dir() / filename)

        state = "ready"
        if progress_callback:
            progress_callback("✅ Cinematic background ready", "success")
        return f"{MEDIA_URL_PREFIX}/{filename}"

    except VideoCancelled:
        print(f"[veo] Video generation cancelled while {state}")
        return ""
    except Exception as e:
        print(f"[veo] Video generation failed while {state}: {e}")
        if progress_callback:
            progress_callback(f"⚠️ Video background unavailable: {str(e)[:120]}", "warning")
        return ""
