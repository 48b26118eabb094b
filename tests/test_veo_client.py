import threading
from types import SimpleNamespace

import pytest

import veo_client

VIDEO_URI = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media"


def job(done, uri=VIDEO_URI, error=None):
    videos = [SimpleNamespace(video=SimpleNamespace(uri=uri))] if uri else []
    return SimpleNamespace(
        done=done,
        error=error,
        response=SimpleNamespace(generated_videos=videos) if done else None,
    )


class FakeDownload:
    def __init__(self, content=b"mp4-bytes", status_error=None):
        self.content = content
        self.status_error = status_error
        self.calls = []

    def __call__(self, url, params=None, stream=False, timeout=None):
        self.calls.append({"url": url, "params": params, "stream": stream})
        return self

    def raise_for_status(self):
        if self.status_error:
            raise self.status_error

    def iter_content(self, chunk_size=8192):
        yield self.content


def test_submit_requests_one_720p_widescreen_clip(fake_client):
    fake_client.models.video_operation = job(done=False)

    veo_client.submit_video_generation("Eiffel Tower", "Paris, France")

    call = fake_client.models.calls[0]
    assert call["model"] == veo_client.VIDEO_MODEL
    assert call["prompt"].startswith("Cinematic drone sweep around Eiffel Tower in Paris, France.")
    assert call["config"].number_of_videos == 1
    assert call["config"].resolution == "720p"
    assert call["config"].aspect_ratio == "16:9"


def test_poll_until_done(fake_client):
    fake_client.operations.queue = [job(done=False), job(done=False), job(done=True)]

    result = veo_client.wait_for_completion(job(done=False), poll_interval=0)

    assert result.done is True
    assert fake_client.operations.calls == 3


def test_already_done_job_is_not_polled(fake_client):
    veo_client.wait_for_completion(job(done=True), poll_interval=0)
    assert fake_client.operations.calls == 0


def test_cancel_stops_polling_without_status_query(fake_client):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(veo_client.VideoCancelled):
        veo_client.wait_for_completion(job(done=False), cancel_event=cancel, poll_interval=0)
    assert fake_client.operations.calls == 0


def test_video_uri_is_required():
    assert veo_client.get_video_uri(job(done=True)) == VIDEO_URI
    with pytest.raises(veo_client.VideoGenerationError):
        veo_client.get_video_uri(job(done=True, uri=None))
    with pytest.raises(veo_client.VideoGenerationError):
        veo_client.get_video_uri(job(done=True, error={"code": 3, "message": "blocked"}))


def test_download_appends_key_and_writes_file(monkeypatch, tmp_path):
    fake_get = FakeDownload()
    monkeypatch.setattr(veo_client.requests, "get", fake_get)

    path = veo_client.download_video(VIDEO_URI, tmp_path / "clips" / "a.mp4")

    assert fake_get.calls[0]["url"] == VIDEO_URI
    assert fake_get.calls[0]["params"] == {"key": "test-key"}
    with open(path, "rb") as f:
        assert f.read() == b"mp4-bytes"


def test_full_pipeline_returns_media_url(fake_client, monkeypatch, tmp_path):
    fake_client.models.video_operation = job(done=False)
    fake_client.operations.queue = [job(done=True)]
    monkeypatch.setattr(veo_client.requests, "get", FakeDownload())
    messages = []

    url = veo_client.generate_landmark_video(
        "Eiffel Tower", "Paris, France",
        progress_callback=lambda message, msg_type: messages.append(msg_type),
        poll_interval=0,
    )

    assert url.startswith("/media/") and url.endswith(".mp4")
    saved = tmp_path / "media" / url.rsplit("/", 1)[1]
    assert saved.read_bytes() == b"mp4-bytes"
    assert messages[-1] == "success"


def test_pipeline_failure_is_absent(fake_client, monkeypatch):
    fake_client.models.video_operation = job(done=True)
    monkeypatch.setattr(veo_client.requests, "get", FakeDownload(status_error=RuntimeError("403")))

    assert veo_client.generate_landmark_video("Eiffel Tower", "Paris", poll_interval=0) == ""


def test_pipeline_cancelled_is_absent(fake_client):
    fake_client.models.video_operation = job(done=False)
    cancel = threading.Event()
    cancel.set()

    assert veo_client.generate_landmark_video("Eiffel Tower", "Paris", cancel_event=cancel, poll_interval=0) == ""
    assert fake_client.operations.calls == 0
