from types import SimpleNamespace

import pytest

import gemini_service
import veo_client
from fakes import EDITED, IMAGE, PARIS, VIDEO, FakeModels, FakeOperations


@pytest.fixture
def fake_client(monkeypatch):
    client = SimpleNamespace(models=FakeModels(), operations=FakeOperations())
    monkeypatch.setattr(gemini_service, "init_client", lambda: client)
    return client


@pytest.fixture(autouse=True)
def api_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("SKYSYNC_ENABLE_VIDEO", raising=False)
    monkeypatch.setenv("SKYSYNC_MEDIA_DIR", str(tmp_path / "media"))
    monkeypatch.setattr(gemini_service, "_client", None)


@pytest.fixture
def services(monkeypatch):
    """Stub every external call; tests override pieces as needed."""
    calls = {"lookup": [], "image": [], "video": [], "edit": []}

    def lookup(lat, lng):
        calls["lookup"].append((lat, lng))
        return dict(PARIS)

    def image(landmark, city):
        calls["image"].append((landmark, city))
        return IMAGE

    def video(landmark, city, cancel_event=None, progress_callback=None, poll_interval=None):
        calls["video"].append((landmark, city))
        return VIDEO

    def edit(image, prompt):
        calls["edit"].append((image, prompt))
        return EDITED

    monkeypatch.setattr(gemini_service, "fetch_weather_and_landmark", lookup)
    monkeypatch.setattr(gemini_service, "generate_landmark_background", image)
    monkeypatch.setattr(gemini_service, "edit_landmark_image", edit)
    monkeypatch.setattr(gemini_service, "has_selected_api_key", lambda: True)
    monkeypatch.setattr(veo_client, "generate_landmark_video", video)
    return calls
