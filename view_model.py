"""
SkySync — View Model
Derives what the page shows from a session's state slots.
"""

LOADING_HEADER = "Finding your perspective..."
RETRY_ACTION = "Retry Location Sync"
EDITING_STATUS = "Editing Background Image..."
VIDEO_STATUS = "Live Cinematic Background Active"


def _card(state):
    weather = state.get("weather")
    if state.get("loading") or not weather:
        return {"kind": "skeleton"}

    return {
        "kind": "weather",
        "city": weather.get("city"),
        "temperature": weather.get("temperature"),
        "condition": weather.get("condition"),
        "landmarkName": weather.get("landmarkName"),
        "landmarkDescription": weather.get("landmarkDescription"),
        "sources": [
            {
                "uri": source.get("uri"),
                "title": source.get("title"),
                "type": source.get("type"),
                "pin": source.get("type") == "maps",
            }
            for source in weather.get("sources") or []
        ],
    }


def build_view(state):
    """
    Build the JSON-ready view for a state dict (see SkySession.snapshot()).

    A present video takes precedence over the image; the image stays mounted
    at opacity 0 underneath it.
    """
    image = state.get("background_image") or None
    video = state.get("background_video") or None
    editing = bool(state.get("editing"))
    weather = state.get("weather") or {}

    if state.get("loading"):
        header = LOADING_HEADER
    elif weather.get("city"):
        header = f"{weather['city']} • Cinematic Mode"
    else:
        header = "Cinematic Mode"

    error = state.get("error")
    error_panel = {"message": error, "action": RETRY_ACTION} if error else None

    if editing:
        footer_status = EDITING_STATUS
    elif video:
        footer_status = VIDEO_STATUS
    else:
        footer_status = None

    # Card shows while loading or once there is data; the error panel alone otherwise
    show_card = bool(state.get("loading") or state.get("weather"))

    return {
        "cycle": state.get("cycle", 0),
        "header": header,
        "card": _card(state) if show_card else None,
        "error_panel": error_panel,
        "background": {
            "image": image,
            "image_opacity": 0 if video else 1,
            "video": video,
            "video_status": state.get("video_status"),
        },
        "edit_form": {"disabled": editing, "busy": editing},
        "footer_status": footer_status,
    }
