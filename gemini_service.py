"""
SkySync — Gemini Service
Weather + landmark lookup with Google Maps grounding, landmark background
image generation (Nano Banana) and natural-language image editing.
"""
import os
import re
import json
import base64

# Google GenAI SDK
from google import genai
from google.genai import types

# Models
LOOKUP_MODEL = "gemini-2.5-flash"
IMAGE_MODEL = "gemini-2.5-flash-image"

BACKGROUND_ASPECT_RATIO = "16:9"

LOOKUP_PROMPT = """Identify the specific city and state for the coordinates (lat: {lat}, lng: {lng}).
Find current weather conditions and identify one EXTREMELY famous, culturally significant landmark within that specific metropolitan area.

Format your response exactly as a JSON string like this:
{{"city": "City Name, State", "temperature": "Degrees", "condition": "Condition", "landmarkName": "Landmark Name", "landmarkDescription": "Short description"}}

Do not include markdown markers or anything else. Just the JSON string."""

BACKGROUND_PROMPT = (
    'A professional, cinematic, hyper-realistic artistic rendering of the famous landmark "{landmark}" in "{city}". '
    "Style: Smooth, dreamlike, atmospheric, wide-angle shot, golden hour lighting, 8k resolution, ethereal vibe. "
    "No text, no people, no UI elements. Focus on a breathtaking view of {landmark}."
)

EDIT_PROMPT = (
    "Modify this image based on the following instruction: {instruction}. "
    "Maintain the original landmark but apply the change smoothly."
)

SNAPSHOT_FIELDS = ("city", "temperature", "condition", "landmarkName", "landmarkDescription")

# First "{" through the last "}", across newlines
_JSON_SPAN = re.compile(r"\{.*\}", re.DOTALL)

_client = None


def get_api_key():
    """The single credential used for every Gemini / Veo call ("" when unset)."""
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY") or ""


def init_client():
    """Initialize the Google GenAI client."""
    global _client
    if _client is None:
        api_key = get_api_key()
        if not api_key:
            raise ValueError("GEMINI_API_KEY or GOOGLE_API_KEY must be set")
        _client = genai.Client(api_key=api_key)
    return _client


def has_selected_api_key():
    """
    Environment capability check gating video generation.
    True when a credential is configured and SKYSYNC_ENABLE_VIDEO is not "0".
    """
    if os.environ.get("SKYSYNC_ENABLE_VIDEO", "1").strip().lower() in ("0", "false", "no", "off"):
        return False
    return bool(get_api_key())


# =============================================================================
# WEATHER + LANDMARK LOOKUP
# =============================================================================

def extract_json_object(text):
    """
    Pull the first {...} span out of free text and parse it.
    Anything that does not yield a JSON object parses as {}.
    """
    match = _JSON_SPAN.search(text or "{}")
    if not match:
        return {}
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        print(f"[gemini_service] Lookup JSON parse failed: {e}")
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def extract_citations(response):
    """Map grounding chunks to citations. Chunks with neither web nor maps are dropped."""
    sources = []
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return sources

    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    for chunk in chunks:
        web = getattr(chunk, "web", None)
        maps = getattr(chunk, "maps", None)
        if web:
            sources.append({"uri": web.uri, "title": web.title, "type": "web"})
        elif maps:
            sources.append({"uri": maps.uri, "title": maps.title, "type": "maps"})
    return sources


def fetch_weather_and_landmark(lat, lng):
    """
    Ask Gemini (grounded on Google Maps at the given coordinates) for the
    current weather and one famous local landmark.

    NOTE: response_mime_type="application/json" is NOT compatible with the
    Google Maps tool, so the JSON is extracted from free text.

    Returns:
        WeatherSnapshot dict: city, temperature, condition, landmarkName,
        landmarkDescription (None when missing) and sources.

    Raises whatever the SDK raises; the caller treats it as a failed cycle.
    """
    client = init_client()

    response = client.models.generate_content(
        model=LOOKUP_MODEL,
        contents=LOOKUP_PROMPT.format(lat=lat, lng=lng),
        config=types.GenerateContentConfig(
            tools=[types.Tool(google_maps=types.GoogleMaps())],
            tool_config=types.ToolConfig(
                retrieval_config=types.RetrievalConfig(
                    lat_lng=types.LatLng(latitude=lat, longitude=lng),
                ),
            ),
        ),
    )

    data = extract_json_object(response.text)
    snapshot = {field: data.get(field) for field in SNAPSHOT_FIELDS}
    snapshot["sources"] = extract_citations(response)
    return snapshot


# =============================================================================
# BACKGROUND IMAGE — generate + edit
# =============================================================================

def _first_image_data_uri(response):
    """Data URI of the first inline image part, or "" when there is none."""
    if response.candidates and response.candidates[0].content and response.candidates[0].content.parts:
        for part in response.candidates[0].content.parts:
            if part.inline_data is not None:
                payload = part.inline_data.data
                if isinstance(payload, bytes):
                    payload = base64.b64encode(payload).decode("utf-8")
                return f"data:{part.inline_data.mime_type};base64,{payload}"
    return ""


def generate_landmark_background(landmark_name, city):
    """
    Generate a 16:9 cinematic rendering of the landmark.

    Returns:
        data URI string, or "" when no image is available. Never raises.
    """
    try:
        client = init_client()
        response = client.models.generate_content(
            model=IMAGE_MODEL,
            contents=[BACKGROUND_PROMPT.format(landmark=landmark_name, city=city)],
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE"],
                image_config=types.ImageConfig(
                    aspect_ratio=BACKGROUND_ASPECT_RATIO,
                ),
            ),
        )
        image = _first_image_data_uri(response)
        if not image:
            print("[gemini_service] Image generation returned no image parts")
        return image
    except Exception as e:
        print(f"[gemini_service] Image generation failed: {e}")
        return ""


def strip_data_uri(image):
    """Raw base64 payload of a data URI (input returned unchanged if it has no prefix)."""
    if "base64," in image:
        return image.split("base64,", 1)[1]
    return image


def edit_landmark_image(image, instruction):
    """
    Apply a free-text edit to the current background image.

    The source is always declared as image/png, whatever its real format.

    Returns:
        data URI of the edited image, or "" on any failure. No retry.
    """
    try:
        image_bytes = base64.b64decode(strip_data_uri(image))
        client = init_client()
        response = client.models.generate_content(
            model=IMAGE_MODEL,
            contents=[
                types.Part.from_bytes(data=image_bytes, mime_type="image/png"),
                EDIT_PROMPT.format(instruction=instruction),
            ],
        )
        edited = _first_image_data_uri(response)
        if not edited:
            print("[gemini_service] Image edit returned no image parts")
        return edited
    except Exception as e:
        print(f"[gemini_service] Image editing failed: {e}")
        return ""
