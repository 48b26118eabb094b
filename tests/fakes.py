import base64
from types import SimpleNamespace


PARIS_JSON = (
    '{"city":"Paris, France","temperature":"18°C","condition":"Cloudy",'
    '"landmarkName":"Eiffel Tower","landmarkDescription":"Iconic iron lattice tower."}'
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


def text_response(text, chunks=None):
    """Fake generate_content response carrying text and grounding chunks."""
    metadata = SimpleNamespace(grounding_chunks=chunks)
    return SimpleNamespace(
        text=text,
        candidates=[SimpleNamespace(grounding_metadata=metadata, content=None)],
    )


def web_chunk(uri, title):
    return SimpleNamespace(web=SimpleNamespace(uri=uri, title=title), maps=None)


def maps_chunk(uri, title):
    return SimpleNamespace(web=None, maps=SimpleNamespace(uri=uri, title=title))


def image_response(data=PNG_BYTES, mime_type="image/png"):
    """Fake generate_content response with a text part followed by an image part."""
    parts = [
        SimpleNamespace(text="Here you go", inline_data=None),
        SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type)),
    ]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def empty_response():
    return SimpleNamespace(candidates=[])


def data_uri(data=PNG_BYTES, mime_type="image/png"):
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


class FakeModels:
    def __init__(self):
        self.calls = []
        self.responses = []
        self.video_operation = None

    def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def generate_videos(self, model, prompt, config=None):
        self.calls.append({"model": model, "prompt": prompt, "config": config})
        return self.video_operation


class FakeOperations:
    def __init__(self):
        self.queue = []
        self.calls = 0

    def get(self, operation):
        self.calls += 1
        return self.queue.pop(0)


# Session-level stand-ins
PARIS = {
    "city": "Paris, France",
    "temperature": "18°C",
    "condition": "Cloudy",
    "landmarkName": "Eiffel Tower",
    "landmarkDescription": "Iconic iron lattice tower.",
    "sources": [{"uri": "https://maps.google.com/?cid=1", "title": "Eiffel Tower", "type": "maps"}],
}
IMAGE = "data:image/png;base64,AAAA"
EDITED = "data:image/png;base64,BBBB"
VIDEO = "/media/eiffel.mp4"
