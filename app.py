"""
SkySync — Flask Application
Single-page app: geolocated weather, a landmark background image and an
optional cinematic video background, with natural-language image edits.
"""
import os
import json
import time
import uuid
import threading

from flask import Flask, render_template, request, jsonify, Response, send_from_directory, session
from dotenv import load_dotenv

import location_resolver
import veo_client
from sky_session import SkySession

load_dotenv()

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "skysync-dev-key")

# Open pages; the oldest is dropped (and its cycle cancelled) past the cap
MAX_SESSIONS = int(os.environ.get("SKYSYNC_MAX_SESSIONS", 200))

_sessions = {}
_sessions_lock = threading.Lock()


# =============================================================================
# HELPERS
# =============================================================================

def create_session():
    """Register a new page session and return it."""
    sky = SkySession(uuid.uuid4().hex[:12])
    with _sessions_lock:
        _sessions[sky.session_id] = sky
        while len(_sessions) > MAX_SESSIONS:
            oldest_id = next(iter(_sessions))
            _sessions.pop(oldest_id).cancel()
    return sky


def get_session(session_id):
    with _sessions_lock:
        return _sessions.get(session_id)


def resume_session(session_id):
    """Return a still-registered session and mark it most recently used."""
    with _sessions_lock:
        sky = _sessions.pop(session_id, None)
        if sky is not None:
            _sessions[session_id] = sky
        return sky


# =============================================================================
# ROUTES — Pages
# =============================================================================

@app.route("/")
def index():
    """Main single-page app. A browser that already has a session keeps it."""
    sky = None
    if "skysync_session" in session:
        sky = resume_session(session["skysync_session"])
    if sky is None:
        sky = create_session()
        session["skysync_session"] = sky.session_id

    return render_template(
        "index.html",
        session_id=sky.session_id,
        geolocation_options=location_resolver.GEOLOCATION_OPTIONS,
        view=sky.view(),
    )


@app.route("/media/<path:filename>")
def serve_media(filename):
    """Serve a downloaded background video."""
    return send_from_directory(veo_client.get_media_dir(), filename, mimetype="video/mp4")


# =============================================================================
# ROUTES — API
# =============================================================================

@app.route("/api/session/<session_id>/sync", methods=["POST"])
def api_sync(session_id):
    """Start (or retry) a load cycle from the position the page reported."""
    sky = get_session(session_id)
    if sky is None:
        return jsonify({"error": "Session not found"}), 404

    data = request.get_json(silent=True) or {}
    cycle = data.get("cycle")
    if cycle is not None and (isinstance(cycle, bool) or not isinstance(cycle, int)):
        return jsonify({"error": "cycle must be an integer"}), 400

    provider = location_resolver.browser_position_provider(data)
    cycle = sky.start_load_cycle(provider, cycle=cycle)
    if cycle is None:
        return jsonify({"error": "Cycle superseded"}), 409

    return jsonify({"status": "syncing", "cycle": cycle})


@app.route("/api/session/<session_id>/reset", methods=["POST"])
def api_reset(session_id):
    """Clear the view and open a new cycle before the page asks for its position."""
    sky = get_session(session_id)
    if sky is None:
        return jsonify({"error": "Session not found"}), 404

    cycle, _ = sky.begin_cycle()
    return jsonify({"status": "reset", "cycle": cycle})


@app.route("/api/session/<session_id>/edit", methods=["POST"])
def api_edit(session_id):
    """Edit the background image with a free-text instruction."""
    sky = get_session(session_id)
    if sky is None:
        return jsonify({"error": "Session not found"}), 404

    data = request.get_json(silent=True) or {}
    prompt = data.get("prompt", "")
    if not isinstance(prompt, str):
        return jsonify({"error": "prompt must be a string"}), 400

    accepted = sky.start_edit(prompt)
    return jsonify({"accepted": accepted}), 202


@app.route("/api/session/<session_id>/state")
def api_state(session_id):
    """Current view."""
    sky = get_session(session_id)
    if sky is None:
        return jsonify({"error": "Session not found"}), 404
    return jsonify(sky.view())


# =============================================================================
# ROUTES — SSE Progress Stream
# =============================================================================

@app.route("/api/session/<session_id>/events")
def event_stream(session_id):
    """SSE endpoint for view updates and progress messages."""
    sky = get_session(session_id)
    if sky is None:
        return jsonify({"error": "Session not found"}), 404

    def generate():
        # Read the position before the current view so nothing recorded
        # in between is skipped
        last_seq = sky.last_event_seq()
        yield f"data: {json.dumps({'type': 'view', 'view': sky.view()})}\n\n"
        heartbeat = 0

        while get_session(session_id) is sky:
            for msg in sky.events_since(last_seq):
                yield f"data: {json.dumps(msg)}\n\n"
                last_seq = msg["seq"]

            # Heartbeat every 15 seconds
            heartbeat += 1
            if heartbeat % 30 == 0:
                yield ": heartbeat\n\n"

            time.sleep(0.5)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no"
        }
    )


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5050))
    debug = os.environ.get("FLASK_ENV") == "development"
    app.run(host="0.0.0.0", port=port, debug=debug, threaded=True)
