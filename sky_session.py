"""
SkySync — Session Orchestration
One SkySession per open page. Holds the display state slots and the
transitions that mutate them, and runs the load cycle and image edits.

Load cycle: resolve location → weather/landmark lookup → background image
and (when a key is selected) background video, run side by side.

Every cycle gets an increasing number and its own cancel event. Results are
applied with the number of the cycle that produced them; results from a
superseded cycle are dropped, and starting a new cycle cancels the old
cycle's video polling.
"""
import copy
import time
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import gemini_service
import location_resolver
import veo_client
from view_model import build_view

SYNC_ERROR_MESSAGE = "Connection timeout or location sync failed. Tap retry below."

# Progress messages kept for SSE subscribers; only the latest view is kept
MAX_EVENTS = 100


def _initial_state():
    return {
        "cycle": 0,
        "loading": True,
        "weather": None,
        "background_image": "",
        "background_video": "",
        "video_status": None,  # None | "pending" | "ready" | "unavailable" | "skipped"
        "error": None,
        "editing": False,
    }


class SkySession:
    """Display state for one page plus the operations that drive it."""

    def __init__(self, session_id, video_poll_interval=veo_client.POLL_INTERVAL):
        self.session_id = session_id
        self.video_poll_interval = video_poll_interval
        self.created_at = time.time()

        # SSE stream: progress messages plus the latest view, each with a seq
        self.events = []
        self._event_seq = 0
        self._events_lock = threading.Lock()

        self._state = _initial_state()
        self._held_video = ""
        self._cancel_event = None
        self._running_cycle = 0
        self._lock = threading.Lock()

    # =========================================================================
    # STATE
    # =========================================================================

    def snapshot(self):
        """Copy of the current state slots."""
        with self._lock:
            return copy.deepcopy(self._state)

    def view(self):
        return build_view(self.snapshot())

    def progress(self, message, msg_type="info"):
        """Progress callback: push a message to SSE subscribers."""
        self._append_event({
            "type": msg_type,
            "message": message,
            "timestamp": time.time(),
        })

    def _publish(self):
        # Caller holds the lock
        self._append_event({
            "type": "view",
            "view": build_view(copy.deepcopy(self._state)),
            "timestamp": time.time(),
        })

    def _append_event(self, event):
        with self._events_lock:
            self._event_seq += 1
            event["seq"] = self._event_seq
            if event["type"] == "view":
                # Only the latest view is kept
                self.events = [e for e in self.events if e["type"] != "view"]
            self.events.append(event)
            del self.events[:-MAX_EVENTS]

    def last_event_seq(self):
        with self._events_lock:
            return self._event_seq

    def events_since(self, seq):
        """Events a subscriber that has read up to `seq` has not seen yet."""
        with self._events_lock:
            return [e for e in self.events if e["seq"] > seq]

    def _is_current(self, cycle):
        return cycle == self._state["cycle"]

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def begin_cycle(self):
        """
        Discard everything from the previous cycle and start a new one.

        Returns:
            (cycle number, cancel event owned by the new cycle)
        """
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()
            self._cancel_event = threading.Event()

            cycle = self._state["cycle"] + 1
            self._state = _initial_state()
            self._state["cycle"] = cycle
            self._held_video = ""
            self._publish()
            return cycle, self._cancel_event

    def snapshot_ready(self, cycle, snapshot):
        with self._lock:
            if not self._is_current(cycle):
                return False
            self._state["loading"] = False
            self._state["weather"] = snapshot
            self._publish()
            return True

    def cycle_failed(self, cycle, message):
        with self._lock:
            if not self._is_current(cycle):
                return False
            self._state["loading"] = False
            self._state["error"] = message
            self._publish()
            return True

    def image_ready(self, cycle, image):
        """Show a synthesized image. "" (no image) leaves the slot untouched."""
        with self._lock:
            if not self._is_current(cycle) or not image:
                return False
            self._state["background_image"] = image
            self._publish()
            return True

    def video_status_changed(self, cycle, status):
        with self._lock:
            if not self._is_current(cycle):
                return False
            self._state["video_status"] = status
            self._publish()
            return True

    def video_ready(self, cycle, video):
        """
        Show a synthesized video. While an edit is in flight the clip is held
        back and becomes what a failed edit restores.
        """
        with self._lock:
            if not self._is_current(cycle):
                return False
            self._state["video_status"] = "ready" if video else "unavailable"
            if video:
                if self._state["editing"]:
                    self._held_video = video
                else:
                    self._state["background_video"] = video
            self._publish()
            return bool(video)

    def begin_edit(self):
        """
        Claim the busy flag and hide the video.

        Returns:
            (cycle, current image) or None when an edit is already running
            or there is no image to edit
        """
        with self._lock:
            if self._state["editing"] or not self._state["background_image"]:
                return None
            self._state["editing"] = True
            self._held_video = self._state["background_video"]
            self._state["background_video"] = ""
            self._publish()
            return self._state["cycle"], self._state["background_image"]

    def finish_edit(self, cycle, new_image):
        """Apply an edit result: new image on success, previous video back on failure."""
        with self._lock:
            if not self._is_current(cycle):
                return False
            if new_image:
                self._state["background_image"] = new_image
            else:
                self._state["background_video"] = self._held_video
            self._held_video = ""
            self._state["editing"] = False
            self._publish()
            return bool(new_image)

    def cancel(self):
        """Stop the current cycle's video polling (session dropped)."""
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()

    # =========================================================================
    # LOAD CYCLE
    # =========================================================================

    def _claim_cycle(self, cycle=None):
        """
        Pick the cycle a load runs under.

        Args:
            cycle: Number returned by an earlier begin_cycle() (the page resets
                before asking for the position), or None to open a new cycle

        Returns:
            (cycle, cancel event) or None when that cycle was superseded or
            is already running
        """
        if cycle is None:
            cycle, _ = self.begin_cycle()
        with self._lock:
            if not self._is_current(cycle) or self._running_cycle == cycle:
                return None
            self._running_cycle = cycle
            return cycle, self._cancel_event

    def run_load_cycle(self, position_provider=None, cycle=None):
        """Run a full load cycle on the calling thread. Returns the cycle number, or None if refused."""
        claim = self._claim_cycle(cycle)
        if claim is None:
            return None
        cycle, cancel_event = claim
        self._run_cycle(cycle, cancel_event, position_provider)
        return cycle

    def start_load_cycle(self, position_provider=None, cycle=None):
        """Reset state now (unless already reset), run the rest of the cycle on a background thread."""
        claim = self._claim_cycle(cycle)
        if claim is None:
            return None
        cycle, cancel_event = claim
        thread = threading.Thread(
            target=self._run_cycle,
            args=(cycle, cancel_event, position_provider),
            daemon=True,
        )
        thread.start()
        return cycle

    # Retry restarts from location resolution
    retry = start_load_cycle

    def _run_cycle(self, cycle, cancel_event, position_provider):
        try:
            self.progress("📍 Resolving location...", "info")
            coords = location_resolver.resolve_location(position_provider)

            self.progress("🌤 Fetching weather and landmark...", "info")
            snapshot = gemini_service.fetch_weather_and_landmark(coords["latitude"], coords["longitude"])
        except Exception as e:
            print(f"[session {self.session_id}] Cycle {cycle} failed: {e}")
            self.cycle_failed(cycle, SYNC_ERROR_MESSAGE)
            self.progress(f"❌ Location sync failed: {str(e)[:200]}", "error")
            return

        if not self.snapshot_ready(cycle, snapshot):
            return

        self._synthesize_media(cycle, cancel_event, snapshot)

    def _synthesize_media(self, cycle, cancel_event, snapshot):
        """Image and video only share the lookup's landmark and city, so they run side by side."""
        landmark = snapshot.get("landmarkName")
        city = snapshot.get("city")

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(self._image_task, cycle, landmark, city)]
            if self._video_enabled(cycle):
                futures.append(pool.submit(self._video_task, cycle, cancel_event, landmark, city))
            for future in as_completed(futures):
                future.result()

    def _image_task(self, cycle, landmark, city):
        self.progress(f"🎨 Painting {landmark}...", "info")
        image = gemini_service.generate_landmark_background(landmark, city)
        if self.image_ready(cycle, image):
            self.progress("🖼 Background image ready", "success")

    def _video_enabled(self, cycle):
        try:
            enabled = gemini_service.has_selected_api_key()
        except Exception as e:
            print(f"[session {self.session_id}] Key check failed, skipping video: {e}")
            enabled = False
        self.video_status_changed(cycle, "pending" if enabled else "skipped")
        return enabled

    def _video_task(self, cycle, cancel_event, landmark, city):
        try:
            video = veo_client.generate_landmark_video(
                landmark,
                city,
                cancel_event=cancel_event,
                progress_callback=self.progress,
                poll_interval=self.video_poll_interval,
            )
        except Exception as e:
            print(f"[session {self.session_id}] Veo background generation skipped/failed: {e}")
            video = ""
        self.video_ready(cycle, video)

    # =========================================================================
    # IMAGE EDIT
    # =========================================================================

    def _claim_edit(self, prompt):
        if not prompt or not prompt.strip():
            return None
        return self.begin_edit()

    def _run_edit(self, ticket, prompt):
        cycle, image = ticket
        new_image = ""
        try:
            self.progress("✏️ Editing background image...", "info")
            new_image = gemini_service.edit_landmark_image(image, prompt)
        except Exception as e:
            print(f"[session {self.session_id}] Edit failed: {e}")
        finally:
            self.finish_edit(cycle, new_image)

    def request_edit(self, prompt):
        """Run an edit on the calling thread. False when refused (blank, busy, no image)."""
        ticket = self._claim_edit(prompt)
        if ticket is None:
            return False
        self._run_edit(ticket, prompt)
        return True

    def start_edit(self, prompt):
        """Claim the busy flag now, run the edit on a background thread."""
        ticket = self._claim_edit(prompt)
        if ticket is None:
            return False
        threading.Thread(target=self._run_edit, args=(ticket, prompt), daemon=True).start()
        return True
