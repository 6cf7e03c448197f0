"""
SOS live-tracking beacon.

An armed `SosSession` owns everything the beacon needs while it runs:
- the most recent location fix (written by the watch callback, read by emissions),
- the audio chunks captured since the last emission,
- the location watch handle, the audio recording handle and the repeating timer task.

Every `sos.emission_interval_seconds` the session persists one `SosEvent` (plus an
uploaded audio clip when any audio was captured). Emissions are independent tasks and may
overlap; a failed emission is logged and the next tick is the retry. `stop()` releases each
resource separately and never raises.

Everything runs on one asyncio event loop, so the location slot and audio buffer are plain
attributes without locks.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from barriowatch.config.settings import Settings, get_settings
from barriowatch.core.geo import GeoPoint
from barriowatch.core.time import isoformat_z, utc_now
from barriowatch.domain.errors import LocationUnavailable
from barriowatch.domain.models import SosEvent
from barriowatch.stores.base import (
    AudioCapture,
    AuthProvider,
    BlobStore,
    EventStore,
    LocationSource,
    locate_once,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class SosSession:
    """One SOS beacon run. Single-use: once stopped it stays idle."""

    def __init__(
        self,
        *,
        auth: AuthProvider,
        location: LocationSource,
        audio: AudioCapture,
        blobs: BlobStore,
        events: EventStore,
        settings: Settings,
    ):
        self._auth = auth
        self._location_source = location
        self._audio = audio
        self._blobs = blobs
        self._events = events
        self._settings = settings

        self.state = SessionState.IDLE
        self.location: GeoPoint | None = None
        self.audio_enabled = False
        self.events_emitted = 0
        self.last_emitted_at: datetime | None = None

        self._started = False
        self._stopped = False
        self._watch_handle: Any = None
        self._watching = False
        self._audio_handle: Any = None
        self._audio_chunks: list[bytes] = []
        self._timer: asyncio.Task | None = None
        self._emissions: set[asyncio.Task] = set()

    @property
    def is_armed(self) -> bool:
        return self.state == SessionState.ARMED

    @property
    def buffered_audio_bytes(self) -> int:
        return sum(len(c) for c in self._audio_chunks)

    async def __aenter__(self) -> "SosSession":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def start(self) -> "SosSession":
        """Arm the beacon and persist the first event right away.

        Raises:
            LocationUnavailable: no initial fix; nothing was armed or persisted.
        """
        if self._stopped:
            logger.warning("SOS start ignored: session already stopped")
            return self
        if self._started:
            return self
        self._started = True

        try:
            initial = await locate_once(self._location_source)
        except LocationUnavailable:
            logger.warning("SOS start failed: no initial location fix")
            self._started = False
            raise
        if self._stopped:
            return self
        self.location = initial

        self._start_watch()
        await self._start_audio()
        if self._stopped:
            # stop() ran while the audio device was opening.
            await self._release()
            return self

        self.state = SessionState.ARMED
        logger.info(
            "SOS armed at %.5f,%.5f (audio=%s)", initial.lat, initial.lon, "on" if self.audio_enabled else "off"
        )

        await self._emit(initial)
        if self._stopped:
            return self

        self._timer = asyncio.create_task(self._tick_forever())
        return self

    def _start_watch(self) -> None:
        try:
            self._watch_handle = self._location_source.watch(self._on_fix)
            self._watching = True
        except Exception:
            logger.exception("Location watch failed; beacon will keep the last known position")

    async def _start_audio(self) -> None:
        try:
            handle = await self._audio.open(self._settings.sos.audio_timeslice_seconds)
        except Exception as exc:
            logger.warning("Audio capture unavailable, continuing without audio: %s", exc)
            return
        self._audio_handle = handle
        try:
            self._audio.on_data(handle, self._on_audio)
        except Exception:
            logger.exception("Audio data subscription failed, continuing without audio")
            return
        self.audio_enabled = True

    def _on_fix(self, point: GeoPoint) -> None:
        if self._stopped:
            return
        self.location = point

    def _on_audio(self, chunk: bytes) -> None:
        # Devices may still deliver after cancel/close.
        if self._stopped:
            return
        if chunk:
            self._audio_chunks.append(chunk)

    async def _tick_forever(self) -> None:
        interval = float(self._settings.sos.emission_interval_seconds)
        while True:
            await asyncio.sleep(interval)
            point = self.location
            if point is None:
                continue
            task = asyncio.create_task(self._emit(point))
            self._emissions.add(task)
            task.add_done_callback(self._emissions.discard)

    async def _emit(self, point: GeoPoint) -> SosEvent | None:
        """Resolve user -> upload buffered audio -> insert event. Never raises."""
        created_at = utc_now()
        try:
            user = await self._auth.current_user()
        except Exception:
            logger.exception("SOS emission skipped: user lookup failed")
            return None
        if user is None:
            logger.error("SOS emission skipped: no authenticated user")
            return None

        audio_url = await self._upload_audio(user.id, created_at)
        event = SosEvent(user_id=user.id, location=point, audio_url=audio_url, created_at=created_at)
        try:
            await self._events.insert_event(event)
        except Exception:
            logger.exception("Failed to persist SOS event; next tick will retry")
            return None

        self.events_emitted += 1
        self.last_emitted_at = created_at
        logger.info("SOS event sent (audio=%s)", bool(audio_url))
        return event

    async def _upload_audio(self, user_id: str, created_at: datetime) -> str | None:
        chunks, self._audio_chunks = self._audio_chunks, []
        data = b"".join(chunks)
        if not data:
            return None

        cfg = self._settings.sos
        key = f"{user_id}/{isoformat_z(created_at)}.{cfg.audio_extension}"
        try:
            return await self._blobs.upload_blob(key, data, cfg.audio_content_type)
        except Exception:
            logger.exception("Audio upload failed; sending event without audio")
            return None

    async def stop(self) -> None:
        """Disarm. Idempotent, safe while `start()` is still running, never raises."""
        if self._stopped:
            return
        self._stopped = True
        await self._release()
        self.state = SessionState.IDLE
        logger.info("SOS stopped after %d event(s)", self.events_emitted)

    async def _release(self) -> None:
        if self._watching:
            handle, self._watch_handle, self._watching = self._watch_handle, None, False
            try:
                self._location_source.cancel(handle)
            except Exception:
                logger.exception("Failed to cancel location watch")

        handle, self._audio_handle = self._audio_handle, None
        self.audio_enabled = False
        if handle is not None:
            try:
                await self._audio.close(handle)
            except Exception:
                logger.exception("Failed to release audio device")

        self._audio_chunks = []

        timer, self._timer = self._timer, None
        if timer is not None:
            try:
                timer.cancel()
            except Exception:
                logger.exception("Failed to cancel SOS timer")


class SosBeacon:
    """Creates SOS sessions wired to one set of collaborators."""

    def __init__(
        self,
        *,
        auth: AuthProvider,
        location: LocationSource,
        audio: AudioCapture,
        blobs: BlobStore,
        events: EventStore,
        settings: Settings | None = None,
    ):
        self._auth = auth
        self._location = location
        self._audio = audio
        self._blobs = blobs
        self._events = events
        self._settings = settings or get_settings()

    def session(self) -> SosSession:
        """A new idle session; call `start()` (or use it as an async context manager)."""
        return SosSession(
            auth=self._auth,
            location=self._location,
            audio=self._audio,
            blobs=self._blobs,
            events=self._events,
            settings=self._settings,
        )

    async def start(self) -> SosSession:
        """Create and arm a session.

        Raises:
            LocationUnavailable: the initial fix failed; no session is armed.
        """
        return await self.session().start()
