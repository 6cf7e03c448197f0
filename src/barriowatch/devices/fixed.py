"""
Device adapters without real hardware.

The server side has no GPS or microphone. These adapters stand in for them when the
position is known up-front (API requests, CLI flags) or when audio comes from a file:
- `FixedLocationSource`: a settable position; `move_to()` pushes a new fix to watchers.
- `ChunkedAudioCapture`: replays a byte payload as timed chunks.
- `NoAudioCapture`: a device that never opens.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from pathlib import Path
from typing import Any

from barriowatch.core.geo import GeoPoint
from barriowatch.domain.errors import AudioCaptureFailed, LocationUnavailable
from barriowatch.stores.base import AudioCallback, LocationCallback

logger = logging.getLogger(__name__)


class FixedLocationSource:
    """Location source pinned to a known point (or to no point at all)."""

    def __init__(self, point: GeoPoint | None = None):
        self._point = point
        self._watchers: dict[int, LocationCallback] = {}
        self._ids = itertools.count(1)

    @property
    def active_watches(self) -> int:
        return len(self._watchers)

    async def get_once(self) -> GeoPoint:
        if self._point is None:
            raise LocationUnavailable()
        return self._point

    def watch(self, callback: LocationCallback) -> int:
        handle = next(self._ids)
        self._watchers[handle] = callback
        return handle

    def cancel(self, handle: Any) -> None:
        self._watchers.pop(handle, None)

    def move_to(self, point: GeoPoint) -> None:
        self._point = point
        for callback in list(self._watchers.values()):
            callback(point)


class NoAudioCapture:
    """Audio device that is missing or denied."""

    async def open(self, timeslice_seconds: float) -> Any:
        raise AudioCaptureFailed("No audio input device available")

    def on_data(self, handle: Any, callback: AudioCallback) -> None:
        return None

    async def close(self, handle: Any) -> None:
        return None


class _Recording:
    def __init__(self, timeslice_seconds: float):
        self.timeslice_seconds = timeslice_seconds
        self.callbacks: list[AudioCallback] = []
        self.task: asyncio.Task | None = None


class ChunkedAudioCapture:
    """Replays `payload` as `chunk_size`-byte chunks, one per timeslice."""

    def __init__(self, payload: bytes, *, chunk_size: int = 4096, loop_payload: bool = False):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self._payload = bytes(payload)
        self._chunk_size = int(chunk_size)
        self._loop_payload = loop_payload
        self.open_recordings = 0

    @classmethod
    def from_file(cls, path: str | Path, *, chunk_size: int = 4096) -> "ChunkedAudioCapture":
        try:
            payload = Path(path).read_bytes()
        except OSError as exc:
            raise AudioCaptureFailed(f"Cannot read audio file {path}: {exc}") from exc
        return cls(payload, chunk_size=chunk_size)

    def _chunks(self):
        offsets = range(0, len(self._payload), self._chunk_size)
        source = itertools.cycle(offsets) if self._loop_payload and offsets else iter(offsets)
        for offset in source:
            yield self._payload[offset : offset + self._chunk_size]

    async def _pump(self, recording: _Recording) -> None:
        for chunk in self._chunks():
            await asyncio.sleep(recording.timeslice_seconds)
            for callback in list(recording.callbacks):
                callback(chunk)

    async def open(self, timeslice_seconds: float) -> _Recording:
        if not self._payload:
            raise AudioCaptureFailed("Audio payload is empty")
        recording = _Recording(timeslice_seconds)
        recording.task = asyncio.create_task(self._pump(recording))
        self.open_recordings += 1
        return recording

    def on_data(self, handle: _Recording, callback: AudioCallback) -> None:
        handle.callbacks.append(callback)

    async def close(self, handle: _Recording) -> None:
        if handle.task is None:
            return
        task, handle.task = handle.task, None
        handle.callbacks.clear()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.open_recordings -= 1
        logger.debug("Audio recording released")
