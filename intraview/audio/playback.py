"""
StreamPlayer - progressive PCM16 playback with interruptible tracks.

Agent audio arrives as small chunks tagged with a track id (the assistant
item id). Chunks are queued and consumed by the PortAudio output callback,
which counts how many samples of each track were actually written to the
device. interrupt() stops playback immediately and reports where the active
track was cut off, so the server can be told what the user really heard.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np
import sounddevice as sd

from intraview.config import Config


@dataclass(frozen=True)
class TrackSampleOffset:
    """Point at which a track was interrupted"""
    track_id: str
    offset: int  # Samples played before the interruption


class StreamPlayer:
    """Queue-fed output stream with per-track played-sample accounting"""

    def __init__(self, sample_rate: int = Config.SAMPLE_RATE, device: Optional[int] = None,
                 blocksize: int = 512, stream_factory=None):
        """
        Args:
            sample_rate: Playback rate of the PCM16 chunks
            device: Output device index (None for default)
            blocksize: Frames per PortAudio callback
            stream_factory: Alternative to sd.OutputStream (same signature)
        """
        self.sample_rate = sample_rate
        self.device = device if device is not None else Config.SPEAKER_DEVICE_INDEX
        self.blocksize = blocksize
        self._stream_factory = stream_factory or sd.OutputStream
        self._stream = None
        self._lock = threading.Lock()
        # (track_id, samples) chunks waiting for the callback
        self._output_queue: deque = deque()
        self._callback_remainder: Optional[tuple] = None
        self._track_sample_offsets: dict[str, int] = {}
        self._interrupted_track_ids: set[str] = set()
        self._active_track_id: Optional[str] = None
        self.logger = Config.LOGGER

    @property
    def connected(self) -> bool:
        return self._stream is not None

    @property
    def active_track_id(self) -> Optional[str]:
        with self._lock:
            return self._active_track_id

    async def connect(self) -> None:
        """Open the speaker stream"""
        if self._stream is not None:
            return
        self._stream = self._stream_factory(
            device=self.device,
            samplerate=self.sample_rate,
            channels=Config.CHANNELS,
            dtype='int16',
            blocksize=self.blocksize,
            callback=self._audio_callback
        )
        try:
            self._stream.start()
        except Exception:
            self._stream.close()
            self._stream = None
            raise
        print(f"✓ Speaker open ({self.sample_rate}Hz)")

    async def close(self) -> None:
        """Stop playback and close the speaker stream"""
        await self.interrupt()
        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.stop()
            stream.close()

    def add_16bit_pcm(self, data, track_id: str = "default") -> bool:
        """
        Queue a chunk for playback.

        Args:
            data: PCM16 LE bytes or an int16 array
            track_id: Logical track (assistant item id)

        Returns:
            False if the track was interrupted earlier and the chunk was dropped
        """
        if isinstance(data, (bytes, bytearray, memoryview)):
            samples = np.frombuffer(bytes(data), dtype="<i2").astype(np.int16)
        else:
            samples = np.asarray(data, dtype=np.int16).flatten()
        with self._lock:
            if track_id in self._interrupted_track_ids:
                return False
            if len(samples) == 0:
                return True
            if track_id not in self._track_sample_offsets:
                self._start_track()
            self._track_sample_offsets.setdefault(track_id, 0)
            self._output_queue.append((track_id, samples))
            if self._active_track_id is None:
                self._active_track_id = track_id
        return True

    def _start_track(self) -> None:
        """Forget finished and interrupted tracks (caller holds the lock)"""
        pending = {queued_id for queued_id, _ in self._output_queue}
        if self._callback_remainder is not None:
            pending.add(self._callback_remainder[0])
        if self._active_track_id is not None:
            pending.add(self._active_track_id)
        for finished_id in set(self._track_sample_offsets) - pending:
            del self._track_sample_offsets[finished_id]
        self._interrupted_track_ids.clear()

    @property
    def tracked_track_ids(self) -> set[str]:
        with self._lock:
            return set(self._track_sample_offsets)

    def get_track_sample_offset(self, track_id: str) -> int:
        with self._lock:
            return self._track_sample_offsets.get(track_id, 0)

    async def interrupt(self) -> Optional[TrackSampleOffset]:
        """
        Stop playback now and discard everything queued.

        Returns:
            TrackSampleOffset for the track that was playing, or None if no
            track was active
        """
        with self._lock:
            track_id = self._active_track_id
            result = None
            if track_id is not None:
                result = TrackSampleOffset(track_id, self._track_sample_offsets.get(track_id, 0))
                self._interrupted_track_ids.add(track_id)
            self._output_queue.clear()
            self._callback_remainder = None
            self._active_track_id = None
            self._track_sample_offsets.clear()

        if result and self.logger:
            self.logger.info(
                "playback_interrupted",
                extra={"track_id": result.track_id, "samples_played": result.offset}
            )
        return result

    def _audio_callback(self, outdata, frames, time_info, status):
        """PortAudio callback (audio thread) - fill the device buffer from the queue"""
        outdata[:] = 0  # Start with silence
        frames_written = 0
        with self._lock:
            while frames_written < len(outdata):
                # Use remainder first, then get from queue
                if self._callback_remainder is not None:
                    track_id, chunk = self._callback_remainder
                    self._callback_remainder = None
                elif self._output_queue:
                    track_id, chunk = self._output_queue.popleft()
                else:
                    break  # No more audio, fill rest with silence

                previous_id = self._active_track_id
                if previous_id is not None and previous_id != track_id:
                    # Previous track fully played out
                    self._track_sample_offsets.pop(previous_id, None)
                self._active_track_id = track_id
                remaining = len(outdata) - frames_written
                frames_to_copy = min(len(chunk), remaining)
                outdata[frames_written:frames_written + frames_to_copy, 0] = chunk[:frames_to_copy]
                frames_written += frames_to_copy
                self._track_sample_offsets[track_id] = (
                    self._track_sample_offsets.get(track_id, 0) + frames_to_copy
                )

                # If chunk was larger than remaining space, save remainder for next callback
                if len(chunk) > frames_to_copy:
                    self._callback_remainder = (track_id, chunk[frames_to_copy:])

            # Track finished: nothing left to play for it
            if self._callback_remainder is None and not self._output_queue:
                self._active_track_id = None
