"""
AudioRecorder - microphone capture for the realtime session.

Opens a sounddevice input stream in callback mode. PortAudio delivers frames
on its own thread; they are handed to the event loop with
call_soon_threadsafe and forwarded in capture order by a single pump task,
so the on_frame callback always runs on the event loop.

Usage:
    recorder = AudioRecorder()
    await recorder.begin()
    await recorder.record(on_frame)   # on_frame(np.ndarray[int16]) - sync or async
    await recorder.pause()
    await recorder.end()
"""

import asyncio
import inspect
from typing import Awaitable, Callable, Optional, Union

import numpy as np
import sounddevice as sd

from intraview.config import Config

FrameCallback = Callable[[np.ndarray], Union[None, Awaitable[None]]]

STATUS_IDLE = "idle"
STATUS_PAUSED = "paused"
STATUS_RECORDING = "recording"


class AudioRecorder:
    """Microphone capture producing fixed-size mono PCM16 frames"""

    def __init__(self, sample_rate: int = Config.SAMPLE_RATE, device: Optional[int] = None,
                 chunk_size: int = Config.CHUNK_SIZE, stream_factory=None):
        """
        Args:
            sample_rate: Capture rate (must match the realtime input format)
            device: Input device index (None for default)
            chunk_size: Samples per frame
            stream_factory: Alternative to sd.InputStream (same signature)
        """
        self.sample_rate = sample_rate
        self.device = device if device is not None else Config.MIC_DEVICE_INDEX
        self.chunk_size = chunk_size
        self._stream_factory = stream_factory or sd.InputStream
        self._stream = None
        self._status = STATUS_IDLE
        self._on_frame: Optional[FrameCallback] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frames: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._overflow_count = 0
        self.logger = Config.LOGGER

    def get_status(self) -> str:
        return self._status

    @property
    def recording(self) -> bool:
        return self._status == STATUS_RECORDING

    async def begin(self) -> None:
        """Open the microphone stream (capture starts paused)"""
        if self._stream is not None:
            raise RuntimeError("Already connected: please call end() to start a new session")

        self._loop = asyncio.get_running_loop()
        self._frames = asyncio.Queue()
        self._stream = self._stream_factory(
            device=self.device,
            samplerate=self.sample_rate,
            channels=Config.CHANNELS,
            dtype='int16',
            blocksize=self.chunk_size,
            callback=self._audio_callback
        )
        try:
            self._stream.start()
        except Exception:
            self._stream.close()
            self._stream = None
            raise
        self._status = STATUS_PAUSED
        self._pump_task = asyncio.create_task(self._pump_frames())
        print(f"✓ Microphone open ({self.sample_rate}Hz, {self.chunk_size} samples/frame)")

    async def record(self, on_frame: FrameCallback) -> None:
        """Start forwarding frames to on_frame"""
        if self._stream is None:
            raise RuntimeError("Session ended: please call begin() first")
        if self._status == STATUS_RECORDING:
            raise RuntimeError("Already recording: please call pause() first")
        if not callable(on_frame):
            raise ValueError("on_frame must be callable")
        self._on_frame = on_frame
        self._status = STATUS_RECORDING

    async def pause(self) -> None:
        """Stop forwarding frames; the stream stays open"""
        if self._stream is None:
            raise RuntimeError("Session ended: please call begin() first")
        self._status = STATUS_PAUSED
        self._on_frame = None

    async def end(self) -> None:
        """Close the microphone stream"""
        stream = self._stream
        self._stream = None
        self._status = STATUS_IDLE
        self._on_frame = None
        if stream is not None:
            stream.stop()
            stream.close()
        task = self._pump_task
        self._pump_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _audio_callback(self, indata, frames, time_info, status):
        """PortAudio callback (audio thread) - hand frames to the event loop"""
        if status and status.input_overflow:
            self._overflow_count += 1
        if self._status != STATUS_RECORDING or self._loop is None:
            return
        frame = indata[:, 0].copy() if indata.ndim == 2 else indata.copy()
        try:
            self._loop.call_soon_threadsafe(self._frames.put_nowait, frame)
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    async def _pump_frames(self) -> None:
        """Forward queued frames to the active callback, in capture order"""
        while True:
            frame = await self._frames.get()
            on_frame = self._on_frame
            if on_frame is None or self._status != STATUS_RECORDING:
                continue
            try:
                result = on_frame(frame)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                print(f"✗ Frame forward error: {e}")
                if self.logger:
                    self.logger.error(
                        "audio_frame_forward_error",
                        extra={"error": str(e)}
                    )
