"""Audio capture, playback and WAV decoding"""

from .capture import AudioRecorder
from .playback import StreamPlayer, TrackSampleOffset
from .wav import decode_pcm16, samples_to_ms

__all__ = ["AudioRecorder", "StreamPlayer", "TrackSampleOffset", "decode_pcm16", "samples_to_ms"]
