"""Error taxonomy for the realtime session controller"""


class SessionError(Exception):
    """Base class for session controller errors"""


class SessionConnectionError(SessionError, ConnectionError):
    """A sub-resource (microphone, speaker, websocket) failed to open"""


class ProtocolError(SessionError):
    """An inbound event was malformed or referenced unknown state"""

    def __init__(self, message: str, event_type: str = None):
        super().__init__(message)
        self.event_type = event_type


class CancellationFailure(SessionError):
    """The remote side rejected a response cancellation/truncation"""


class DecodeFailure(SessionError):
    """A completed item's audio could not be decoded into a playable asset"""
