"""
Session error taxonomy.

Each error carries a user-visible message. None of them is retried
automatically; retrying is always a user action.
"""


class SessionError(Exception):
    """Base class for errors surfaced by the session controller."""

    default_message = "Something went wrong with the session."

    def __init__(self, message=None, *, cause=None):
        self.user_message = message or self.default_message
        self.cause = cause
        super().__init__(self.user_message)


class PermissionDenied(SessionError):
    """Camera or microphone unavailable. The session returns to idle."""

    default_message = "Permission denied or camera unavailable. Allow camera and microphone access and try again."


class ConnectionFailure(SessionError):
    """The remote handshake failed. The session returns to ready."""

    default_message = "Could not start the session. Check your API key and network connection."


class StreamError(SessionError):
    """The live stream failed mid-session. Full teardown back to ready."""

    default_message = "The session hit an error. Please try again."


class EnrichmentFailure(SessionError):
    """Translation/phonetics failed for one utterance. Recovered locally."""

    default_message = "translation failed"
