from .base import AudioOutput, MediaDevices, MicrophoneCallback, PlaybackHandle

__all__ = ["AudioOutput", "MediaDevices", "MicrophoneCallback", "PlaybackHandle"]
