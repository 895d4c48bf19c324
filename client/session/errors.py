"""
Live session error taxonomy.

Setup errors (capability, microphone, remote connect) are fatal to one
connect() attempt and reach the owner via on_error after a full rollback.
Steady-state errors (remote runtime, decode) are contained and never
terminate the pipelines on their own.
"""

from __future__ import annotations


class LiveSessionError(Exception):
    """Base class for all live session errors."""


class CapabilityUnavailableError(LiveSessionError):
    """
    No audio API on this platform (e.g. PortAudio missing), or no usable
    output device.

    Fatal to connect(); retrying cannot help.
    """


class MicrophoneUnavailableError(LiveSessionError):
    """
    Microphone access denied or no input device present.

    Surfaced distinctly so the owner can prompt the user to grant access
    or plug in a device instead of showing a generic failure.
    """


class RemoteConnectError(LiveSessionError):
    """Opening the remote streaming session failed."""


class RemoteRuntimeError(LiveSessionError):
    """
    The remote session reported an error while open.

    Does not tear the session down; the paired close event does.
    """


class AudioDecodeError(LiveSessionError):
    """One inbound audio chunk could not be decoded; that chunk is dropped."""


class InvalidTransition(LiveSessionError):
    """A session state transition was requested from the wrong state."""
