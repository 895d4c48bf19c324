"""
Audio capture backends.

Role in the system:
- Acquire an input device (or file) and deliver fixed-size InputFrames
  at the capture rate through a frame callback.
- Acquisition (open) and streaming (start) are separate steps: the device
  is held while the remote session opens, frames only flow after start().

Threading:
- MicrophoneCapture invokes the frame callback on the PortAudio thread.
  The callback must not block; the input pipeline hops onto the event loop.
- FileCapture invokes it from an asyncio task on the running loop.

Non-responsibilities:
- No PCM16 encoding, no transport, no session state.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable

import numpy as np

from audio.frames import InputFrame
from audio.resample import BlockResampler
from constants import CAPTURE_FRAME_SAMPLES, CAPTURE_SAMPLE_RATE_HZ
from observability.logger import log_event, now_ms
from session.errors import CapabilityUnavailableError, MicrophoneUnavailableError


FrameCallback = Callable[[InputFrame], None]


def _import_sounddevice() -> Any:
    """
    Import sounddevice lazily.

    The module loads the PortAudio shared library at import time and raises
    OSError when it is missing, which is a platform capability problem.
    """
    try:
        import sounddevice as _sd  # pylint: disable=import-outside-toplevel

        return _sd
    except (ImportError, OSError) as exc:
        raise CapabilityUnavailableError(
            "Audio input is not supported on this platform."
        ) from exc


class FrameAssembler:
    """Rechunk arbitrary-length sample blocks into exact capture frames."""

    def __init__(self, frame_samples: int = CAPTURE_FRAME_SAMPLES) -> None:
        if frame_samples <= 0:
            raise ValueError("frame_samples must be > 0")
        self._frame_samples = frame_samples
        self._buffer = np.zeros(0, dtype=np.float32)

    def add(self, samples: np.ndarray) -> list[np.ndarray]:
        """Add samples and return complete frames (possibly none)."""
        self._buffer = np.concatenate(
            (self._buffer, np.asarray(samples, dtype=np.float32))
        )
        frames: list[np.ndarray] = []

        while self._buffer.shape[0] >= self._frame_samples:
            frames.append(self._buffer[: self._frame_samples].copy())
            self._buffer = self._buffer[self._frame_samples:]

        return frames

    def clear(self) -> None:
        """Drop any partial frame."""
        self._buffer = np.zeros(0, dtype=np.float32)


# ---------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------

class CaptureHandle(ABC):
    """An acquired input source. Owned by the live session."""

    @abstractmethod
    def start(self) -> None:
        """Begin delivering frames to the callback given at open()."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """
        Stop delivering frames and release the device.

        Must be idempotent and must not raise.
        """
        raise NotImplementedError


class CaptureBackend(ABC):
    """Factory for capture handles."""

    @abstractmethod
    def is_available(self) -> bool:
        """True if this platform can capture audio at all."""
        raise NotImplementedError

    @abstractmethod
    async def open(self, on_frame: FrameCallback) -> CaptureHandle:
        """
        Acquire the input source without starting it.

        Raises:
            MicrophoneUnavailableError on denial or missing device.
        """
        raise NotImplementedError


# ---------------------------------------------------------------------
# Microphone (sounddevice / PortAudio)
# ---------------------------------------------------------------------

class _MicrophoneHandle(CaptureHandle):
    def __init__(
        self,
        *,
        stream: Any,
        resampler: BlockResampler,
        on_frame: FrameCallback,
    ) -> None:
        self._stream = stream
        self._resampler = resampler
        self._on_frame = on_frame
        self._assembler = FrameAssembler()
        self._sequence = 0
        self._stopped = False

    def start(self) -> None:
        if self._stopped:
            return
        self._stream.start()

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        try:
            self._stream.stop()
            self._stream.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_RELEASE_ERROR",
                "error": f"{type(exc).__name__}: {exc}",
            })
        self._assembler.clear()

    # Runs on the PortAudio thread
    def audio_callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        """sounddevice InputStream callback."""
        # pylint: disable=unused-argument
        if status:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_STATUS",
                "status": str(status),
            })
        if self._stopped:
            return

        block = self._resampler.process(indata[:, 0])
        for samples in self._assembler.add(block):
            self._sequence += 1
            self._on_frame(InputFrame(samples=samples, sequence_num=self._sequence))


class MicrophoneCapture(CaptureBackend):
    """
    System microphone via sounddevice.

    The device is opened at its default sample rate and every block is
    resampled to the capture rate, then rechunked into exact frames.
    """

    def __init__(self, *, device: int | str | None = None) -> None:
        self._device = device

    def is_available(self) -> bool:
        try:
            _import_sounddevice()
        except CapabilityUnavailableError:
            return False
        return True

    async def open(self, on_frame: FrameCallback) -> CaptureHandle:
        sd = _import_sounddevice()

        try:
            device_info = sd.query_devices(self._device, kind="input")
            native_rate = int(device_info["default_samplerate"])
            resampler = BlockResampler(
                source_rate_hz=native_rate,
                target_rate_hz=CAPTURE_SAMPLE_RATE_HZ,
            )

            handle: _MicrophoneHandle | None = None

            def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
                if handle is not None:
                    handle.audio_callback(indata, frames, time_info, status)

            stream = sd.InputStream(
                device=self._device,
                channels=1,
                samplerate=native_rate,
                dtype="float32",
                blocksize=resampler.source_block_size(CAPTURE_FRAME_SAMPLES),
                callback=_callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MICROPHONE_UNAVAILABLE",
                "device": self._device,
                "error": f"{type(exc).__name__}: {exc}",
            })
            raise MicrophoneUnavailableError(
                "Microphone not found or permission denied."
            ) from exc

        handle = _MicrophoneHandle(stream=stream, resampler=resampler, on_frame=on_frame)
        return handle


# ---------------------------------------------------------------------
# WAV/FLAC file (soundfile), paced in real time
# ---------------------------------------------------------------------

class _FileHandle(CaptureHandle):
    def __init__(self, *, samples: np.ndarray, on_frame: FrameCallback, realtime: bool) -> None:
        self._samples = samples
        self._on_frame = on_frame
        self._realtime = realtime
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    def start(self) -> None:
        if self._stopped or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        frame_s = CAPTURE_FRAME_SAMPLES / CAPTURE_SAMPLE_RATE_HZ
        total = self._samples.shape[0]
        sequence = 0

        for offset in range(0, total - CAPTURE_FRAME_SAMPLES + 1, CAPTURE_FRAME_SAMPLES):
            if self._stopped:
                return
            sequence += 1
            self._on_frame(InputFrame(
                samples=self._samples[offset: offset + CAPTURE_FRAME_SAMPLES].copy(),
                sequence_num=sequence,
            ))
            await asyncio.sleep(frame_s if self._realtime else 0)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "FILE_CAPTURE_EXHAUSTED",
            "frames": sequence,
        })


class FileCapture(CaptureBackend):
    """
    Audio file as a stand-in microphone (headless runs, demos).

    The file is decoded up front, mixed down to mono and resampled to the
    capture rate. A trailing partial frame is dropped.
    """

    def __init__(self, path: str, *, realtime: bool = True) -> None:
        self._path = path
        self._realtime = realtime

    def is_available(self) -> bool:
        return True

    async def open(self, on_frame: FrameCallback) -> CaptureHandle:
        import soundfile as sf  # pylint: disable=import-outside-toplevel

        try:
            data, rate = sf.read(self._path, dtype="float32", always_2d=True)
        except (RuntimeError, OSError) as exc:  # LibsndfileError is a RuntimeError
            log_event({
                "ts_ms": now_ms(),
                "event_type": "FILE_CAPTURE_UNAVAILABLE",
                "path": self._path,
                "error": f"{type(exc).__name__}: {exc}",
            })
            raise MicrophoneUnavailableError(
                f"Audio input file not found or unreadable: {self._path}"
            ) from exc

        mono = data.mean(axis=1).astype(np.float32)
        resampler = BlockResampler(source_rate_hz=int(rate), target_rate_hz=CAPTURE_SAMPLE_RATE_HZ)
        return _FileHandle(
            samples=resampler.process(mono),
            on_frame=on_frame,
            realtime=self._realtime,
        )
