"""
Local audio playback through system commands.

Cached clips are written to a temporary file and played by the first
available command-line player. Offline speech uses the platform's speech
command. Every playback returns a handle whose `stop()` is immediate,
idempotent and removes the temporary file; the file is also removed once
the player process exits on its own.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from loguru import logger

# (binary, arguments before the file path)
PLAYER_COMMANDS: list[tuple[str, list[str]]] = [
    ("ffplay", ["-nodisp", "-autoexit", "-loglevel", "quiet"]),
    ("afplay", []),
    ("mpg123", ["-q"]),
    ("mpv", ["--really-quiet", "--no-video"]),
]

SPEECH_COMMANDS: list[tuple[str, list[str]]] = [
    ("say", []),
    ("espeak-ng", ["-s", "160"]),
    ("espeak", ["-s", "160"]),
    ("spd-say", ["-w"]),
]


def find_command(candidates: list[tuple[str, list[str]]]) -> list[str] | None:
    for binary, args in candidates:
        path = shutil.which(binary)
        if path:
            return [path, *args]
    return None


class PlaybackHandle:
    """A running playback and the temporary file it owns."""

    def __init__(self, process: subprocess.Popen | None, temp_path: Path | None = None):
        self.process = process
        self.temp_path = temp_path
        self._lock = threading.Lock()
        self._released = False

    @property
    def is_playing(self) -> bool:
        if self.process is None:
            return False
        if self.process.poll() is None:
            return True
        self._release()
        return False

    def watch(self) -> threading.Thread | None:
        """Release the temp file from a daemon thread once the player exits."""
        if self.process is None or self.temp_path is None:
            return None
        thread = threading.Thread(target=self.wait, name="studyset-playback", daemon=True)
        thread.start()
        return thread

    def wait(self, timeout: float | None = None) -> int | None:
        if self.process is None:
            return None
        try:
            return self.process.wait(timeout)
        finally:
            if self.process.poll() is not None:
                self._release()

    def stop(self) -> None:
        """Terminate playback and release the temp file. Safe to call repeatedly."""
        with self._lock:
            if self.process is not None and self.process.poll() is None:
                try:
                    self.process.terminate()
                except OSError as e:
                    logger.debug(f"Playback already gone: {e}")
        self._release()

    def _release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            if self.temp_path is not None:
                try:
                    self.temp_path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Could not remove playback file {self.temp_path}: {e}")


class AudioPlayer(Protocol):
    def play(self, audio: bytes) -> PlaybackHandle | None: ...


class OfflineSpeaker(Protocol):
    def speak(self, text: str) -> PlaybackHandle | None: ...


class SubprocessAudioPlayer:
    """Plays audio bytes with the first installed command-line player."""

    def __init__(self, command: list[str] | None = None, suffix: str = ".mp3"):
        self.command = command or find_command(PLAYER_COMMANDS)
        self.suffix = suffix

    def play(self, audio: bytes) -> PlaybackHandle | None:
        if not self.command:
            logger.warning("No audio player found (tried ffplay, afplay, mpg123, mpv)")
            return None

        with tempfile.NamedTemporaryFile(prefix="studyset-", suffix=self.suffix, delete=False) as f:
            f.write(audio)
            temp_path = Path(f.name)

        try:
            process = subprocess.Popen(
                [*self.command, str(temp_path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Audio play error: {e}")
            temp_path.unlink(missing_ok=True)
            return None
        handle = PlaybackHandle(process, temp_path)
        handle.watch()
        return handle


class SystemSpeaker:
    """Offline speech through the platform speech command."""

    def __init__(self, command: list[str] | None = None):
        self.command = command or find_command(SPEECH_COMMANDS)

    def speak(self, text: str) -> PlaybackHandle | None:
        if not self.command:
            logger.warning("Speech synthesis not supported: no speech command found")
            return None
        try:
            process = subprocess.Popen(
                [*self.command, text],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Offline speech failed: {e}")
            return None
        return PlaybackHandle(process)
