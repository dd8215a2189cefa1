"""Local transcription with the whisper.cpp command-line binary."""

import asyncio
import logging
import re
import shutil
import tempfile
from pathlib import Path

from link_preview.errors import ProviderFailed
from link_preview.transcription.base import PercentCallback

logger = logging.getLogger(__name__)

MAX_STDERR_CHARACTERS = 8192
PROGRESS_PATTERN = re.compile(r"progress\s*=\s*(\d{1,3})%", re.IGNORECASE)
SUPPORTED_EXTENSIONS = {".flac", ".mp3", ".ogg", ".wav"}
SUPPORTED_MEDIA_TYPES = {
    "audio/flac",
    "audio/x-flac",
    "audio/mpeg",
    "audio/mp3",
    "audio/ogg",
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
}


def parse_progress_percent(line: str) -> int | None:
    match = PROGRESS_PATTERN.search(line)
    if not match:
        return None
    return max(0, min(100, int(match.group(1))))


class WhisperCppBackend:
    """Runs ``whisper-cli`` against a ggml model; flac/mp3/ogg/wav input only."""

    name = "whisper.cpp"

    def __init__(self, binary: str, model_path: str, disabled: bool = False):
        self.binary = binary
        self.model_path = model_path
        self.disabled = disabled

    def is_ready(self) -> bool:
        if self.disabled or not self.model_path:
            return False
        if not Path(self.model_path).expanduser().is_file():
            return False
        return shutil.which(self.binary) is not None

    @staticmethod
    def supports(path: Path, media_type: str) -> bool:
        return media_type.lower() in SUPPORTED_MEDIA_TYPES or path.suffix.lower() in SUPPORTED_EXTENSIONS

    async def transcribe(
        self,
        path: Path,
        *,
        media_type: str,
        timeout_seconds: float,
        on_percent: PercentCallback | None = None,
    ) -> str:
        if not self.supports(path, media_type):
            raise ProviderFailed(f"whisper.cpp supports only flac/mp3/ogg/wav (media type {media_type})")

        with tempfile.TemporaryDirectory(prefix="link-preview-whisper-") as workdir:
            output_base = Path(workdir) / "transcript"
            args = [
                "--model", str(Path(self.model_path).expanduser()),
                "--language", "auto",
                "--no-timestamps",
                "--no-prints",
                "--print-progress",
                "--output-txt",
                "--output-file", str(output_base),
                str(path),
            ]
            try:
                process = await asyncio.create_subprocess_exec(
                    self.binary,
                    *args,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                raise ProviderFailed(f"whisper.cpp could not start: {exc}") from exc

            try:
                async with asyncio.timeout(timeout_seconds):
                    stderr = await _read_stderr(process.stderr, on_percent)
                    code = await process.wait()
            except TimeoutError as exc:
                process.kill()
                await process.wait()
                raise ProviderFailed(f"whisper.cpp timed out after {timeout_seconds:.0f}s") from exc

            if code != 0:
                raise ProviderFailed(f"whisper.cpp failed ({code}): {stderr.strip()}")

            output_txt = output_base.with_suffix(".txt")
            text = output_txt.read_text(encoding="utf-8").strip() if output_txt.exists() else ""
        if not text:
            raise ProviderFailed("whisper.cpp returned empty text")
        logger.debug("whisper.cpp transcribed %s with model %s", path.name, Path(self.model_path).name)
        return text


async def _read_stderr(stream: asyncio.StreamReader, on_percent: PercentCallback | None) -> str:
    """Drain stderr, reporting progress lines. Returns the last ``MAX_STDERR_CHARACTERS``."""
    captured = ""
    pending = ""
    last_percent = -1
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        decoded = chunk.decode("utf-8", errors="replace")
        captured = (captured + decoded)[-MAX_STDERR_CHARACTERS:]
        pending += decoded
        lines = re.split(r"\r?\n|\r", pending)
        pending = lines.pop()
        for line in lines:
            percent = parse_progress_percent(line)
            if percent is None or percent == last_percent:
                continue
            last_percent = percent
            if on_percent is not None:
                on_percent(percent)
    return captured
