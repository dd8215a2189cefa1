"""Audio download through the yt-dlp executable."""

import asyncio
import json
import logging
import tempfile
from collections.abc import Callable
from pathlib import Path

from link_preview.errors import ProviderFailed, ProviderUnavailable
from link_preview.models.progress import (
    MediaDownloadDone,
    MediaDownloadProgress,
    MediaDownloadStart,
)
from link_preview.progress import ProgressSink, emit_progress
from link_preview.transcription.whisper import SpeechToText, TranscriptionOutcome

logger = logging.getLogger(__name__)

YT_DLP_TIMEOUT_SECONDS = 300.0
YT_DLP_PROBE_TIMEOUT_SECONDS = 30.0
MAX_STDERR_CHARACTERS = 8192
DEFAULT_AUDIO_FORMAT = "bestaudio[vcodec=none]/best[height<=360]/best[height<=480]/best[height<=720]/best"
PROGRESS_TEMPLATE = (
    "progress:%(progress.downloaded_bytes)s|%(progress.total_bytes)s|%(progress.total_bytes_estimate)s"
)

ByteProgress = Callable[[int, int | None], None]


def build_download_args(url: str, output_path: Path, with_progress: bool) -> list[str]:
    args = [
        "-f", DEFAULT_AUDIO_FORMAT,
        "-x",
        "--audio-format", "mp3",
        "--concurrent-fragments", "4",
        "--no-playlist",
        "--retries", "3",
        "--no-warnings",
    ]
    if url.startswith("file://"):
        args.append("--enable-file-urls")
    if with_progress:
        args += ["--progress", "--newline", "--progress-template", PROGRESS_TEMPLATE]
    args += ["-o", str(output_path), url]
    return args


def _positive_number(raw: str | None) -> float | None:
    try:
        value = float(raw) if raw is not None else None
    except ValueError:
        return None
    return value if value is not None and value > 0 else None


def parse_progress_line(line: str) -> tuple[int, int | None] | None:
    """``(downloaded, total)`` from a ``progress:`` template line."""
    trimmed = line.strip()
    if not trimmed.startswith("progress:"):
        return None
    parts = trimmed[len("progress:"):].split("|")
    try:
        downloaded = float(parts[0])
    except ValueError:
        return None
    if downloaded < 0:
        return None
    total = _positive_number(parts[1] if len(parts) > 1 else None)
    if total is None:
        total = _positive_number(parts[2] if len(parts) > 2 else None)
    return int(downloaded), int(total) if total is not None else None


async def _pump(stream: asyncio.StreamReader, on_line: Callable[[str], None]) -> str:
    """Feed each line to ``on_line``; returns the last ``MAX_STDERR_CHARACTERS`` of output."""
    tail = ""
    while True:
        raw = await stream.readline()
        if not raw:
            break
        line = raw.decode("utf-8", errors="replace")
        tail = (tail + line)[-MAX_STDERR_CHARACTERS:]
        on_line(line)
    return tail


async def download_audio(
    binary: str,
    url: str,
    output_path: Path,
    on_bytes: ByteProgress | None = None,
    timeout_seconds: float = YT_DLP_TIMEOUT_SECONDS,
) -> None:
    """Run yt-dlp to extract MP3 audio. Killed after ``timeout_seconds``."""
    last_total: int | None = None

    def on_line(line: str) -> None:
        nonlocal last_total
        if on_bytes is None:
            return
        parsed = parse_progress_line(line)
        if parsed is None:
            return
        downloaded, total = parsed
        # Estimates fluctuate; never report a shrinking total.
        if total is not None and (last_total is None or total > last_total):
            last_total = total
        on_bytes(downloaded, last_total)

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            *build_download_args(url, output_path, on_bytes is not None),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProviderFailed(f"yt-dlp could not start: {exc}") from exc

    try:
        async with asyncio.timeout(timeout_seconds):
            _, stderr = await asyncio.gather(
                _pump(process.stdout, on_line),
                _pump(process.stderr, on_line),
            )
            code = await process.wait()
    except TimeoutError as exc:
        process.kill()
        await process.wait()
        raise ProviderFailed("yt-dlp download timeout") from exc

    if code != 0:
        detail = stderr.strip()
        suffix = f": {detail}" if detail else ""
        raise ProviderFailed(f"yt-dlp exited with code {code}{suffix}")


async def probe_duration_seconds(binary: str, url: str) -> float | None:
    """Media duration from ``yt-dlp --dump-json``; None on any failure."""
    try:
        process = await asyncio.create_subprocess_exec(
            binary, "--skip-download", "--dump-json", "--no-playlist", "--no-warnings", url,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return None
    try:
        async with asyncio.timeout(YT_DLP_PROBE_TIMEOUT_SECONDS):
            stdout, _ = await process.communicate()
    except TimeoutError:
        process.kill()
        await process.wait()
        return None
    if process.returncode != 0:
        return None

    for line in stdout.decode("utf-8", errors="replace").splitlines():
        if not line.strip().startswith("{"):
            continue
        try:
            duration = json.loads(line).get("duration")
        except ValueError:
            return None
        return float(duration) if isinstance(duration, (int, float)) and duration > 0 else None
    return None


async def transcribe_with_ytdlp(
    binary: str | None,
    speech_to_text: SpeechToText,
    url: str,
    *,
    service: str,
    on_progress: ProgressSink | None = None,
) -> TranscriptionOutcome:
    """Download audio with yt-dlp, then transcribe it.

    Raises ``ProviderUnavailable`` without a binary or speech-to-text backend,
    ``ProviderFailed`` when the download fails.
    """
    if not binary:
        raise ProviderUnavailable("yt-dlp is not configured (set YT_DLP_PATH)")
    if not speech_to_text.available:
        raise ProviderUnavailable("No speech-to-text backend available for yt-dlp audio")

    def on_bytes(downloaded: int, total: int | None) -> None:
        emit_progress(on_progress, MediaDownloadProgress(
            url=url, service=service, downloaded_bytes=downloaded, total_bytes=total,
        ))

    with tempfile.TemporaryDirectory(prefix="link-preview-ytdlp-") as workdir:
        output_path = Path(workdir) / "audio.mp3"
        emit_progress(on_progress, MediaDownloadStart(url=url, service=service, media_url=url))
        await download_audio(binary, url, output_path, on_bytes if on_progress else None)
        if not output_path.exists():
            raise ProviderFailed("yt-dlp finished without producing audio")
        size = output_path.stat().st_size
        emit_progress(on_progress, MediaDownloadDone(url=url, service=service, downloaded_bytes=size))

        duration = await probe_duration_seconds(binary, url)
        outcome = await speech_to_text.transcribe_file(
            output_path,
            url=url,
            service=service,
            media_type="audio/mpeg",
            total_duration_seconds=duration,
            on_progress=on_progress,
        )
        outcome.duration_seconds = duration
        logger.info("yt-dlp transcription for %s finished via %s", url, outcome.provider)
        return outcome
