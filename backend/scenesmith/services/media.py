from __future__ import annotations
"""FFmpeg / ffprobe wrappers for frame extraction, concat and audio muxing.

All functions are synchronous and operate on local files; async callers run
them through ``asyncio.to_thread``.

CRITICAL CONSTRAINTS:
1. Concat is container-level only (concat demuxer + ``-c copy``); clips are
   never re-encoded, so they must share codec parameters.
2. Audio muxing copies the video stream and loops the audio input so it
   covers the full video duration.
3. First frame is taken slightly after 0 s to avoid black lead-in frames;
   last frame is one frame interval before the end.
"""

import json
import logging
import os
import subprocess

from scenesmith.config import get_settings
from scenesmith.errors import MediaProcessingError

logger = logging.getLogger(__name__)
settings = get_settings()


def _run(cmd: list[str], timeout: int, what: str) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise MediaProcessingError(f"{cmd[0]} not found; install FFmpeg or set FFMPEG_PATH") from e
    except subprocess.TimeoutExpired as e:
        raise MediaProcessingError(f"{what} timed out after {timeout}s") from e
    if result.returncode != 0:
        logger.error("%s failed: %s", what, result.stderr[-500:])
        raise MediaProcessingError(f"{what} failed: {result.stderr[-200:].strip()}")
    return result


def probe(filepath: str) -> dict:
    """Return ffprobe's format + streams description of a file."""
    result = _run(
        [
            settings.FFPROBE_PATH, "-v", "quiet",
            "-show_entries", "format=duration:stream=codec_type,r_frame_rate,avg_frame_rate",
            "-of", "json",
            filepath,
        ],
        timeout=15,
        what="ffprobe",
    )
    try:
        return json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise MediaProcessingError(f"ffprobe returned invalid JSON for {filepath}") from e


def probe_duration(filepath: str) -> float:
    """Duration in seconds; raises if the file has no positive duration."""
    data = probe(filepath)
    try:
        duration = float(data.get("format", {}).get("duration", 0))
    except (TypeError, ValueError):
        duration = 0.0
    if duration <= 0:
        raise MediaProcessingError(f"Invalid video duration {duration} for {filepath}")
    return duration


def _parse_rate(rate: str | None) -> float | None:
    if not rate or "/" not in rate:
        return None
    num, den = rate.split("/", 1)
    try:
        num_f, den_f = float(num), float(den)
    except ValueError:
        return None
    return num_f / den_f if den_f > 0 and num_f > 0 else None


def probe_frame_rate(data: dict) -> float:
    """Frame rate of the first video stream in an ffprobe result (default 30)."""
    for stream in data.get("streams", []):
        if stream.get("codec_type") == "video":
            fps = _parse_rate(stream.get("r_frame_rate")) or _parse_rate(stream.get("avg_frame_rate"))
            if fps:
                return fps
    return 30.0


def has_audio_stream(filepath: str) -> bool:
    """Check if a media file has an audio stream."""
    try:
        data = probe(filepath)
    except MediaProcessingError:
        return False
    return any(s.get("codec_type") == "audio" for s in data.get("streams", []))


def frame_timestamps(duration: float, fps: float) -> tuple[float, float]:
    """Timestamps of the first and last representative frames."""
    first = min(0.5, duration * 0.1)
    interval = 1.0 / fps
    last = duration - interval
    if last <= first or last < 0:
        last = max(first + interval, min(duration * 0.9, duration - 0.01))
    if first < 0 or last < 0 or first >= duration or last >= duration:
        raise MediaProcessingError(
            f"Invalid frame timestamps first={first:.3f}s last={last:.3f}s duration={duration:.3f}s"
        )
    return first, last


def extract_frame(video_path: str, output_path: str, timestamp: float) -> None:
    """Write a single JPEG frame at timestamp."""
    _run(
        [
            settings.FFMPEG_PATH, "-y",
            "-ss", f"{timestamp:.3f}",
            "-i", video_path,
            "-frames:v", "1",
            "-q:v", "2",
            output_path,
        ],
        timeout=60,
        what="FFmpeg frame extraction",
    )
    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise MediaProcessingError(f"Frame not written at {timestamp:.3f}s")


def extract_first_last_frames(video_path: str, first_path: str, last_path: str) -> tuple[float, float]:
    """Extract first and last frames; returns the timestamps used."""
    data = probe(video_path)
    try:
        duration = float(data.get("format", {}).get("duration", 0))
    except (TypeError, ValueError):
        duration = 0.0
    if duration <= 0:
        raise MediaProcessingError(f"Invalid video duration {duration}; clip may be corrupted")

    first, last = frame_timestamps(duration, probe_frame_rate(data))
    extract_frame(video_path, first_path, first)
    extract_frame(video_path, last_path, last)
    logger.debug("Frames extracted at %.3fs and %.3fs (duration %.3fs)", first, last, duration)
    return first, last


def concat_clips(clip_paths: list[str], output_path: str) -> None:
    """Concatenate clips losslessly using the FFmpeg concat demuxer."""
    if not clip_paths:
        raise MediaProcessingError("No clips to concatenate")

    concat_list_path = output_path + ".concat.txt"
    with open(concat_list_path, "w") as f:
        for path in clip_paths:
            escaped = os.path.abspath(path).replace("'", "'\\''")
            f.write(f"file '{escaped}'\n")

    try:
        _run(
            [
                settings.FFMPEG_PATH, "-y",
                "-f", "concat", "-safe", "0",
                "-i", concat_list_path,
                "-c", "copy",
                output_path,
            ],
            timeout=300,
            what="FFmpeg concat",
        )
    finally:
        try:
            os.remove(concat_list_path)
        except OSError:
            pass


def mux_audio(video_path: str, audio_path: str, output_path: str, volume: float = 0.5) -> None:
    """Lay an audio track over the whole video at the given volume.

    Any existing audio in the video is replaced.
    """
    _run(
        [
            settings.FFMPEG_PATH, "-y",
            "-i", video_path,
            "-stream_loop", "-1", "-i", audio_path,
            "-map", "0:v:0", "-map", "1:a:0",
            "-filter:a", f"volume={volume:.3f}",
            "-c:v", "copy",
            "-c:a", "aac", "-b:a", "192k",
            "-shortest",
            output_path,
        ],
        timeout=300,
        what="FFmpeg audio mux",
    )


def render_placeholder_clip(output_path: str, duration: float = 5.0, color: str = "0x23233C",
                            size: str = "1280x720") -> None:
    """Render a solid-colour H.264 clip with a silent track (mock provider)."""
    _run(
        [
            settings.FFMPEG_PATH, "-y",
            "-f", "lavfi", "-i", f"color=c={color}:size={size}:duration={duration:.2f}:rate=24",
            "-f", "lavfi", "-i", "anullsrc=r=24000:cl=mono",
            "-t", f"{duration:.2f}",
            "-c:v", "libx264", "-preset", "ultrafast", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-shortest",
            output_path,
        ],
        timeout=60,
        what="FFmpeg placeholder clip",
    )


def render_tone(output_path: str, duration: float = 30.0, frequency: int = 440) -> None:
    """Render a sine tone audio file (mock provider)."""
    _run(
        [
            settings.FFMPEG_PATH, "-y",
            "-f", "lavfi", "-i", f"sine=frequency={frequency}:duration={duration:.2f}",
            output_path,
        ],
        timeout=60,
        what="FFmpeg tone",
    )
