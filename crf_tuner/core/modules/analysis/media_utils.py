"""
Media utilities for crf_tuner.

This module provides media-specific utilities including:
- FFprobe operations for container and stream metadata
- Scene-change detection through the lavfi ``scene`` score
- VMAF computation through ffmpeg's libvmaf filter
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ....utils.logging import get_logger
from ...errors import DetectionFailure, ProbeFailure, ScoreFailure
from ...models import MediaMetadata, SceneCut, VideoTrack
from ..system.system_utils import CancelToken, run_command, stderr_tail, vmaf_thread_count

logger = get_logger("media_utils")

# Scene score threshold handed to the lavfi select filter
SCENE_THRESHOLD = 0.3

VMAF_SCORE_RE = re.compile(r'VMAF score:\s*([0-9]+(?:\.[0-9]+)?)')


def fraction_to_float(value: Optional[str]) -> float:
    """Parse an ffprobe rate such as "30000/1001" or "25" into a float.

    Raises ValueError for empty, malformed or zero-denominator values.
    """
    if not value or value.lower() in ("n/a", "0/0"):
        raise ValueError(f"invalid fraction: {value!r}")
    if "/" in value:
        num, den = value.split("/", 1)
        denominator = float(den)
        if denominator == 0:
            raise ValueError(f"invalid fraction: {value!r}")
        return float(num) / denominator
    return float(value)


def _to_int(raw_value: Any) -> int:
    if raw_value in (None, "N/A", ""):
        return 0
    try:
        return int(float(raw_value))
    except (TypeError, ValueError):
        return 0


def _to_float(raw_value: Any) -> Optional[float]:
    if raw_value in (None, "N/A", ""):
        return None
    try:
        return float(raw_value)
    except (TypeError, ValueError):
        return None


def run_ffprobe_json(args: List[str], path: Path, cancel_token: Optional[CancelToken] = None,
                     error_cls=ProbeFailure) -> Dict[str, Any]:
    """Run ffprobe with JSON output and return the decoded payload."""
    cmd = ["ffprobe", "-hide_banner", "-v", "error"] + args + ["-of", "json"]
    try:
        result = run_command(cmd, cancel_token=cancel_token)
    except FileNotFoundError as e:
        raise error_cls("ffprobe executable was not found; install FFmpeg so ffprobe is on PATH") from e
    if result.returncode != 0:
        raise error_cls(f"ffprobe failed for {path}: {stderr_tail(result)}")
    try:
        return json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise error_cls(f"ffprobe returned invalid JSON for {path}") from e


def _video_track(stream: Dict[str, Any], duration_sec: float) -> VideoTrack:
    try:
        frame_rate = fraction_to_float(stream.get("r_frame_rate") or stream.get("avg_frame_rate"))
    except ValueError:
        frame_rate = 0.0
    bitrate_kbps = _to_int(stream.get("bit_rate")) // 1000
    tags = stream.get("tags") or {}
    # Matroska muxers report the exact stream size as a tag; otherwise estimate from bitrate
    size_bytes = _to_int(tags.get("NUMBER_OF_BYTES"))
    if size_bytes:
        stream_size_kb = size_bytes // 1000
    else:
        stream_size_kb = int(bitrate_kbps * duration_sec / 8)
    return VideoTrack(
        width=_to_int(stream.get("width")),
        height=_to_int(stream.get("height")),
        frame_rate=frame_rate,
        bitrate_kbps=bitrate_kbps,
        max_bitrate_kbps=_to_int(stream.get("max_bit_rate")) // 1000,
        stream_size_kb=stream_size_kb,
        codec=stream.get("codec_name"),
    )


def parse_metadata(path: Path, payload: Dict[str, Any]) -> MediaMetadata:
    """Normalize an ffprobe ``-show_format -show_streams`` payload."""
    format_entry = payload.get("format") or {}
    streams = payload.get("streams") or []

    duration = _to_float(format_entry.get("duration"))
    if duration is None:
        raise ProbeFailure(f"failed to parse duration of {path}, found: {format_entry.get('duration')!r}")

    video_tracks = tuple(
        _video_track(s, duration) for s in streams
        if s.get("codec_type") == "video" and not (s.get("disposition") or {}).get("attached_pic")
    )
    return MediaMetadata(
        path=Path(path),
        duration_sec=duration,
        video_tracks=video_tracks,
        audio_track_count=sum(1 for s in streams if s.get("codec_type") == "audio"),
        format_name=format_entry.get("format_name"),
        raw=payload,
    )


def probe_metadata(path: Path, cancel_token: Optional[CancelToken] = None) -> MediaMetadata:
    """Probe container and stream facts of ``path``."""
    payload = run_ffprobe_json(["-show_format", "-show_streams", "-i", str(path)], path, cancel_token)
    return parse_metadata(path, payload)


def _lavfi_movie_source(path: Path) -> str:
    # Quote the filename for the filtergraph parser; a literal ' becomes '\''
    escaped = str(path).replace("\\", "/").replace("'", "'\\''")
    return f"movie='{escaped}'"


def parse_scene_frames(payload: Dict[str, Any]) -> List[SceneCut]:
    """Turn ``-show_frames`` output of the scene filter into SceneCuts."""
    cuts = []
    for frame in payload.get("frames", []):
        pts = _to_float(frame.get("pts_time"))
        if pts is None:
            pts = _to_float(frame.get("best_effort_timestamp_time"))
        if pts is None:
            continue
        tags = frame.get("tags") or {}
        cuts.append(SceneCut(
            pts_time_sec=pts,
            significance=_to_float(tags.get("lavfi.scene_score")) or 0.0,
            is_keyframe=_to_int(frame.get("key_frame")) == 1,
        ))
    cuts.sort(key=lambda c: c.pts_time_sec)
    return cuts


def detect_scene_cuts(path: Path, threshold: float = SCENE_THRESHOLD,
                      cancel_token: Optional[CancelToken] = None) -> List[SceneCut]:
    """Detect scene-change frames of ``path`` with their significance scores."""
    logger.scene(f"Running ffprobe scene detection on {Path(path).name}")
    graph = f"{_lavfi_movie_source(path)},select=gt(scene\\,{threshold})"
    payload = run_ffprobe_json(
        ["-show_frames", "-f", "lavfi", graph], path, cancel_token, error_cls=DetectionFailure
    )
    return parse_scene_frames(payload)


def parse_vmaf_score(output: str) -> Optional[float]:
    """Extract the pooled score from libvmaf log output."""
    match = VMAF_SCORE_RE.search(output or "")
    return float(match.group(1)) if match else None


def build_vmaf_cmd(distorted: Path, reference: Path, speed: int,
                   reference_size: Optional[tuple] = None,
                   distorted_size: Optional[tuple] = None) -> List[str]:
    """Build the ffmpeg/libvmaf command comparing ``distorted`` to ``reference``.

    ``speed`` (1 slowest .. 10 fastest) becomes libvmaf's ``n_subsample``.
    """
    threads = vmaf_thread_count(speed)
    scale = ""
    if reference_size and distorted_size and reference_size != distorted_size:
        ref_w, ref_h = reference_size
        logger.vmaf(f"Distorted and reference differ in resolution, upscaling distorted: "
                    f"{distorted_size[0]}:{distorted_size[1]} -> {ref_w}:{ref_h}")
        scale = f"scale={ref_w}:{ref_h}:flags=bicubic,"

    graph = (
        "[0:v]setpts=PTS-STARTPTS[reference];"
        f"[1:v]{scale}setpts=PTS-STARTPTS[distorted];"
        f"[distorted][reference]libvmaf=n_threads={threads}:n_subsample={max(1, speed)}"
    )
    return [
        "ffmpeg", "-hide_banner",
        "-i", str(reference),
        "-i", str(distorted),
        "-an",
        "-lavfi", graph,
        "-f", "null", "-",
    ]


def compute_vmaf_score(distorted: Path, reference: Path, speed: int = 5,
                       cancel_token: Optional[CancelToken] = None) -> float:
    """Compute the VMAF score of ``distorted`` against ``reference``.

    Raises ScoreFailure when either input has no video or libvmaf fails.
    """
    try:
        ref_meta = probe_metadata(reference, cancel_token)
        dist_meta = probe_metadata(distorted, cancel_token)
    except ProbeFailure as e:
        raise ScoreFailure(f"failed to inspect VMAF inputs: {e.message}") from e
    if ref_meta.video_track is None:
        raise ScoreFailure(f"reference has no video tracks: {reference}")
    if dist_meta.video_track is None:
        raise ScoreFailure(f"distorted has no video tracks: {distorted}")

    cmd = build_vmaf_cmd(
        distorted, reference, speed,
        reference_size=(ref_meta.video_track.width, ref_meta.video_track.height),
        distorted_size=(dist_meta.video_track.width, dist_meta.video_track.height),
    )
    logger.vmaf(f"Running VMAF with distorted: {Path(distorted).name}, reference: {Path(reference).name}")
    try:
        result = run_command(cmd, cancel_token=cancel_token)
    except FileNotFoundError as e:
        raise ScoreFailure("ffmpeg executable was not found; install FFmpeg with libvmaf") from e
    if result.returncode != 0:
        raise ScoreFailure(f"ffmpeg vmaf of distorted: {distorted}, reference: {reference} failed: "
                           f"{stderr_tail(result)}")

    # Some builds log the score to stdout, most to stderr
    score = parse_vmaf_score(f"{result.stderr or ''}\n{result.stdout or ''}")
    if score is None:
        raise ScoreFailure("failed to parse VMAF score from ffmpeg output")
    return score
