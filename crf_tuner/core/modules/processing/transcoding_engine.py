"""
Transcoding engine module for crf_tuner.

This module handles the core encoding operations:
- FFmpeg command building from an EncodeConfig
- Running encodes with error reporting and cancellation
"""

from pathlib import Path
from typing import List, Optional

from ....utils.logging import format_size, get_logger
from ...errors import EncodeFailure
from ...models import EncodeConfig
from ..system.system_utils import CancelToken, run_command, stderr_tail

logger = get_logger("transcoding_engine")

VALID_TUNES = ("animation", "film", "grain", "psnr", "ssim")


def build_encode_cmd(input_file: Path, output_file: Path, config: EncodeConfig) -> List[str]:
    """Build the FFmpeg command for one encode of ``input_file``.

    Video is rate-controlled by ``config.bitrate_kbps`` when set, otherwise by
    ``config.crf``. With no codec the output carries no video.
    """
    if config.crf <= 0 and config.bitrate_kbps <= 0:
        raise ValueError("bitrate or crf required for encode")

    cmd = ["ffmpeg", "-hide_banner", "-i", str(input_file), "-y"]

    if config.codec:
        cmd.extend(["-c:v", config.codec])
        if config.bitrate_kbps:
            cmd.extend(["-b:v", f"{config.bitrate_kbps}k"])
        elif config.crf:
            cmd.extend(["-crf", str(config.crf)])
        if config.max_bitrate_kbps:
            cmd.extend(["-maxrate", f"{config.max_bitrate_kbps}k"])
        if config.min_bitrate_kbps:
            cmd.extend(["-minrate", f"{config.min_bitrate_kbps}k"])
        if config.buffer_size_kbps:
            cmd.extend(["-bufsize", f"{config.buffer_size_kbps}k"])
        if config.fps_num and config.fps_den:
            cmd.extend(["-r", f"{config.fps_num}/{config.fps_den}"])

        if config.width or config.height:
            # -2 keeps the aspect ratio on an even dimension for codec compatibility
            width = config.width or -2
            height = config.height or -2
            cmd.extend(["-filter:v", f"[in]scale={width}:{height}:flags=lanczos[out]"])
        if config.tune:
            cmd.extend(["-tune", config.tune])
    else:
        cmd.append("-vn")

    if config.audio_codec:
        cmd.extend(["-c:a", config.audio_codec])
        if config.audio_bitrate_kbps:
            cmd.extend(["-b:a", f"{config.audio_bitrate_kbps}k"])
    else:
        cmd.append("-an")

    cmd.append(str(output_file))
    return cmd


def encode(input_file: Path, output_file: Path, config: EncodeConfig,
           cancel_token: Optional[CancelToken] = None) -> None:
    """Encode ``input_file`` into ``output_file``; raises EncodeFailure on error."""
    cmd = build_encode_cmd(input_file, output_file, config)
    logger.encode(f"Running ffmpeg encode of {Path(input_file).name} with {config.describe()}")

    try:
        result = run_command(cmd, cancel_token=cancel_token)
    except FileNotFoundError as e:
        raise EncodeFailure("ffmpeg executable was not found; install FFmpeg so ffmpeg is on PATH",
                            crf=config.crf or None) from e
    if result.returncode != 0:
        raise EncodeFailure(f"ffmpeg encode of {input_file} failed: {stderr_tail(result)}",
                            crf=config.crf or None)
    if not Path(output_file).exists() or Path(output_file).stat().st_size == 0:
        raise EncodeFailure(f"ffmpeg encode of {input_file} produced no output: {output_file}",
                            crf=config.crf or None)
    logger.encode(f"Wrote {Path(output_file).name} ({format_size(Path(output_file).stat().st_size)})")
