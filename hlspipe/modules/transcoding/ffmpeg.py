"""FFmpeg media encoder.

One ffmpeg process decodes the source once, splits the video into one
branch per rendition, scales/pads each branch and writes fixed-duration
MPEG-TS segments into a directory per rendition.
"""

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from hlspipe.modules.transcoding.renditions import (
    RENDITION_LADDER,
    SEGMENT_DURATION_SECONDS,
    SEGMENT_PATTERN,
    Rendition,
    is_segment_key,
    sort_segment_keys,
)

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 4000


class EncoderError(Exception):
    """Raised when the encoder process fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


@dataclass
class EncodeOutput:
    """Segments produced per rendition, in playback order."""
    output_dir: Path
    segments: dict[str, list[Path]] = field(default_factory=dict)

    @property
    def segment_count(self) -> int:
        return sum(len(files) for files in self.segments.values())


def collect_segments(output_dir: Path, ladder: Sequence[Rendition] = RENDITION_LADDER) -> EncodeOutput:
    """Enumerate segment files under each rendition directory.

    Rendition directories that do not exist are left out.
    """
    output = EncodeOutput(output_dir=output_dir)
    for rendition in ladder:
        rendition_dir = output_dir / rendition.name
        if not rendition_dir.is_dir():
            continue
        names = [p.name for p in rendition_dir.iterdir() if p.is_file() and is_segment_key(p.name)]
        output.segments[rendition.name] = [rendition_dir / name for name in sort_segment_keys(names)]
    return output


class MediaEncoder(ABC):
    """Encodes one input file into segmented renditions on local disk."""

    @abstractmethod
    def encode(
        self,
        input_path: Path,
        output_dir: Path,
        ladder: Sequence[Rendition] = RENDITION_LADDER,
    ) -> EncodeOutput:
        """Encode ``input_path`` into ``output_dir/<rendition>/segment_NNN.ts``.

        Raises:
            EncoderError: If encoding fails
        """


class FFmpegEncoder(MediaEncoder):
    """Media encoder that shells out to the ffmpeg binary."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        preset: str = "medium",
        crf: int = 23,
        segment_duration: int = SEGMENT_DURATION_SECONDS,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.preset = preset
        self.crf = crf
        self.segment_duration = segment_duration

    def build_filter_graph(self, ladder: Sequence[Rendition]) -> str:
        """Build the split/scale/pad filter graph for the ladder.

        Args:
            ladder: Renditions to produce

        Returns:
            filter_complex expression
        """
        split_labels = "".join(f"[v{r.name}]" for r in ladder)
        branches = [f"[0:v]split={len(ladder)}{split_labels}"]
        for r in ladder:
            branches.append(
                f"[v{r.name}]scale=w={r.width}:h={r.height}:force_original_aspect_ratio=decrease,"
                f"pad=ceil(iw/2)*2:ceil(ih/2)*2[v{r.name}out]"
            )
        return "; ".join(branches)

    def build_command(
        self,
        input_path: Path,
        output_dir: Path,
        ladder: Sequence[Rendition] = RENDITION_LADDER,
    ) -> list[str]:
        """Build the ffmpeg argument list.

        Args:
            input_path: Source video
            output_dir: Directory holding one subdirectory per rendition
            ladder: Renditions to produce

        Returns:
            FFmpeg command as list of arguments
        """
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-filter_complex", self.build_filter_graph(ladder),
        ]

        for r in ladder:
            cmd.extend([
                "-map", f"[v{r.name}out]",
                "-map", "0:a?",
                "-c:v", "libx264",
                "-b:v", r.video_bitrate,
                "-c:a", "aac",
                "-b:a", r.audio_bitrate,
                "-preset", self.preset,
                "-crf", str(self.crf),
                "-ac", "2",
                "-f", "segment",
                "-segment_time", str(self.segment_duration),
                "-segment_format", "mpegts",
                str(output_dir / r.name / SEGMENT_PATTERN),
            ])

        return cmd

    def prepare_output_dir(self, output_dir: Path, ladder: Sequence[Rendition]) -> None:
        """Recreate the per-rendition directories empty."""
        if output_dir.exists():
            shutil.rmtree(output_dir)
        for r in ladder:
            (output_dir / r.name).mkdir(parents=True, exist_ok=True)

    def encode(
        self,
        input_path: Path,
        output_dir: Path,
        ladder: Sequence[Rendition] = RENDITION_LADDER,
    ) -> EncodeOutput:
        self.prepare_output_dir(output_dir, ladder)
        cmd = self.build_command(input_path, output_dir, ladder)

        logger.info("Running ffmpeg for %s", input_path.name, extra={"renditions": [r.name for r in ladder]})
        try:
            process = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise EncoderError(f"Failed to start {self.ffmpeg_path}: {e}") from e

        if process.returncode != 0:
            stderr_tail = (process.stderr or "")[-STDERR_TAIL_CHARS:]
            raise EncoderError(
                f"ffmpeg exited with code {process.returncode}",
                returncode=process.returncode,
                stderr=stderr_tail,
            )

        return collect_segments(output_dir, ladder)
