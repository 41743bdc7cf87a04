"""
Audio splitting

Plans segment boundaries for a source and cuts the segment files. Segment
boundaries always come from the probed duration, never from an estimate.
"""

import asyncio
import math
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

import ffmpeg

from transcriber.core.errors import ExternalServiceError, ValidationError
from transcriber.core.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".mp3", ".mp4", ".wav", ".m4a", ".aac", ".ogg", ".flac", ".webm")

# Float tolerance when checking that segments tile the source
EPSILON = 1e-6


@dataclass(frozen=True)
class SegmentSpec:
    index: int
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


def plan_segments(duration: float, segment_seconds: float) -> list[SegmentSpec]:
    """Contiguous, non-overlapping segments covering [0, duration)"""
    if duration is None or not math.isfinite(duration) or duration <= 0:
        raise ValidationError("Source duration must be a positive number of seconds")
    if segment_seconds <= 0:
        raise ValidationError("Segment duration must be positive")

    count = max(1, math.ceil(duration / segment_seconds - EPSILON))
    specs = []
    for index in range(count):
        start = index * segment_seconds
        end = duration if index == count - 1 else (index + 1) * segment_seconds
        specs.append(SegmentSpec(index=index, start_time=float(start), end_time=float(end)))
    return specs


def validate_partition(specs: Sequence[SegmentSpec], duration: float) -> None:
    if not specs:
        raise ValidationError("A task needs at least one segment")
    ordered = sorted(specs, key=lambda s: s.start_time)
    if abs(ordered[0].start_time) > EPSILON:
        raise ValidationError("First segment must start at 0")
    for previous, current in zip(ordered, ordered[1:]):
        if abs(current.start_time - previous.end_time) > EPSILON:
            raise ValidationError(
                f"Segments must be contiguous: {previous.end_time} != {current.start_time}"
            )
    for spec in ordered:
        if not 0 <= spec.start_time < spec.end_time:
            raise ValidationError(f"Invalid segment range {spec.start_time}-{spec.end_time}")
    if abs(ordered[-1].end_time - duration) > EPSILON:
        raise ValidationError("Segments must cover the whole source")


class AudioSplitter(ABC):
    @abstractmethod
    async def probe_duration(self, source: str) -> float:
        """Duration of the source in seconds"""

    @abstractmethod
    async def split(self, source: str, specs: Sequence[SegmentSpec], output_dir: str) -> list[str]:
        """Write one file per spec, returning their paths in spec order"""


class FfmpegSplitter(AudioSplitter):
    """Cuts segments with ffmpeg stream copy, so no re-encoding happens"""

    async def probe_duration(self, source: str) -> float:
        try:
            info = await asyncio.to_thread(ffmpeg.probe, source)
        except ffmpeg.Error as e:
            raise ValidationError(f"Could not read media file: {_stderr(e)}") from e
        try:
            return float(info["format"]["duration"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Media file has no duration") from None

    async def split(self, source: str, specs: Sequence[SegmentSpec], output_dir: str) -> list[str]:
        os.makedirs(output_dir, exist_ok=True)
        extension = os.path.splitext(source)[1].lower() or ".mp3"
        paths = []
        for spec in specs:
            path = os.path.join(output_dir, f"segment_{spec.index:04d}{extension}")
            await asyncio.to_thread(self._cut, source, spec, path)
            paths.append(path)
        logger.info(f"Split {source} into {len(paths)} segment(s)")
        return paths

    @staticmethod
    def _cut(source: str, spec: SegmentSpec, path: str) -> None:
        try:
            (
                ffmpeg
                .input(source, ss=spec.start_time, t=spec.duration)
                .output(path, acodec="copy", vn=None)
                .overwrite_output()
                .run(quiet=True)
            )
        except ffmpeg.Error as e:
            raise ExternalServiceError("ffmpeg", f"Failed to cut segment {spec.index}: {_stderr(e)}") from e


def _stderr(error: "ffmpeg.Error") -> str:
    return error.stderr.decode(errors="replace").strip() if error.stderr else str(error)
