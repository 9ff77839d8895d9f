"""
Size-constrained compression of clips before they are sent to Discord.

Audio goes through a single table of MP3 settings. Video first probes the
duration to derive a target bitrate:

* no duration: one fixed low quality encode (fallback compression)
* target bitrate below MIN_CRF_BITRATE: bitrate ladder only
* otherwise: resolution/CRF ladder, then the bitrate ladder at half the
  target bitrate if nothing fit

Every attempt writes its own temp file next to the source. The first attempt
that fits is renamed to <stem>_compressed.<ext>, every other attempt file is
removed. The source file is never modified.
"""

import logging
import os
from dataclasses import dataclass

import config_helper
from errors import CompressionError, CompressionExhausted, EncodeError, ProbeError
from ffmpeg_helper import FFmpegEncoder, FFprobeDurationProber
from file_helper import (BITRATE_MARKER, COMPRESSED_SUFFIX, TEMP_MARKER, output_path_for,
                         safe_remove, safe_rename)
from progress import STAGE_COMPRESSION, ProgressReporter
from strategies import (AUDIO_STRATEGIES, FALLBACK_VIDEO_STRATEGY, RESOLUTION_STRATEGIES,
                        bitrate_ladder)

logger = logging.getLogger(__name__)

KIND_AUDIO = "audio"
KIND_VIDEO = "video"

AUDIO_EXTENSION = ".mp3"
VIDEO_EXTENSION = ".mp4"

# Share of the ceiling given to the video stream, the rest is audio and container overhead
VIDEO_SIZE_SHARE = 0.8
# Below this target (bits/sec) CRF encoding cannot reliably hit the ceiling
MIN_CRF_BITRATE = 300000


@dataclass(frozen=True)
class CompressionTarget:
    source_path: str
    max_size_bytes: int
    kind: str = KIND_VIDEO

    def __post_init__(self):
        if self.max_size_bytes <= 0:
            raise ValueError(f"max_size_bytes must be positive, got {self.max_size_bytes}")
        if self.kind not in (KIND_AUDIO, KIND_VIDEO):
            raise ValueError(f"Unknown media kind: {self.kind}")

    @property
    def is_audio(self):
        return self.kind == KIND_AUDIO


def derive_target_bitrate(max_size_bytes, duration):
    """Video bitrate (bits/sec) that fills VIDEO_SIZE_SHARE of the ceiling over duration"""
    return int(max_size_bytes * VIDEO_SIZE_SHARE * 8 / duration)


class CompressionAttempt:
    """
    One strategy's temp output file.

    Used as a context manager: unless promote() moved the file to the final
    output path, it is deleted when the block exits, whatever the exit path.
    """

    def __init__(self, temp_path, strategy, index):
        self.temp_path = temp_path
        self.strategy = strategy
        self.index = index
        self.size = None
        self.promoted = False

    def __enter__(self):
        # A leftover file from an earlier run must not pass for this attempt's output
        safe_remove(self.temp_path)
        return self

    def __exit__(self, exc_type, exc_value, tb):
        if not self.promoted:
            safe_remove(self.temp_path)
        return False

    def measure(self):
        self.size = os.path.getsize(self.temp_path)
        return self.size

    def promote(self, output_path):
        if self.temp_path != output_path and not safe_rename(self.temp_path, output_path):
            raise CompressionError(f"Could not move {self.temp_path} to {output_path}")
        self.promoted = True
        return output_path


class MediaCompressor:
    def __init__(self, encoder=None, prober=None, reporter=None,
                 audio_strategies=None, resolution_strategies=None,
                 fallback_strategy=None, ladder_factory=bitrate_ladder):
        self.encoder = encoder or FFmpegEncoder()
        self.prober = prober or FFprobeDurationProber()
        self.reporter = reporter or ProgressReporter()
        self.audio_strategies = AUDIO_STRATEGIES if audio_strategies is None else audio_strategies
        self.resolution_strategies = (RESOLUTION_STRATEGIES if resolution_strategies is None
                                      else resolution_strategies)
        self.fallback_strategy = fallback_strategy or FALLBACK_VIDEO_STRATEGY
        self.ladder_factory = ladder_factory

    @classmethod
    def from_config(cls, config, progress_sink=None):
        timeout = config_helper.get_encode_timeout(config)
        return cls(
            encoder=FFmpegEncoder(timeout=timeout, threads=int(config.get('CPU_THREADS') or 0)),
            prober=FFprobeDurationProber(timeout=timeout),
            reporter=ProgressReporter(progress_sink),
        )

    def compress(self, target):
        """Compress target.source_path under target.max_size_bytes and return the output path"""
        if target.is_audio:
            return self.compress_audio(target.source_path, target.max_size_bytes)
        return self.compress_video(target.source_path, target.max_size_bytes)

    def compress_audio(self, source_path, max_size_bytes):
        output_path = output_path_for(source_path, COMPRESSED_SUFFIX, AUDIO_EXTENSION)

        attempt = self._run_ladder(source_path, output_path, self.audio_strategies,
                                   max_size_bytes, TEMP_MARKER, AUDIO_EXTENSION, "audio")
        if attempt is None:
            self._exhausted(source_path, "Could not compress audio to target size")

        logger.info("Audio compressed successfully with setting %d (%s), size: %d bytes",
                    attempt.index + 1, attempt.strategy.description, attempt.size)
        self._report_success(source_path, attempt)
        return output_path

    def compress_video(self, source_path, max_size_bytes):
        output_path = output_path_for(source_path, COMPRESSED_SUFFIX, VIDEO_EXTENSION)

        try:
            duration = self.prober.probe_duration(source_path)
        except ProbeError as e:
            logger.warning("Could not get video duration, using fallback compression: %s", e)
            return self.fallback_video_compression(source_path, output_path, max_size_bytes)

        target_bitrate = derive_target_bitrate(max_size_bytes, duration)
        logger.info("Video duration %.2fs, target bitrate %d bps for %d bytes",
                    duration, target_bitrate, max_size_bytes)

        if target_bitrate < MIN_CRF_BITRATE:
            logger.info("Target bitrate below %d bps, using bitrate-based compression", MIN_CRF_BITRATE)
            return self.compress_video_by_bitrate(source_path, output_path, target_bitrate, max_size_bytes)

        attempt = self._run_ladder(source_path, output_path, self.resolution_strategies,
                                   max_size_bytes, TEMP_MARKER, VIDEO_EXTENSION, "compression")
        if attempt is not None:
            logger.info("Video compressed successfully with %s, size: %d bytes",
                        attempt.strategy.description, attempt.size)
            self._report_success(source_path, attempt)
            return output_path

        logger.warning("All CRF-based strategies failed, trying bitrate-based compression")
        return self.compress_video_by_bitrate(source_path, output_path, target_bitrate // 2, max_size_bytes)

    def compress_video_by_bitrate(self, source_path, output_path, target_bitrate, max_size_bytes):
        """Last resort: explicit bitrates with shrinking resolution and frame rate"""
        strategies = self.ladder_factory(target_bitrate)

        attempt = self._run_ladder(source_path, output_path, strategies,
                                   max_size_bytes, BITRATE_MARKER, VIDEO_EXTENSION, "bitrate compression")
        if attempt is None:
            self._exhausted(source_path, "Could not compress video to target size")

        logger.info("Video compressed successfully with bitrate %s, size: %d bytes",
                    attempt.strategy.quality, attempt.size)
        self._report_success(source_path, attempt)
        return output_path

    def fallback_video_compression(self, source_path, output_path, max_size_bytes):
        """Single fixed low quality encode used when the duration is unknown"""
        strategy = self.fallback_strategy
        self.reporter.update(STAGE_COMPRESSION, 0.0, f"Trying {strategy.description} compression...")
        temp_path = output_path_for(source_path, f"{TEMP_MARKER}0", VIDEO_EXTENSION)

        with CompressionAttempt(temp_path, strategy, 0) as attempt:
            try:
                self.encoder.invoke(source_path, temp_path, strategy.output_options())
            except EncodeError as e:
                logger.error("Fallback compression error: %s", e)
                self._exhausted(source_path, "Fallback compression failed", cause=e)

            size = attempt.measure()
            if size > max_size_bytes:
                logger.warning("Fallback compression produced %d bytes, over the %d byte limit",
                               size, max_size_bytes)
                self._exhausted(source_path, "Fallback compression could not reach target size")

            self._promote(attempt, source_path, output_path)

        logger.info("Video compressed with fallback settings, size: %d bytes", attempt.size)
        self._report_success(source_path, attempt)
        return output_path

    def _run_ladder(self, source_path, output_path, strategies, max_size_bytes,
                    marker, extension, label):
        """Try strategies in order, returning the promoted attempt or None"""
        total = len(strategies)
        for i, strategy in enumerate(strategies):
            self.reporter.update(STAGE_COMPRESSION, i / total,
                                 f"Trying {strategy.description} {label}...")
            temp_path = output_path_for(source_path, f"{marker}{i}", extension)

            with CompressionAttempt(temp_path, strategy, i) as attempt:
                logger.info("Attempting %s with: %s", label, strategy.description)
                try:
                    self.encoder.invoke(source_path, temp_path, strategy.output_options())
                except EncodeError as e:
                    logger.warning("%s attempt %d failed: %s", label.capitalize(), i + 1, e)
                    continue

                size = attempt.measure()
                if size <= max_size_bytes:
                    self._promote(attempt, source_path, output_path)
                    return attempt

                logger.info("%s produced %d bytes, over the %d byte limit",
                            strategy.description, size, max_size_bytes)
        return None

    def _promote(self, attempt, source_path, output_path):
        try:
            return attempt.promote(output_path)
        except CompressionError as e:
            logger.error("Could not save compressed output of %s: %s", source_path, e)
            self.reporter.fail(STAGE_COMPRESSION, "Could not save compressed file", e)
            raise

    def _report_success(self, source_path, attempt):
        original_size = os.path.getsize(source_path)
        ratio = attempt.size / original_size * 100 if original_size else 100.0
        self.reporter.complete(
            STAGE_COMPRESSION,
            f"Compressed to {attempt.strategy.description} ({ratio:.1f}% of original size)")

    def _exhausted(self, source_path, message, cause=None):
        logger.error("%s: %s", message, source_path)
        self.reporter.fail(STAGE_COMPRESSION, message, f"{message}: {os.path.basename(source_path)}")
        raise CompressionExhausted(message) from cause


def compress_file(source_path, is_audio, max_size_bytes=None, config=None,
                  compressor=None, progress_sink=None):
    """
    Compress source_path to fit the configured size limit.

    Returns the path of the compressed file, raises CompressionExhausted when
    no strategy produced a small enough file.
    """
    if config is None and (max_size_bytes is None or compressor is None):
        config = config_helper.load_config()
    if max_size_bytes is None:
        max_size_bytes = config_helper.get_max_size_bytes(config)
    if compressor is None:
        compressor = MediaCompressor.from_config(config, progress_sink)

    target = CompressionTarget(str(source_path), max_size_bytes, KIND_AUDIO if is_audio else KIND_VIDEO)
    return compressor.compress(target)
