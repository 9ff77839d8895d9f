"""
Compression strategy tables.

Every table is ordered from the highest to the lowest expected output size,
except the fixed 100kbps last row of the bitrate ladder.
The compressors stop at the first row whose output fits the size ceiling,
so reordering a table changes which quality level gets picked.
"""

from dataclasses import dataclass
from typing import Optional

QUALITY_CRF = "crf"
QUALITY_BITRATE = "bitrate"

# Bitrate ladder constants
BITRATE_FLOOR = 100000  # 100kbps last tier
BITRATE_DIVISORS = [1, 2, 3, 4, 6]
BITRATE_SCALES = ["", "scale=iw*0.8:ih*0.8", "scale=iw*0.6:ih*0.6", "scale=iw*0.5:ih*0.5",
                  "scale=iw*0.4:ih*0.4", "scale=iw*0.3:ih*0.3"]
BITRATE_FPS = ["", "fps=30", "fps=24", "fps=20", "fps=15", "fps=10"]


@dataclass(frozen=True)
class StrategyDescriptor:
    """One row of a strategy table"""
    codec: Optional[str]
    preset: Optional[str]
    quality: str
    quality_mode: str = QUALITY_CRF
    scale: str = ""
    fps: str = ""
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    audio_rate: int = 44100
    audio_channels: Optional[int] = None
    description: str = ""

    @property
    def is_audio_only(self):
        return self.codec is None

    def filter_chain(self):
        """Scale filter then fps filter, comma-joined"""
        return ",".join(f for f in (self.scale, self.fps) if f)

    def output_options(self):
        """Build the ffmpeg-python output options for this strategy"""
        options = {}
        if self.is_audio_only:
            options['vn'] = None
        else:
            options['vcodec'] = self.codec
            if self.quality_mode == QUALITY_BITRATE:
                bitrate = int(self.quality)
                options['video_bitrate'] = str(bitrate)
                options['maxrate'] = str(bitrate * 2)
                options['bufsize'] = str(bitrate * 4)
            else:
                options['crf'] = self.quality
            if self.preset:
                options['preset'] = self.preset
            filters = self.filter_chain()
            if filters:
                options['vf'] = filters

        options['acodec'] = self.audio_codec
        options['audio_bitrate'] = self.audio_bitrate
        options['ar'] = str(self.audio_rate)
        if self.audio_channels:
            options['ac'] = str(self.audio_channels)
        return options


def _audio(bitrate, rate, channels, description):
    return StrategyDescriptor(
        codec=None,
        preset=None,
        quality=bitrate,
        quality_mode=QUALITY_BITRATE,
        audio_codec="libmp3lame",
        audio_bitrate=bitrate,
        audio_rate=rate,
        audio_channels=channels,
        description=description,
    )


def _video(preset, crf, scale, fps, audio_bitrate, audio_rate, description):
    return StrategyDescriptor(
        codec="libx264",
        preset=preset,
        quality=crf,
        scale=scale,
        fps=fps,
        audio_bitrate=audio_bitrate,
        audio_rate=audio_rate,
        description=description,
    )


AUDIO_STRATEGIES = [
    _audio("128k", 44100, 2, "128kbps stereo"),
    _audio("96k", 44100, 2, "96kbps stereo"),
    _audio("64k", 22050, 2, "64kbps stereo"),
    _audio("48k", 22050, 2, "48kbps stereo"),
    _audio("32k", 22050, 1, "32kbps mono"),
    _audio("24k", 16000, 1, "24kbps mono"),
    _audio("16k", 11025, 1, "16kbps mono"),
]

RESOLUTION_STRATEGIES = [
    # Full resolution
    _video("fast", "23", "", "fps=30", "128k", 44100, "Full resolution, 30fps"),
    _video("fast", "25", "", "fps=30", "96k", 44100, "Full resolution, good quality"),
    # 720p
    _video("fast", "23", "scale=1280:720", "fps=30", "96k", 44100, "720p, 30fps"),
    _video("fast", "25", "scale=1280:720", "fps=30", "64k", 22050, "720p, standard quality"),
    # 540p
    _video("fast", "23", "scale=960:540", "fps=30", "64k", 22050, "540p, 30fps"),
    _video("fast", "25", "scale=960:540", "fps=24", "48k", 22050, "540p, 24fps"),
    # 480p
    _video("fast", "23", "scale=854:480", "fps=30", "48k", 22050, "480p, 30fps"),
    _video("fast", "25", "scale=854:480", "fps=24", "48k", 22050, "480p, 24fps"),
    # 360p
    _video("fast", "23", "scale=640:360", "fps=24", "32k", 22050, "360p, 24fps"),
    _video("fast", "25", "scale=640:360", "fps=20", "32k", 22050, "360p, 20fps"),
    # 240p, last resort
    _video("veryfast", "25", "scale=426:240", "fps=20", "32k", 22050, "240p, 20fps"),
    _video("veryfast", "27", "scale=426:240", "fps=15", "24k", 16000, "240p, 15fps"),
]

FALLBACK_VIDEO_STRATEGY = _video("veryfast", "40", "scale=iw*0.5:ih*0.5", "fps=15", "32k", 22050,
                                 "Fallback half resolution, 15fps")


def bitrate_ladder(target_bitrate):
    """
    Build the bitrate-based strategies for a starting target bitrate (bits/sec).

    Each tier lowers the bitrate and pairs it with a smaller scale and frame rate.
    The last tier is a fixed 100kbps row whatever the target was.
    """
    target_bitrate = int(target_bitrate)
    bitrates = [target_bitrate // d for d in BITRATE_DIVISORS] + [BITRATE_FLOOR]

    ladder = []
    for i, bitrate in enumerate(bitrates):
        ladder.append(StrategyDescriptor(
            codec="libx264",
            preset="veryfast",
            quality=str(bitrate),
            quality_mode=QUALITY_BITRATE,
            scale=BITRATE_SCALES[i],
            fps=BITRATE_FPS[i],
            audio_bitrate="64k" if i == 0 else "32k",
            audio_rate=22050,
            description=f"{bitrate // 1000}kbps",
        ))
    return ladder
