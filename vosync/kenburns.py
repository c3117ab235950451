"""Ken Burns motion for still images (ffmpeg zoompan)."""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30
MIN_STILL_DURATION = 1.0
FALLBACK_STILL_DURATION = 3.0


class MotionType(str, Enum):
    NONE = "None"
    SLOW_ZOOM_IN = "SlowZoomIn"
    SLOW_ZOOM_OUT = "SlowZoomOut"
    PAN_LEFT_TO_RIGHT = "PanLeftToRight"
    PAN_RIGHT_TO_LEFT = "PanRightToLeft"
    PAN_TOP_TO_BOTTOM = "PanTopToBottom"
    PAN_BOTTOM_TO_TOP = "PanBottomToTop"
    DIAGONAL_ZOOM_IN = "DiagonalZoomIn"
    DIAGONAL_ZOOM_OUT = "DiagonalZoomOut"
    RANDOM = "Random"


RANDOM_CHOICES = (
    MotionType.SLOW_ZOOM_IN,
    MotionType.SLOW_ZOOM_OUT,
    MotionType.PAN_LEFT_TO_RIGHT,
    MotionType.PAN_RIGHT_TO_LEFT,
    MotionType.DIAGONAL_ZOOM_IN,
    MotionType.DIAGONAL_ZOOM_OUT,
)


@dataclass(frozen=True)
class MotionParams:
    """Zoom in percent (100 = no zoom) and focus point in percent of the frame."""
    start_scale: float = 100.0
    end_scale: float = 100.0
    start_x: float = 50.0
    start_y: float = 50.0
    end_x: float = 50.0
    end_y: float = 50.0


_MOTIONS = {
    MotionType.NONE: MotionParams(),
    MotionType.SLOW_ZOOM_IN: MotionParams(100, 115),
    MotionType.SLOW_ZOOM_OUT: MotionParams(115, 100),
    MotionType.PAN_LEFT_TO_RIGHT: MotionParams(135, 135, 40, 50, 60, 50),
    MotionType.PAN_RIGHT_TO_LEFT: MotionParams(135, 135, 60, 50, 40, 50),
    MotionType.PAN_TOP_TO_BOTTOM: MotionParams(135, 135, 50, 40, 50, 60),
    MotionType.PAN_BOTTOM_TO_TOP: MotionParams(135, 135, 50, 60, 50, 40),
    MotionType.DIAGONAL_ZOOM_IN: MotionParams(100, 135, 50, 50, 40, 40),
    MotionType.DIAGONAL_ZOOM_OUT: MotionParams(135, 100, 60, 60, 50, 50),
}


def resolve_motion(motion: MotionType, rng: Optional[random.Random] = None) -> MotionType:
    """Replaces RANDOM with a concrete motion drawn from `rng`."""
    if motion != MotionType.RANDOM:
        return motion
    return (rng or random.Random()).choice(RANDOM_CHOICES)


def configure_motion(motion: MotionType) -> MotionParams:
    """Start and end parameters for a concrete motion type."""
    if motion == MotionType.RANDOM:
        raise ValueError("Resolve RANDOM with resolve_motion() before configuring it")
    return _MOTIONS.get(motion, MotionParams())


def frame_count(duration: float, fps: int = DEFAULT_FPS) -> int:
    return max(2, int(round(duration * fps)))


def still_duration(duration: float) -> float:
    """Stills shorter than a second are rendered for three."""
    return FALLBACK_STILL_DURATION if duration < MIN_STILL_DURATION else duration


def _num(value: float) -> str:
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


def build_zoompan_filter(
    duration: float,
    motion: MotionType,
    width: int,
    height: int,
    fps: int = DEFAULT_FPS,
    vignette: bool = False
) -> str:
    """
    Builds the -vf chain: upscale, zoompan, downscale, optional vignette.

    Progress runs from 0 on the first frame to 1 on the last, so the motion
    ends exactly on the requested frame count.
    """
    params = configure_motion(motion)
    d = frame_count(duration, fps)

    z0, z1 = params.start_scale / 100.0, params.end_scale / 100.0
    x0, x1 = params.start_x / 100.0, params.end_x / 100.0
    y0, y1 = params.start_y / 100.0, params.end_y / 100.0
    t = f"max(0,on-1)/{d - 1}"
    z_expr = f"{_num(z0)}+({_num(z1)}-{_num(z0)})*{t}"

    scale_up = "scale=-2:6*ih:flags=fast_bilinear"
    scale_down = f"scale={width}:{height}:flags=fast_bilinear"
    tail = f":d={d}:s={width}x{height},{scale_down}"
    if vignette:
        tail += ",format=yuv420p,vignette=PI/6:aspect=1"

    if motion in (MotionType.SLOW_ZOOM_IN, MotionType.SLOW_ZOOM_OUT):
        zoompan = f"zoompan=z='{z_expr}':x='iw/2-iw/zoom/2':y='ih/2-ih/zoom/2'"
    elif motion in (MotionType.PAN_LEFT_TO_RIGHT, MotionType.PAN_RIGHT_TO_LEFT):
        zoompan = (f"zoompan=z='{_num(z0)}'"
                   f":x='iw*({_num(x0)}+({_num(x1)}-{_num(x0)})*{t})-iw/{_num(z0)}/2'"
                   f":y='ih*{_num(y0)}-ih/{_num(z0)}/2'")
    elif motion in (MotionType.PAN_TOP_TO_BOTTOM, MotionType.PAN_BOTTOM_TO_TOP):
        zoompan = (f"zoompan=z='{_num(z0)}'"
                   f":x='iw*{_num(x0)}-iw/{_num(z0)}/2'"
                   f":y='ih*({_num(y0)}+({_num(y1)}-{_num(y0)})*{t})-ih/{_num(z0)}/2'")
    elif motion in (MotionType.DIAGONAL_ZOOM_IN, MotionType.DIAGONAL_ZOOM_OUT):
        zoompan = (f"zoompan=z='{z_expr}'"
                   f":x='iw*({_num(x0)}+({_num(x1)}-{_num(x0)})*{t})-iw/zoom/2'"
                   f":y='ih*({_num(y0)}+({_num(y1)}-{_num(y0)})*{t})-ih/zoom/2'")
    else:
        zoompan = f"zoompan=z='{_num(z0)}':x='iw*{_num(x0)}-iw/zoom/2':y='ih*{_num(y0)}-ih/zoom/2'"

    return f"{scale_up},{zoompan}{tail}"
