from typing import Tuple

FULL_HD_PIXELS = 1920 * 1080
UHD_PIXELS = 3840 * 2160
MAX_CRF = 51

def fit_within(width: int, height: int, max_width: int, max_height: int, even: bool = False) -> Tuple[int, int]:
    """Fits width x height inside max_width x max_height, keeping aspect ratio.

    Never upscales. With ``even=True`` both sides are rounded down to an even
    number, which libx264/libx265 require for yuv420p output.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid source dimensions {width}x{height}")

    scale = min(max_width / width, max_height / height, 1.0)
    out_w = max(1, round(width * scale))
    out_h = max(1, round(height * scale))

    if even:
        out_w = max(2, out_w - out_w % 2)
        out_h = max(2, out_h - out_h % 2)
    return out_w, out_h

def adaptive_crf(base_crf: int, width: int, height: int) -> int:
    """Large sources get slightly more compression."""
    pixels = width * height
    crf = base_crf
    if pixels > UHD_PIXELS:
        crf += 2
    elif pixels > FULL_HD_PIXELS:
        crf += 1
    return min(crf, MAX_CRF)

def clamp_offset(offset_seconds: float, duration_seconds: float) -> float:
    """Returns the offset when it lies inside [0, duration), otherwise 0."""
    if 0 <= offset_seconds < duration_seconds:
        return offset_seconds
    return 0.0

def clip_duration(start_seconds: float, requested_seconds: float, duration_seconds: float) -> float:
    """Clips a sub-clip length to what remains of the source after start."""
    if duration_seconds <= 0:
        return requested_seconds
    return max(0.0, min(requested_seconds, duration_seconds - start_seconds))
