import pytest
from vidforge.domain.scaling import adaptive_crf, clamp_offset, clip_duration, fit_within

@pytest.mark.parametrize("src, bound, even, expected", [
    ((1920, 1080), (400, 300), False, (400, 225)),
    ((1920, 1080), (1920, 1080), True, (1920, 1080)),
    ((3840, 2160), (1920, 1080), True, (1920, 1080)),
    ((1080, 1920), (1920, 1080), True, (608, 1080)),
    ((1920, 1080), (640, 480), True, (640, 360)),
    ((320, 240), (1920, 1080), False, (320, 240)),   # never upscale
    ((1001, 501), (1920, 1080), True, (1000, 500)),  # even for yuv420p
])
def test_fit_within(src, bound, even, expected):
    assert fit_within(*src, *bound, even=even) == expected

def test_fit_within_keeps_aspect_ratio():
    w, h = fit_within(2560, 1080, 1280, 720)
    assert w <= 1280 and h <= 720
    assert w / h == pytest.approx(2560 / 1080, rel=0.01)

def test_fit_within_rejects_bad_dimensions():
    with pytest.raises(ValueError):
        fit_within(0, 1080, 400, 300)

def test_adaptive_crf_large_inputs_get_more_compression():
    assert adaptive_crf(23, 1280, 720) == 23
    assert adaptive_crf(23, 1920, 1080) == 23
    assert adaptive_crf(23, 2560, 1440) == 24
    assert adaptive_crf(23, 7680, 4320) == 25
    assert adaptive_crf(50, 7680, 4320) == 51

@pytest.mark.parametrize("offset, duration, expected", [
    (1.0, 10.0, 1.0),
    (5.0, 3.0, 0.0),
    (3.0, 3.0, 0.0),
    (-1.0, 10.0, 0.0),
    (1.0, 0.0, 0.0),
])
def test_clamp_offset(offset, duration, expected):
    assert clamp_offset(offset, duration) == expected

def test_clip_duration():
    assert clip_duration(0.0, 10.0, 30.0) == 10.0
    assert clip_duration(0.0, 10.0, 3.0) == 3.0
    assert clip_duration(25.0, 10.0, 30.0) == 5.0
    assert clip_duration(0.0, 10.0, 0.0) == 10.0  # unknown source duration
