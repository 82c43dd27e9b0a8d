from sourcelab.core.transform import (
    MAX_SCALE, MIN_SCALE, clamp_scale, reset_zoom, to_device_space, to_image_space, zoom_in, zoom_out,
)


def test_to_image_space_divides_by_scale():
    assert to_image_space((300, 150), 1.5) == (200, 100)
    assert to_image_space((300, 150), 1.0) == (300, 150)
    # repeated calls are stable
    assert to_image_space((300, 150), 1.5) == to_image_space((300, 150), 1.5)


def test_device_space_is_inverse():
    x, y = to_device_space(to_image_space((123.0, 45.0), 2.0), 2.0)
    assert abs(x - 123.0) < 1e-9 and abs(y - 45.0) < 1e-9


def test_zoom_steps():
    assert zoom_in(1.0) == 1.2
    assert zoom_out(1.0) == 0.8
    assert reset_zoom() == 1.0


def test_zoom_in_saturates_at_max():
    s = 1.0
    for _ in range(20):
        s = zoom_in(s)
    assert s == MAX_SCALE
    assert zoom_in(MAX_SCALE) == MAX_SCALE


def test_zoom_out_saturates_at_min():
    s = 1.0
    for _ in range(20):
        s = zoom_out(s)
    assert s == MIN_SCALE
    assert zoom_out(MIN_SCALE) == MIN_SCALE


def test_out_of_range_scales_are_clamped():
    assert clamp_scale(10) == MAX_SCALE
    assert clamp_scale(0.01) == MIN_SCALE
    assert to_image_space((100, 100), 10) == (100 / MAX_SCALE, 100 / MAX_SCALE)
