from dataclasses import dataclass, replace


# A gesture reports cumulative magnification since it began; the scale moves
# by the ratio between consecutive reports and the reference resets on end.
@dataclass(frozen=True)
class Viewport:
    scale: float = 1.0
    last_scale_value: float = 1.0


def magnify_changed(viewport, value):
    if value <= 0:
        raise ValueError(f"Magnification must be positive, got {value}")
    delta = value / viewport.last_scale_value
    return Viewport(scale=viewport.scale * delta, last_scale_value=value)


def magnify_ended(viewport):
    return replace(viewport, last_scale_value=1.0)


def framed_size(viewport, size):
    width, height = size
    return width * viewport.scale, height * viewport.scale
