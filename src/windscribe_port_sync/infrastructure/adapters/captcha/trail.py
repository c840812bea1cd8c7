from __future__ import annotations

import random

MIN_SAMPLES = 10
# One recorded sample per ~8px of travel, like the provider's own slider widget
PIXELS_PER_SAMPLE = 8


def generate_trail(target: int, rng: random.Random | None = None) -> tuple[tuple[int, int], ...]:
    """Synthesizes a pointer trail dragging the slider from 0 to ``target``.

    Progress follows a quadratic ease-out so the pointer decelerates near the
    target. Each sample gets a little jitter (x within +-2px, y within +-4px), x is
    clamped to ``[0, target]`` and the last sample is pinned to ``(target, 0)``.
    Pass a seeded ``rng`` to get a reproducible trail.
    """
    rng = rng or random.Random()
    target = max(0, target)
    count = max(MIN_SAMPLES, target // PIXELS_PER_SAMPLE)

    points: list[tuple[int, int]] = []
    for i in range(1, count + 1):
        progress = (i - 1) / (count - 1)
        eased = 1 - (1 - progress) ** 2
        jitter_x = round((rng.random() - 0.5) * 3)
        jitter_y = round((rng.random() - 0.5) * 8)
        x = min(target, max(0, round(target * eased) + jitter_x))
        points.append((x, jitter_y))

    points[-1] = (target, 0)
    return tuple(points)
