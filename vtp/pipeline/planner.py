"""Rendition planning: which quality tiers to produce and at what size.

The first tier of the table is the guaranteed fallback and is always planned.
Every other tier is dropped when the source is smaller than the tier in either
dimension, so nothing is upscaled. Planned dimensions keep the source aspect
ratio: sources wider than 16:9 hold the tier width, all others hold the tier
height.
"""

import math
from typing import List, Optional, Sequence

from vtp.config.models import default_tiers
from vtp.domain.errors import PlanningError
from vtp.domain.models import PlannedRendition, QualityTier, VideoInfo

WIDESCREEN = 16 / 9


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fit_dimensions(tier: QualityTier, source_width: int, source_height: int) -> tuple:
    aspect_ratio = source_width / source_height
    if aspect_ratio > WIDESCREEN:
        return tier.width, _round_half_up(tier.width / aspect_ratio)
    return _round_half_up(tier.height * aspect_ratio), tier.height


def plan(video_info: VideoInfo, tiers: Optional[Sequence[QualityTier]] = None) -> List[PlannedRendition]:
    tiers = list(tiers) if tiers is not None else default_tiers()
    if not tiers:
        raise PlanningError("No quality tiers configured")

    planned: List[PlannedRendition] = []
    for index, tier in enumerate(tiers):
        if not video_info.has_dimensions:
            # Unknown source size: nominal dimensions, nothing skipped
            planned.append(PlannedRendition(tier=tier, width=tier.width, height=tier.height))
            continue

        src_w, src_h = video_info.width, video_info.height
        if index > 0 and (src_w < tier.width or src_h < tier.height):
            continue

        width, height = fit_dimensions(tier, src_w, src_h)
        planned.append(PlannedRendition(tier=tier, width=width, height=height))

    return planned
