from __future__ import annotations

from itinerary.models.activity import Congestion


# live/static ratio thresholds, in percent
HIGH_RATIO_PCT = 130
MODERATE_RATIO_PCT = 110


def classify_congestion(live_s: int | float | None, static_s: int | float | None) -> Congestion:
    """Tag a leg by how much slower it is than its traffic-free baseline.

    Missing baseline (or live) data is reported as ``LOW``.
    """
    if live_s is None or not static_s or static_s <= 0:
        return Congestion.LOW
    # rounding keeps 1300/1000 exactly on the HIGH boundary
    ratio_pct = float(live_s) * 100.0 / float(static_s)
    if round(ratio_pct, 6) >= HIGH_RATIO_PCT:
        return Congestion.HIGH
    if round(ratio_pct, 6) > MODERATE_RATIO_PCT:
        return Congestion.MODERATE
    return Congestion.LOW
