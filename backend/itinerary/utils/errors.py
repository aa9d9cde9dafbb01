from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class AppError(Exception):
    message: str
    error_code: str = "APP_ERROR"
    status_code: int = 400
    details: Any = None
    stage: str = "API"

    def __str__(self) -> str:
        return self.message


class ActivityNotFoundError(AppError):
    def __init__(self, activity_id: str, *, day_offset: int | None = None) -> None:
        details: dict[str, Any] = {"activity_id": activity_id}
        if day_offset is not None:
            details["day_offset"] = day_offset
        super().__init__(
            message=f"Activity not found: {activity_id}",
            error_code="ACTIVITY_NOT_FOUND",
            status_code=404,
            details=details,
            stage="SCHEDULE",
        )


class WaypointResolutionError(AppError):
    def __init__(self, titles: list[str]) -> None:
        joined = ", ".join(titles)
        super().__init__(
            message=(
                "Cannot optimize route. The following items lack location data "
                f"(Place ID or Coordinates): {joined}"
            ),
            error_code="WAYPOINT_UNRESOLVABLE",
            status_code=400,
            details={"activities": titles},
            stage="OPTIMIZE",
        )
        self.titles = titles
