import math
from collections.abc import Mapping

from app.pipeline.models import Stage
from app.pipeline.stages import FORWARD_ORDER

_MAX_PROGRESS = 100


class ProgressMapper:
    """Maps (stage, fraction within stage) onto a single 0-100 progress value.

    The upload range comes first, then every processing stage in forward
    order. Each owns the disjoint range ``[floor, floor + span]``.
    """

    def __init__(self, spans: Mapping[str, int], upload_complete_progress: int) -> None:
        self._spans: dict[Stage, int] = {}
        self._floors: dict[Stage, int] = {}
        floor = 0
        for stage in (Stage.UPLOADING, *FORWARD_ORDER[:-1]):
            span = spans.get(stage.value)
            if span is None:
                raise ValueError(f"Missing progress span for stage '{stage.value}'")
            if span < 1:
                raise ValueError(f"Progress span for '{stage.value}' must be positive")
            self._floors[stage] = floor
            self._spans[stage] = span
            floor += span
        if floor != _MAX_PROGRESS:
            raise ValueError(f"Progress spans must sum to {_MAX_PROGRESS}, got {floor}")
        self._floors[Stage.COMPLETED] = _MAX_PROGRESS
        self._spans[Stage.COMPLETED] = 0

        upload_cap = self._upload_cap()
        if not 0 <= upload_complete_progress <= upload_cap:
            raise ValueError(
                f"upload_complete_progress must be within [0, {upload_cap}], "
                f"got {upload_complete_progress}"
            )
        self._upload_complete_progress = upload_complete_progress

    @property
    def upload_complete_progress(self) -> int:
        return self._upload_complete_progress

    def floor(self, stage: Stage) -> int:
        return self._floors[self._require_known(stage)]

    def span(self, stage: Stage) -> int:
        return self._spans[self._require_known(stage)]

    def completion_floor(self, stage: Stage) -> int:
        """Progress value reached when ``stage`` finishes."""
        return self.floor(stage) + self.span(stage)

    def map(self, stage: Stage, fraction: float) -> int:
        """Return overall progress for ``fraction`` of ``stage`` done."""
        floor = self.floor(stage)
        span = self.span(stage)
        fraction = min(1.0, max(0.0, fraction))
        ceiling = floor + span
        if stage is Stage.UPLOADING:
            ceiling = self._upload_cap()
        progress = floor + _round_half_up(fraction * span)
        return min(ceiling, max(floor, progress))

    def _upload_cap(self) -> int:
        return self._floors[FORWARD_ORDER[0]] - 1

    def _require_known(self, stage: Stage) -> Stage:
        if stage not in self._floors:
            raise ValueError(f"Stage '{stage.value}' has no progress range")
        return stage


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
