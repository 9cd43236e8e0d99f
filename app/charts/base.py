from abc import ABC, abstractmethod

from app.analysis.models import ChartSpec


class BaseChartRenderer(ABC):
    """Contract for chart rendering adapters."""

    content_type: str = "image/png"

    @abstractmethod
    def render(self, spec: ChartSpec) -> bytes:
        """Render ``spec`` into image bytes of ``content_type``.

        Raises:
            ChartRenderError: if rendering fails.
        """
