from io import BytesIO

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend

from matplotlib.figure import Figure  # noqa: E402

from app.analysis.models import ChartSpec  # noqa: E402
from app.charts.base import BaseChartRenderer  # noqa: E402
from app.pipeline.exceptions import ExecutorError  # noqa: E402


class ChartRenderError(ExecutorError):
    """Raised when a chart cannot be rendered."""


class MatplotlibChartRenderer(BaseChartRenderer):
    """Renders bar and line charts to PNG with matplotlib.

    Figures are built without pyplot so rendering is safe off the event loop.
    """

    def __init__(self, width: float = 10.0, height: float = 5.0, dpi: int = 150) -> None:
        self._figsize = (width, height)
        self._dpi = dpi

    def render(self, spec: ChartSpec) -> bytes:
        fig = Figure(figsize=self._figsize, dpi=self._dpi)
        ax = fig.subplots()
        positions = list(range(len(spec.labels)))
        try:
            if spec.chart_type == "line":
                ax.plot(positions, spec.values, marker="o", color="#1f77b4")
            elif spec.chart_type == "bar":
                ax.bar(positions, spec.values, color="#1f77b4")
            else:
                raise ChartRenderError(f"Unsupported chart type '{spec.chart_type}'")

            if spec.threshold is not None:
                ax.axhline(
                    spec.threshold,
                    color="#d62728",
                    linestyle="--",
                    linewidth=1.5,
                    label=f"Limit ({spec.threshold:g}{' ' + spec.unit if spec.unit else ''})",
                )
                ax.legend(loc="best")

            ax.set_xticks(positions)
            ax.set_xticklabels(spec.labels, rotation=45, ha="right")
            ax.set_title(spec.title, fontweight="bold")
            if spec.unit:
                ax.set_ylabel(spec.unit)
            ax.grid(axis="y", alpha=0.3)
            fig.tight_layout()

            buffer = BytesIO()
            fig.savefig(buffer, format="png", facecolor="white", edgecolor="none")
        except ChartRenderError:
            raise
        except (ValueError, TypeError, RuntimeError) as exc:
            raise ChartRenderError(f"Failed to render chart '{spec.title}': {exc}") from exc
        return buffer.getvalue()
