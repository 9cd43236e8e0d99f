from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReportMetadata:
    """Title block of a compliance report."""

    title: str
    author: str
    generated_date: str
    subtitle: str | None = None


@dataclass(frozen=True)
class ReportIntroduction:
    """Opening section of a compliance report."""

    objective: str
    overall_results_summary: str
    used_norms_overview: str


@dataclass(frozen=True)
class ReportSection:
    """A single analysis section, optionally asking for a chart."""

    title: str
    content: str
    insights: list[str] = field(default_factory=list)
    relevant_norms_cited: list[str] = field(default_factory=list)
    chart_suggestion: str | None = None


@dataclass(frozen=True)
class BibliographyItem:
    """A cited reference."""

    text: str
    link: str | None = None


@dataclass(frozen=True)
class StructuredReport:
    """Output of the compliance assessment and review stages."""

    metadata: ReportMetadata
    introduction: ReportIntroduction
    sections: list[ReportSection] = field(default_factory=list)
    final_considerations: str = ""
    table_of_contents: list[str] = field(default_factory=list)
    bibliography: list[BibliographyItem] = field(default_factory=list)


@dataclass(frozen=True)
class ChartSpec:
    """Data for a single chart suggested by a report section."""

    chart_type: str
    title: str
    labels: list[str]
    values: list[float]
    unit: str = ""
    threshold: float | None = None
