"""Renders a structured compliance report as a Markdown document."""

import posixpath
import re

from app.analysis.models import StructuredReport

_MARKDOWN_SPECIAL = re.compile(r"([\\`*_{}\[\]<>#|])")


def escape_markdown(text: str | None) -> str:
    if not text:
        return ""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def render_markdown_report(
    report: StructuredReport,
    file_name: str,
    chart_refs: dict[str, str] | None = None,
    report_path: str | None = None,
) -> str:
    """Render ``report`` as Markdown.

    Args:
        report: The reviewed report.
        file_name: Name of the analysed dataset, shown in the header.
        chart_refs: Section index (as a string) to chart locator.
        report_path: Locator the Markdown will be stored at. When given,
            chart links are made relative to it.
    """
    chart_refs = chart_refs or {}
    meta = report.metadata
    lines = [
        f"# {escape_markdown(meta.title)}",
        "",
        f"**Subtitle:** {escape_markdown(meta.subtitle) or f'Analysis of {escape_markdown(file_name)}'}  ",
        f"**Author:** {escape_markdown(meta.author)}  ",
        f"**Generated:** {escape_markdown(meta.generated_date)}  ",
        f"**Analysed file:** {escape_markdown(file_name)}",
    ]

    if report.table_of_contents:
        lines += ["", "## Contents", ""]
        lines += [f"- {escape_markdown(entry)}" for entry in report.table_of_contents]

    intro = report.introduction
    lines += [
        "",
        "## Introduction",
        "",
        f"**Objective:** {escape_markdown(intro.objective)}",
        "",
        f"**Results summary:** {escape_markdown(intro.overall_results_summary)}",
        "",
        f"**Rules applied:** {escape_markdown(intro.used_norms_overview)}",
    ]

    for index, section in enumerate(report.sections):
        lines += ["", f"## {escape_markdown(section.title)}", "", section.content]
        if section.insights:
            lines += ["", "**Key insights:**", ""]
            lines += [f"- {escape_markdown(item)}" for item in section.insights]
        if section.relevant_norms_cited:
            lines += ["", "**Rules cited in this section:**", ""]
            lines += [f"- {escape_markdown(item)}" for item in section.relevant_norms_cited]
        chart_ref = chart_refs.get(str(index))
        if chart_ref:
            alt = escape_markdown(section.chart_suggestion or section.title)
            lines += ["", f"![{alt}]({_link(chart_ref, report_path)})"]

    if report.final_considerations:
        lines += ["", "## Final considerations", "", report.final_considerations]

    if report.bibliography:
        lines += ["", "## References", ""]
        for item in report.bibliography:
            text = escape_markdown(item.text)
            lines.append(f"- [{text}]({item.link})" if item.link else f"- {text}")

    return "\n".join(lines) + "\n"


def _link(target: str, report_path: str | None) -> str:
    if report_path is None:
        return target
    return posixpath.relpath(target, posixpath.dirname(report_path))
