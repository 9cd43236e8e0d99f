"""AI-powered compliance analysis agent."""

import json
from dataclasses import asdict
from pathlib import Path

from app.analysis.client_base import BaseAnalysisClient
from app.analysis.exceptions import AnalysisError
from app.analysis.models import ChartSpec, ReportSection, StructuredReport
from app.analysis.prompt_loader import load_json_schema, load_prompt_template
from app.analysis.validator import (
    validate_and_build_report,
    validate_chart_spec,
    validate_rules,
    validate_summary,
)
from app.logging.logger import Log

_SYSTEM_PROMPT = (
    "You are a regulatory compliance analyst for power quality measurements. "
    "Answer with a single JSON object and nothing else."
)

# Template name -> schema name sent to the provider.
_TEMPLATES: dict[str, str] = {
    "summarize": "chunk_summary",
    "identify_rules": "identified_rules",
    "assess_compliance": "compliance_report",
    "review_report": "reviewed_report",
    "chart_spec": "chart_spec",
}


class ComplianceAgent:
    """Runs the AI steps of the compliance pipeline through an analysis client."""

    def __init__(
        self,
        *,
        client: BaseAnalysisClient,
        model: str,
        temperature: float = 0.0,
        prompt_dir: Path | None = None,
        system_prompt: str = _SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = max(0.0, min(1.0, temperature))
        self._system_prompt = system_prompt
        self._templates: dict[str, str] = {}
        self._schemas: dict[str, str] = {}
        for name in _TEMPLATES:
            self._templates[name] = load_prompt_template(name, prompt_dir)
            self._schemas[name] = load_json_schema(name, prompt_dir)

    async def summarize_chunk(self, chunk_text: str, language_code: str) -> str:
        """Summarize one chunk of the uploaded data."""
        parsed = await self._run(
            "summarize", chunk_text=chunk_text, language_code=language_code
        )
        summary = validate_summary(parsed)
        Log.info(f"Chunk summarized: {len(summary)} characters")
        return summary

    async def identify_rules(self, summary_text: str, language_code: str) -> list[str]:
        """Identify the regulatory rules applicable to the summarized data."""
        parsed = await self._run(
            "identify_rules", summary_text=summary_text, language_code=language_code
        )
        rules = validate_rules(parsed)
        Log.info(f"Rules identified: {len(rules)}")
        return rules

    async def assess_compliance(
        self,
        summary_text: str,
        identified_rules: list[str],
        file_name: str,
        language_code: str,
    ) -> StructuredReport:
        """Produce the structured compliance report."""
        parsed = await self._run(
            "assess_compliance",
            summary_text=summary_text,
            identified_rules="\n".join(f"- {rule}" for rule in identified_rules),
            file_name=file_name,
            language_code=language_code,
        )
        report = validate_and_build_report(parsed)
        Log.info(f"Compliance assessed: {len(report.sections)} sections")
        return report

    async def review_report(
        self, report: StructuredReport, language_code: str
    ) -> StructuredReport:
        """Ask the AI to review and correct a structured report."""
        parsed = await self._run(
            "review_report",
            report_json=json.dumps(asdict(report), ensure_ascii=False, indent=2),
            language_code=language_code,
        )
        return validate_and_build_report(parsed)

    async def design_chart(
        self, section: ReportSection, summary_text: str, language_code: str
    ) -> ChartSpec:
        """Turn a section's chart suggestion into plottable data."""
        parsed = await self._run(
            "chart_spec",
            section_title=section.title,
            chart_suggestion=section.chart_suggestion or "",
            summary_text=summary_text,
            language_code=language_code,
        )
        return validate_chart_spec(parsed)

    async def _run(self, template: str, **values: str) -> dict[str, object]:
        prompt = self._templates[template].format(
            json_schema=self._schemas[template], **values
        )
        Log.debug(f"{template} prompt:\n{prompt}")

        raw_response = await self._client.create_chat_completion(
            model=self._model,
            temperature=self._temperature,
            system_prompt=self._system_prompt,
            user_prompt=prompt,
            schema_name=_TEMPLATES[template],
            json_schema=json.loads(self._schemas[template]),
        )
        Log.debug(f"AI raw response:\n{raw_response}")
        return self._parse_json(raw_response)

    @staticmethod
    def _parse_json(raw: str) -> dict[str, object]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise AnalysisError(f"Invalid JSON response: {exc}") from exc

        if not isinstance(parsed, dict):
            raise AnalysisError("JSON response must be an object")
        return parsed
