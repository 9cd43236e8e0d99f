"""Example analysis client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseAnalysisClient and register the provider in ComplianceAgentFactory.
"""

import json
from typing import ClassVar

from app.analysis.client_base import BaseAnalysisClient
from app.analysis.exceptions import AnalysisError

_EXAMPLE_REPORT: dict[str, object] = {
    "metadata": {
        "title": "Power Quality Compliance Report",
        "subtitle": None,
        "author": "Compliance Pipeline",
        "generated_date": "2024-01-01",
    },
    "introduction": {
        "objective": "Assess the submitted measurements against the applicable rules.",
        "overall_results_summary": "All measured indicators are within limits.",
        "used_norms_overview": "PRODIST Module 8.",
    },
    "sections": [
        {
            "title": "Steady-state voltage",
            "content": "Voltage stayed within the adequate range.",
            "insights": ["No transgressions recorded."],
            "relevant_norms_cited": ["PRODIST Module 8"],
            "chart_suggestion": "Voltage per phase over time",
        }
    ],
    "final_considerations": "No corrective action required.",
    "table_of_contents": ["Introduction", "Steady-state voltage"],
    "bibliography": [],
}


class ExampleClientAdapter(BaseAnalysisClient):
    """Example adapter that returns fixed valid responses for every stage schema.

    No network calls. Useful for local development, tests, and as a template
    for building real provider adapters (OpenAI, Anthropic, etc.).
    """

    DEFAULT_RESPONSES: ClassVar[dict[str, dict[str, object]]] = {
        "chunk_summary": {"summary": "Example summary of the data chunk."},
        "identified_rules": {"rules": ["PRODIST Module 8"]},
        "compliance_report": _EXAMPLE_REPORT,
        "reviewed_report": _EXAMPLE_REPORT,
        "chart_spec": {
            "chart_type": "bar",
            "title": "Example chart",
            "labels": ["A", "B", "C"],
            "values": [1.0, 2.0, 3.0],
            "unit": "",
            "threshold": None,
        },
    }

    def __init__(self) -> None:
        pass

    async def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        schema_name: str,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, temperature, system_prompt, user_prompt, json_schema
        response = self.DEFAULT_RESPONSES.get(schema_name)
        if response is None:
            raise AnalysisError(f"No example response for schema '{schema_name}'")
        return json.dumps(response)
