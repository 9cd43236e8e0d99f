import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.analysis.agent import ComplianceAgent
from app.analysis.example_client_adapter import ExampleClientAdapter
from app.analysis.exceptions import AnalysisError, AnalysisValidationError
from app.analysis.models import ReportSection


def _make_agent(response: str, temperature: float = 0.2) -> tuple[ComplianceAgent, MagicMock]:
    client = MagicMock()
    client.create_chat_completion = AsyncMock(return_value=response)
    return ComplianceAgent(client=client, model="test-model", temperature=temperature), client


class TestComplianceAgent:
    def test_summarize_chunk_builds_prompt(self) -> None:
        agent, client = _make_agent('{"summary": "ok"}')

        result = asyncio.run(agent.summarize_chunk("v1,v2\n1,2", "pt-BR"))

        assert result == "ok"
        kwargs = client.create_chat_completion.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.2
        assert kwargs["schema_name"] == "chunk_summary"
        assert kwargs["json_schema"]["type"] == "object"
        assert "v1,v2\n1,2" in kwargs["user_prompt"]
        assert "pt-BR" in kwargs["user_prompt"]

    def test_identify_rules(self) -> None:
        agent, client = _make_agent('{"rules": ["A", "B"]}')
        assert asyncio.run(agent.identify_rules("summary", "en")) == ["A", "B"]
        assert client.create_chat_completion.call_args.kwargs["schema_name"] == "identified_rules"

    def test_assess_compliance_lists_rules(self) -> None:
        example = json.loads(asyncio.run(_example("compliance_report")))
        agent, client = _make_agent(json.dumps(example))

        report = asyncio.run(agent.assess_compliance("summary", ["A", "B"], "m.csv", "en"))

        assert report.metadata.title == example["metadata"]["title"]
        prompt = client.create_chat_completion.call_args.kwargs["user_prompt"]
        assert "- A\n- B" in prompt
        assert "m.csv" in prompt

    def test_design_chart(self) -> None:
        agent, _ = _make_agent(asyncio.run(_example("chart_spec")))
        spec = asyncio.run(
            agent.design_chart(ReportSection(title="t", content="c", chart_suggestion="s"), "x", "en")
        )
        assert spec.labels == ["A", "B", "C"]

    def test_strips_code_fences(self) -> None:
        agent, _ = _make_agent('```json\n{"summary": "fenced"}\n```')
        assert asyncio.run(agent.summarize_chunk("c", "en")) == "fenced"

    def test_invalid_json_raises(self) -> None:
        agent, _ = _make_agent("not json")
        with pytest.raises(AnalysisError, match="Invalid JSON"):
            asyncio.run(agent.summarize_chunk("c", "en"))

    def test_non_object_raises(self) -> None:
        agent, _ = _make_agent("[1, 2]")
        with pytest.raises(AnalysisError, match="must be an object"):
            asyncio.run(agent.summarize_chunk("c", "en"))

    def test_validation_error_propagates(self) -> None:
        agent, _ = _make_agent('{"rules": []}')
        with pytest.raises(AnalysisValidationError):
            asyncio.run(agent.identify_rules("summary", "en"))

    @pytest.mark.parametrize(("given", "expected"), [(-1.0, 0.0), (2.0, 1.0)])
    def test_temperature_is_clamped(self, given: float, expected: float) -> None:
        agent, client = _make_agent('{"summary": "ok"}', temperature=given)
        asyncio.run(agent.summarize_chunk("c", "en"))
        assert client.create_chat_completion.call_args.kwargs["temperature"] == expected

    def test_missing_prompt_dir_raises(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError, match="Failed to load prompt"):
            ComplianceAgent(client=MagicMock(), model="m", prompt_dir=tmp_path)


async def _example(schema_name: str) -> str:
    return await ExampleClientAdapter().create_chat_completion(
        model="m",
        temperature=0.0,
        system_prompt="s",
        user_prompt="u",
        schema_name=schema_name,
        json_schema={},
    )
