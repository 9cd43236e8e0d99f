"""Tests for prompt template and JSON schema loading."""

import json
from pathlib import Path

import pytest

from app.analysis.exceptions import AnalysisError
from app.analysis.prompt_loader import load_json_schema, load_prompt_template

_STAGE_PLACEHOLDERS = {
    "summarize": ["{chunk_text}"],
    "identify_rules": ["{summary_text}"],
    "assess_compliance": ["{summary_text}", "{identified_rules}", "{file_name}"],
    "review_report": ["{report_json}"],
    "chart_spec": ["{section_title}", "{chart_suggestion}", "{summary_text}"],
}


class TestLoadPromptTemplate:
    @pytest.mark.parametrize("name", sorted(_STAGE_PLACEHOLDERS))
    def test_loads_bundled_templates(self, name: str) -> None:
        template = load_prompt_template(name)
        assert "{json_schema}" in template
        assert "{language_code}" in template
        for placeholder in _STAGE_PLACEHOLDERS[name]:
            assert placeholder in template

    def test_loads_custom_template(self, tmp_path: Path) -> None:
        (tmp_path / "custom_prompt.txt").write_text("Hello {chunk_text}")
        assert load_prompt_template("custom", tmp_path) == "Hello {chunk_text}"

    def test_missing_file_raises_error(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError, match="Failed to load prompt"):
            load_prompt_template("missing", tmp_path)


class TestLoadJsonSchema:
    @pytest.mark.parametrize("name", sorted(_STAGE_PLACEHOLDERS))
    def test_bundled_schemas_are_valid_json(self, name: str) -> None:
        schema = json.loads(load_json_schema(name))
        assert schema["type"] == "object"

    def test_loads_custom_schema(self, tmp_path: Path) -> None:
        (tmp_path / "custom_schema.json").write_text('{"type": "object"}')
        assert load_json_schema("custom", tmp_path) == '{"type": "object"}'

    def test_missing_file_raises_error(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError, match="Failed to load JSON schema"):
            load_json_schema("missing", tmp_path)
