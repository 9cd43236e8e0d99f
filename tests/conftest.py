import pytest

from app.pipeline.progress import ProgressMapper
from tests.doubles import DEFAULT_SPANS, InMemoryArtifactStore, InMemoryPipelineStore


@pytest.fixture()
def pipeline_store() -> InMemoryPipelineStore:
    return InMemoryPipelineStore()


@pytest.fixture()
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture()
def progress_mapper() -> ProgressMapper:
    return ProgressMapper(DEFAULT_SPANS, upload_complete_progress=10)
