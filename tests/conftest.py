"""
Shared pytest fixtures and configuration for the narration pipeline test suite.

This module provides:
- Hypothesis configuration for property-based testing
- In-memory repositories, recording queues and fake providers
- A fully wired pipeline built on top of them
"""

import pytest
from datetime import datetime, timedelta

# Hypothesis configuration
from hypothesis import settings, HealthCheck, Phase

from narration.application.event_bus import EventBus
from narration.application.pipeline import (
    PipelineQueues,
    PipelineRepositories,
    PipelineSettings,
    build_pipeline,
)
from tests.fixtures.fake_services import (
    EventRecorder,
    RecordingChunkQueue,
    RecordingItemQueue,
    RecordingRetryQueue,
    make_external_services,
)
from tests.fixtures.mock_repositories import (
    InMemoryAudioChunkRepository,
    InMemoryContentItemRepository,
    InMemoryErrorLogRepository,
    InMemoryJobRepository,
)

# Register Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target, Phase.shrink],
)
settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.load_profile("default")


# =============================================================================
# Repository Fixtures
# =============================================================================

@pytest.fixture
def job_repository():
    return InMemoryJobRepository()


@pytest.fixture
def item_repository():
    return InMemoryContentItemRepository()


@pytest.fixture
def chunk_repository():
    return InMemoryAudioChunkRepository()


@pytest.fixture
def error_log_repository():
    return InMemoryErrorLogRepository()


@pytest.fixture
def repositories(job_repository, item_repository, chunk_repository, error_log_repository):
    return PipelineRepositories(
        jobs=job_repository,
        items=item_repository,
        chunks=chunk_repository,
        error_logs=error_log_repository,
    )


# =============================================================================
# Queue and Event Fixtures
# =============================================================================

@pytest.fixture
def item_queue():
    return RecordingItemQueue()


@pytest.fixture
def chunk_queue():
    return RecordingChunkQueue()


@pytest.fixture
def retry_queue():
    return RecordingRetryQueue()


@pytest.fixture
def queues(item_queue, chunk_queue, retry_queue):
    return PipelineQueues(items=item_queue, chunks=chunk_queue, retries=retry_queue)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    """Records every event published on ``event_bus``."""
    recorder = EventRecorder()
    event_bus.subscribe_all(recorder)
    return recorder


# =============================================================================
# Pipeline Fixtures
# =============================================================================

@pytest.fixture
def external_services():
    return make_external_services()


@pytest.fixture
def pipeline_settings():
    return PipelineSettings()


@pytest.fixture
def pipeline(repositories, queues, external_services, pipeline_settings, event_bus, recorder):
    """Fully wired pipeline over in-memory repositories and recording queues."""
    return build_pipeline(
        repositories,
        queues,
        services=external_services,
        settings=pipeline_settings,
        event_bus=event_bus,
    )


# =============================================================================
# Time-related Fixtures
# =============================================================================

@pytest.fixture
def fixed_datetime():
    """Provide a fixed datetime for deterministic testing."""
    return datetime(2024, 1, 15, 12, 0, 0)


@pytest.fixture
def expired_datetime():
    """Provide a datetime that represents an expired timestamp."""
    return datetime.utcnow() - timedelta(hours=2)


# =============================================================================
# Pytest Configuration Hooks
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests (full workflows)"
    )
    config.addinivalue_line(
        "markers", "property: Property-based tests using Hypothesis"
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location.

    - tests/unit/* -> @pytest.mark.unit
    - tests/integration/* -> @pytest.mark.integration
    - tests/e2e/* -> @pytest.mark.e2e
    - tests/property/* -> @pytest.mark.property
    """
    for item in items:
        test_path = str(item.fspath)

        if "/unit/" in test_path or "\\unit\\" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path or "\\integration\\" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path or "\\e2e\\" in test_path:
            item.add_marker(pytest.mark.e2e)
        elif "/property/" in test_path or "\\property\\" in test_path:
            item.add_marker(pytest.mark.property)
