"""
Unit tests for the environment-driven configuration classes.
"""

import pytest

from narration.config.celery_config import CeleryConfig
from narration.config.pipeline_config import PipelineConfig
from narration.config.redis_config import RedisConfig
from narration.infrastructure.local_audio_storage import LocalAudioUploadService
from narration.infrastructure.sentence_text_chunker import SentenceTextChunker
from tests.fixtures import FakeAudioMerger, FakeSpeechSynthesizer, FakeTextGenerator


def test_defaults(monkeypatch):
    for name in ("MAX_ITEM_RETRIES", "CHUNK_FAILURE_THRESHOLD", "PIPELINE_SHARED_STATE", "ENTITY_TTL_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    config = PipelineConfig()

    assert config.max_item_retries == 3
    assert config.chunk_failure_threshold == 0.5
    assert config.entity_ttl_seconds == 86400
    assert config.shared_state


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MAX_ITEM_RETRIES", "5")
    monkeypatch.setenv("RETRY_BASE_DELAY_MS", "250")
    monkeypatch.setenv("PIPELINE_SHARED_STATE", "no")

    settings = PipelineConfig().to_settings()

    assert settings.max_item_retries == 5
    assert settings.retry_base_delay_ms == 250
    assert not settings.shared_state


@pytest.mark.parametrize("threshold", ["0", "1.5", "-0.2"])
def test_invalid_threshold(monkeypatch, threshold):
    monkeypatch.setenv("CHUNK_FAILURE_THRESHOLD", threshold)

    with pytest.raises(ValueError):
        PipelineConfig()


def test_local_services(monkeypatch, tmp_path):
    monkeypatch.setenv("AUDIO_OUTPUT_DIR", str(tmp_path / "audio"))

    services = PipelineConfig().local_services(
        FakeTextGenerator(), FakeSpeechSynthesizer(), FakeAudioMerger()
    )

    assert isinstance(services.text_chunker, SentenceTextChunker)
    assert isinstance(services.audio_uploader, LocalAudioUploadService)
    assert (tmp_path / "audio").is_dir()


def test_redis_key_prefix(monkeypatch):
    monkeypatch.delenv("REDIS_KEY_PREFIX", raising=False)

    assert RedisConfig().key_prefix == "narration"


def test_every_task_is_routed_to_a_declared_queue():
    queues = {q.name for q in CeleryConfig.task_queues}

    assert {route["queue"] for route in CeleryConfig.task_routes.values()} <= queues
    assert "narration.dispatch_retry" in CeleryConfig.task_routes
