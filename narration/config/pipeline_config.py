"""
Pipeline Configuration

Retry, chunking and storage settings of the narration pipeline, read from
environment variables.
"""

import os

from narration.application.pipeline import ExternalServices, PipelineSettings
from narration.domain.content_processing.services import (
    IAudioMergeService,
    ISpeechSynthesisService,
    ITextGenerationService,
)
from narration.infrastructure.local_audio_storage import LocalAudioUploadService
from narration.infrastructure.sentence_text_chunker import SentenceTextChunker


def _bool_env(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class PipelineConfig:
    """Pipeline configuration settings."""

    def __init__(self):
        self.max_item_retries = int(os.getenv("MAX_ITEM_RETRIES", 3))
        self.max_chunk_retries = int(os.getenv("MAX_CHUNK_RETRIES", 3))
        self.retry_base_delay_ms = int(os.getenv("RETRY_BASE_DELAY_MS", 1000))
        self.retry_max_delay_ms = int(os.getenv("RETRY_MAX_DELAY_MS", 300000))
        self.chunk_failure_threshold = float(os.getenv("CHUNK_FAILURE_THRESHOLD", 0.5))
        self.tracking_max_age_minutes = int(os.getenv("TRACKING_MAX_AGE_MINUTES", 60))
        self.audio_output_dir = os.getenv("AUDIO_OUTPUT_DIR", "/tmp/narration/audio")
        self.entity_ttl_seconds = int(os.getenv("ENTITY_TTL_SECONDS", 86400))
        # Workers in separate processes share state through Redis only
        self.shared_state = _bool_env("PIPELINE_SHARED_STATE", "true")

        if not 0.0 < self.chunk_failure_threshold <= 1.0:
            raise ValueError(
                "CHUNK_FAILURE_THRESHOLD must be in (0, 1], "
                f"got {self.chunk_failure_threshold}"
            )

    def to_settings(self) -> PipelineSettings:
        return PipelineSettings(
            max_item_retries=self.max_item_retries,
            max_chunk_retries=self.max_chunk_retries,
            retry_base_delay_ms=self.retry_base_delay_ms,
            retry_max_delay_ms=self.retry_max_delay_ms,
            chunk_failure_threshold=self.chunk_failure_threshold,
            shared_state=self.shared_state,
        )

    def local_services(
        self,
        text_generator: ITextGenerationService,
        speech_synthesizer: ISpeechSynthesisService,
        audio_merger: IAudioMergeService,
    ) -> ExternalServices:
        """
        Complete provider adapters with sentence chunking and local storage.

        Merged audio is copied below ``AUDIO_OUTPUT_DIR``. Intended for
        ``NARRATION_SERVICES_FACTORY`` callables.
        """
        return ExternalServices(
            text_generator=text_generator,
            text_chunker=SentenceTextChunker(),
            speech_synthesizer=speech_synthesizer,
            audio_merger=audio_merger,
            audio_uploader=LocalAudioUploadService(self.audio_output_dir),
        )
