"""
Content Processing Service Interfaces

Abstract interfaces for the external collaborators of the item pipeline:
text generation, text chunking, speech synthesis, audio merge and upload.

The orchestration layer only depends on these contracts. Implementations
either return a result or raise; provider-specific exceptions should be
translated into ``ExternalServiceError`` so the recovery policy can decide
whether a retry is worthwhile.
"""

from abc import ABC, abstractmethod
from typing import List

from ..job_management.value_objects import JobConfig, VoiceSettings
from .value_objects import MergedAudio, SourceRow, SynthesizedAudio, TextChunk


class ITextGenerationService(ABC):
    """Turns a source row into narration text."""

    @abstractmethod
    def generate(self, source: SourceRow, config: JobConfig) -> str:
        """
        Generate narration text for one row.

        Args:
            source: Row being narrated
            config: Prompt configuration of the owning job

        Returns:
            Non-empty narration text

        Raises:
            ExternalServiceError: If the provider call fails
        """
        pass


class ITextChunkingService(ABC):
    """Splits narration text into synthesis-sized chunks."""

    @abstractmethod
    def chunk(self, text: str, max_chunk_size: int) -> List[TextChunk]:
        """
        Split text into ordered chunks no longer than ``max_chunk_size``.

        Returns:
            Non-empty list of TextChunk ordered by index
        """
        pass


class ISpeechSynthesisService(ABC):
    """Synthesizes speech for one chunk of text."""

    @abstractmethod
    def synthesize(self, text: str, voice: VoiceSettings, output_key: str) -> SynthesizedAudio:
        """
        Synthesize ``text`` with the given voice.

        Args:
            text: Text of the chunk
            voice: Voice settings of the owning job
            output_key: Stable name for the produced file (the chunk id)

        Raises:
            ExternalServiceError: If the provider call fails
        """
        pass


class IAudioMergeService(ABC):
    """Concatenates chunk audio into one file per item."""

    @abstractmethod
    def merge(
        self, audio_paths: List[str], silence_between_ms: int, output_key: str
    ) -> MergedAudio:
        """
        Merge audio files in the given order.

        Args:
            audio_paths: Chunk audio files ordered by chunk index
            silence_between_ms: Silence inserted between consecutive chunks
            output_key: Stable name for the merged file (the item id)
        """
        pass


class IAudioUploadService(ABC):
    """Publishes the merged audio of an item."""

    @abstractmethod
    def upload(self, audio_path: str, destination_key: str) -> str:
        """
        Store the merged file.

        Args:
            audio_path: Local path of the merged audio
            destination_key: Relative destination (job id / item id based)

        Returns:
            Final location of the uploaded audio
        """
        pass
