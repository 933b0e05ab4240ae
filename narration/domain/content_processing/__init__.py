"""
Content Processing Bounded Context

Content items, their audio chunks and the service contracts of the
text-to-audio pipeline.
"""

from .entities import AudioChunk, ContentItem
from .repositories import AudioChunkRepository, ContentItemRepository
from .services import (
    IAudioMergeService,
    IAudioUploadService,
    ISpeechSynthesisService,
    ITextChunkingService,
    ITextGenerationService,
)
from .value_objects import (
    CHUNK_STATE_MACHINE,
    ITEM_PIPELINE_ORDER,
    ITEM_STATE_MACHINE,
    ChunkStatus,
    ItemStatus,
    MergedAudio,
    PipelineStep,
    SourceRow,
    SynthesizedAudio,
    TextChunk,
)

__all__ = [
    "AudioChunk",
    "ContentItem",
    "AudioChunkRepository",
    "ContentItemRepository",
    "IAudioMergeService",
    "IAudioUploadService",
    "ISpeechSynthesisService",
    "ITextChunkingService",
    "ITextGenerationService",
    "CHUNK_STATE_MACHINE",
    "ITEM_PIPELINE_ORDER",
    "ITEM_STATE_MACHINE",
    "ChunkStatus",
    "ItemStatus",
    "MergedAudio",
    "PipelineStep",
    "SourceRow",
    "SynthesizedAudio",
    "TextChunk",
]
