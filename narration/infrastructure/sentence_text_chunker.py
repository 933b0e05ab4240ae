"""
Sentence Text Chunker

Default ITextChunkingService: packs whole sentences into chunks no longer
than the configured size, splitting on whitespace only when a single
sentence is too long.
"""

import re
import uuid
from typing import List

from narration.domain.content_processing.services import ITextChunkingService
from narration.domain.content_processing.value_objects import TextChunk
from narration.domain.errors import ValidationError

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _split_long(sentence: str, max_chunk_size: int) -> List[str]:
    parts: List[str] = []
    current = ""
    for word in sentence.split():
        while len(word) > max_chunk_size:
            if current:
                parts.append(current)
                current = ""
            parts.append(word[:max_chunk_size])
            word = word[max_chunk_size:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chunk_size:
            parts.append(current)
            current = word
        else:
            current = candidate
    if current:
        parts.append(current)
    return parts


class SentenceTextChunker(ITextChunkingService):
    """Greedy sentence packing."""

    def chunk(self, text: str, max_chunk_size: int) -> List[TextChunk]:
        if max_chunk_size <= 0:
            raise ValidationError(f"max_chunk_size must be positive, got {max_chunk_size}")
        if not text or not text.strip():
            raise ValidationError("Cannot chunk empty text")

        pieces: List[str] = []
        current = ""
        for sentence in _SENTENCE_END.split(text.strip()):
            sentence = " ".join(sentence.split())
            if not sentence:
                continue
            if len(sentence) > max_chunk_size:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.extend(_split_long(sentence, max_chunk_size))
                continue
            candidate = f"{current} {sentence}" if current else sentence
            if len(candidate) > max_chunk_size:
                pieces.append(current)
                current = sentence
            else:
                current = candidate
        if current:
            pieces.append(current)

        return [
            TextChunk(chunk_id=str(uuid.uuid4()), index=index, text=piece)
            for index, piece in enumerate(pieces)
        ]
