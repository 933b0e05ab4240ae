"""
Chunk Processing Coordinator

Watches the audio chunks of every item in GENERATING_AUDIO and decides,
exactly once per item, whether the item is merged or failed.
"""

import logging
import math
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Set

from narration.domain.content_processing import (
    AudioChunkRepository,
    ChunkStatus,
    ContentItemRepository,
    ItemStatus,
)
from narration.domain.errors import ErrorCode, ProcessingCancelledError, ValidationError
from narration.domain.events import AudioChunkGeneratedEvent, ChunkFailedEvent

from .event_bus import EventBus
from .keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 0.5

MergeHandler = Callable[[str], None]
ItemFailureHandler = Callable[..., object]


@dataclass
class ItemChunkTracking:
    """Chunk ids of one item split by outcome."""
    pending: Set[str] = field(default_factory=set)
    completed: Set[str] = field(default_factory=set)
    failed: Set[str] = field(default_factory=set)

    @property
    def total(self) -> int:
        return len(self.pending) + len(self.completed) + len(self.failed)

    def __contains__(self, chunk_id: str) -> bool:
        return chunk_id in self.pending or chunk_id in self.completed or chunk_id in self.failed

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "completed": len(self.completed),
            "failed": len(self.failed),
            "pending": len(self.pending),
        }


class ChunkProcessingCoordinator:
    """
    Detects when all chunks of an item have reported.

    Rules, evaluated under a per-item lock on every chunk outcome:

    - failed chunks >= ceil(total * failure_threshold): the item fails
    - no chunk pending and at least one completed: the item is merged

    The decision removes the item from tracking before the lock is
    released, so each item triggers at most one merge or failure. A merge
    is claimed by moving the item to MERGING while the lock is held. The
    action itself runs outside the lock. Until it returns, further events
    for the item are ignored.
    """

    MERGE = "merge"
    FAIL = "fail"

    def __init__(
        self,
        item_repository: ContentItemRepository,
        chunk_repository: AudioChunkRepository,
        merge_handler: Optional[MergeHandler] = None,
        item_failure_handler: Optional[ItemFailureHandler] = None,
        failure_threshold: float = DEFAULT_FAILURE_THRESHOLD,
        locks: Optional[KeyedLock] = None,
        shared_state: bool = False,
    ):
        """
        Initialize ChunkProcessingCoordinator.

        Args:
            item_repository: Repository for content items
            chunk_repository: Repository for audio chunks
            merge_handler: Called with the item id when all chunks are done
            item_failure_handler: Called as ``(item_id, message, error_code=...)``
                when too many chunks failed or the merge raised
            failure_threshold: Share of failed chunks that fails the item
            locks: Per-item locks, in-process by default
            shared_state: Rebuild tracking from the repositories on every
                outcome, for workers spread over several processes
        """
        if not 0 < failure_threshold <= 1:
            raise ValidationError(
                f"Failure threshold must be in (0, 1], got {failure_threshold}"
            )
        self.item_repository = item_repository
        self.chunk_repository = chunk_repository
        self.merge_handler = merge_handler
        self.item_failure_handler = item_failure_handler
        self.failure_threshold = failure_threshold
        self.shared_state = shared_state

        self._tracking: Dict[str, ItemChunkTracking] = {}
        self._resolving: Set[str] = set()
        self._item_locks = locks or KeyedLock()
        self._state_lock = Lock()

    def register_event_handlers(self, event_bus: EventBus) -> None:
        event_bus.subscribe(AudioChunkGeneratedEvent, self._on_chunk_generated)
        event_bus.subscribe(ChunkFailedEvent, self._on_chunk_failed)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def register_item_chunks(self, item_id: str, chunk_ids: Iterable[str]) -> None:
        """
        Start tracking the chunks of an item.

        Called once chunking has produced the item's audio chunks.
        Registering again replaces the previous tracking.
        """
        chunk_ids = list(chunk_ids)
        if not chunk_ids:
            raise ValidationError(f"Item {item_id} has no chunks to track")
        with self._item_locks.hold(item_id):
            with self._state_lock:
                self._tracking[item_id] = ItemChunkTracking(pending=set(chunk_ids))
                self._resolving.discard(item_id)
        logger.debug(f"Tracking {len(chunk_ids)} chunks for item {item_id}")

    def reset_item_tracking(self, item_id: str) -> None:
        """Forget an item, e.g. before its chunks are regenerated."""
        with self._item_locks.hold(item_id):
            with self._state_lock:
                self._tracking.pop(item_id, None)
                self._resolving.discard(item_id)
        self._item_locks.discard(item_id)

    def get_chunk_status(self, item_id: str) -> Dict[str, int]:
        """Counts of the item's chunks by outcome. All zero if untracked."""
        with self._state_lock:
            tracking = self._tracking.get(item_id)
            if tracking is None:
                return ItemChunkTracking().to_dict()
            return tracking.to_dict()

    def is_tracking(self, item_id: str) -> bool:
        with self._state_lock:
            return item_id in self._tracking

    def is_resolving(self, item_id: str) -> bool:
        with self._state_lock:
            return item_id in self._resolving

    def tracked_item_ids(self) -> List[str]:
        with self._state_lock:
            return list(self._tracking)

    # ------------------------------------------------------------------
    # Chunk outcomes
    # ------------------------------------------------------------------

    def handle_chunk_succeeded(self, item_id: str, chunk_id: str) -> None:
        self._handle_outcome(item_id, chunk_id, succeeded=True)

    def handle_chunk_failed(self, item_id: str, chunk_id: str, error_message: str = "") -> None:
        if error_message:
            logger.warning(f"Chunk {chunk_id} of item {item_id} failed: {error_message}")
        self._handle_outcome(item_id, chunk_id, succeeded=False)

    def _on_chunk_generated(self, event: AudioChunkGeneratedEvent) -> None:
        self.handle_chunk_succeeded(event.aggregate_id, event.chunk_id)

    def _on_chunk_failed(self, event: ChunkFailedEvent) -> None:
        self.handle_chunk_failed(event.item_id, event.aggregate_id, event.error_message)

    def _handle_outcome(self, item_id: str, chunk_id: str, succeeded: bool) -> None:
        with self._item_locks.hold(item_id):
            action = self._decide(item_id, chunk_id, succeeded)

        if action == self.MERGE:
            self._trigger_merge(item_id)
        elif action == self.FAIL:
            try:
                self._fail_item(item_id, "Too many audio chunks failed", ErrorCode.UNKNOWN)
            finally:
                self._release(item_id)

    def _decide(self, item_id: str, chunk_id: str, succeeded: bool) -> Optional[str]:
        with self._state_lock:
            if item_id in self._resolving:
                logger.debug(f"Item {item_id} is being resolved, ignoring chunk {chunk_id}")
                return None
            tracking = None if self.shared_state else self._tracking.get(item_id)

        rebuilt = False
        if tracking is None:
            tracking = self._rebuild_tracking(item_id)
            if tracking is None:
                logger.debug(f"Item {item_id} is not awaiting chunks, ignoring chunk {chunk_id}")
                return None
            rebuilt = True

        if chunk_id not in tracking:
            logger.warning(f"Chunk {chunk_id} does not belong to item {item_id}, ignoring")
            return None

        target = tracking.completed if succeeded else tracking.failed
        if chunk_id in target and not rebuilt:
            logger.debug(f"Duplicate outcome for chunk {chunk_id}, ignoring")
            return None
        if not succeeded and chunk_id in tracking.completed:
            logger.warning(f"Chunk {chunk_id} already completed, ignoring late failure")
            return None

        tracking.pending.discard(chunk_id)
        tracking.failed.discard(chunk_id)
        tracking.completed.discard(chunk_id)
        target.add(chunk_id)

        action = None
        if len(tracking.failed) >= math.ceil(tracking.total * self.failure_threshold):
            action = self.FAIL
        elif not tracking.pending and tracking.completed:
            action = self.MERGE

        if action == self.MERGE and not self._claim_merge(item_id):
            with self._state_lock:
                self._tracking.pop(item_id, None)
            return None

        with self._state_lock:
            if action is None:
                if not self.shared_state:
                    self._tracking[item_id] = tracking
            else:
                self._tracking.pop(item_id, None)
                self._resolving.add(item_id)
        return action

    def _rebuild_tracking(self, item_id: str) -> Optional[ItemChunkTracking]:
        """Recover tracking from persisted chunk statuses, e.g. after a restart."""
        item = self.item_repository.find_by_id(item_id)
        if item is None or item.status != ItemStatus.GENERATING_AUDIO:
            return None
        chunks = self.chunk_repository.find_by_item_id(item_id)
        if not chunks:
            return None

        tracking = ItemChunkTracking()
        for chunk in chunks:
            if chunk.status == ChunkStatus.COMPLETED:
                tracking.completed.add(chunk.chunk_id)
            elif chunk.status == ChunkStatus.FAILED:
                tracking.failed.add(chunk.chunk_id)
            else:
                tracking.pending.add(chunk.chunk_id)
        logger.log(
            logging.DEBUG if self.shared_state else logging.INFO,
            f"Rebuilt chunk tracking for item {item_id}: {tracking.to_dict()}",
        )
        return tracking

    def _claim_merge(self, item_id: str) -> bool:
        """Move the item to MERGING so no other worker merges it too."""
        item = self.item_repository.find_by_id(item_id)
        if item is None or item.status != ItemStatus.GENERATING_AUDIO:
            logger.warning(f"Item {item_id} left audio generation, skipping merge")
            return False
        item.start_merging()
        self.item_repository.save(item)
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _trigger_merge(self, item_id: str) -> None:
        try:
            if self.merge_handler is None:
                logger.error(f"No merge handler configured, item {item_id} cannot be merged")
                return
            logger.info(f"All chunks reported for item {item_id}, merging")
            self.merge_handler(item_id)
        except ProcessingCancelledError as e:
            logger.info(f"Merge of item {item_id} abandoned: {e.message}")
        except Exception as e:
            logger.error(f"Merge failed for item {item_id}: {e}", exc_info=True)
            error_code = getattr(e, "error_code", ErrorCode.MERGE_ERROR)
            self._fail_item(item_id, f"Audio merge failed: {e}", error_code)
        finally:
            self._release(item_id)

    def _release(self, item_id: str) -> None:
        with self._state_lock:
            self._resolving.discard(item_id)
        self._item_locks.discard(item_id)

    def _fail_item(self, item_id: str, message: str, error_code: ErrorCode) -> None:
        if self.item_failure_handler is None:
            logger.error(f"No failure handler configured, item {item_id} stays unresolved")
            return
        self.item_failure_handler(item_id, message, error_code=error_code)
