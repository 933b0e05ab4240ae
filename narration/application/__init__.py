"""
Application Layer

Use cases and coordinators of the narration pipeline.
"""

from .chunk_processing_coordinator import ChunkProcessingCoordinator
from .dependency_container import DependencyContainer, DependencyNotFoundError
from .error_recovery_coordinator import ErrorContext, ErrorRecoveryCoordinator, RecoveryResult
from .event_bus import EventBus
from .item_processing_service import ItemProcessingService
from .job_service import JobService
from .pipeline import (
    ExternalServices,
    Pipeline,
    PipelineQueues,
    PipelineRepositories,
    PipelineSettings,
    build_pipeline,
    register_pipeline,
)
from .pipeline_orchestrator import PipelineOrchestrator
from .progress_tracking_service import ProgressSnapshot, ProgressTrackingService
from .retry_service import RetryFailedItemsService, RetryService

__all__ = [
    "ChunkProcessingCoordinator",
    "DependencyContainer",
    "DependencyNotFoundError",
    "ErrorContext",
    "ErrorRecoveryCoordinator",
    "RecoveryResult",
    "EventBus",
    "ItemProcessingService",
    "JobService",
    "ExternalServices",
    "Pipeline",
    "PipelineQueues",
    "PipelineRepositories",
    "PipelineSettings",
    "build_pipeline",
    "register_pipeline",
    "PipelineOrchestrator",
    "ProgressSnapshot",
    "ProgressTrackingService",
    "RetryFailedItemsService",
    "RetryService",
]
