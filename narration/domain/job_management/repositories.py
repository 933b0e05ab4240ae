"""
Job Management Repositories

Repository interface for job persistence.
Concrete implementations are in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .entities import Job
from .value_objects import JobStatus


class JobRepository(ABC):
    """Abstract repository interface for job persistence."""

    @abstractmethod
    def save(self, job: Job) -> bool:
        """
        Save or update a job (idempotent upsert by id).

        Args:
            job: Job to save

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    def find_by_id(self, job_id: str) -> Optional[Job]:
        """
        Retrieve a job by ID.

        Args:
            job_id: Job identifier

        Returns:
            Job if found, None otherwise
        """
        pass

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """
        Delete a job.

        Args:
            job_id: Job identifier

        Returns:
            True if deleted, False otherwise
        """
        pass

    @abstractmethod
    def exists(self, job_id: str) -> bool:
        """Check if a job exists."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored jobs."""
        pass

    @abstractmethod
    def find_by_status(self, status: JobStatus, limit: int = 100) -> List[Job]:
        """
        Find jobs by status.

        Args:
            status: Job status to filter by
            limit: Maximum number of jobs to return

        Returns:
            List of Job instances with the specified status
        """
        pass
