"""
Error Tracking Repositories

Repository interface for error log persistence.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .entities import ErrorLog


class ErrorLogRepository(ABC):
    """Abstract repository interface for error log persistence."""

    @abstractmethod
    def save(self, error_log: ErrorLog) -> bool:
        pass

    @abstractmethod
    def find_by_id(self, error_id: str) -> Optional[ErrorLog]:
        pass

    @abstractmethod
    def find_by_job_id(self, job_id: str) -> List[ErrorLog]:
        """
        Retrieve all error logs linked to a job, newest first.

        Args:
            job_id: Job identifier

        Returns:
            List of ErrorLog instances, empty if none
        """
        pass

    @abstractmethod
    def find_by_item_id(self, item_id: str) -> List[ErrorLog]:
        pass

    @abstractmethod
    def delete(self, error_id: str) -> bool:
        pass

    @abstractmethod
    def exists(self, error_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, job_id: Optional[str] = None) -> int:
        pass
