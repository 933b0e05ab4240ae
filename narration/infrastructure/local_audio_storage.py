"""
Local Audio Storage

IAudioUploadService implementation that publishes merged item audio into a
directory on the local filesystem.
"""

import logging
import shutil
from pathlib import Path

from narration.domain.content_processing.services import IAudioUploadService
from narration.domain.errors import ErrorCode, ExternalServiceError

logger = logging.getLogger(__name__)


class LocalAudioUploadService(IAudioUploadService):
    """
    Copies merged audio below ``base_path``.

    Attributes:
        base_path: Output directory (``AUDIO_OUTPUT_DIR``)
    """

    def __init__(self, base_path: str = "/tmp/narration/audio"):
        self.base_path = Path(base_path)
        self._ensure_base_directory()

    def _ensure_base_directory(self) -> None:
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OSError(f"Failed to create audio output directory: {self.base_path}") from e

    def _resolve(self, destination_key: str) -> Path:
        target = (self.base_path / destination_key).resolve()
        if self.base_path.resolve() not in target.parents:
            raise ExternalServiceError(
                f"Destination escapes the output directory: {destination_key}",
                error_code=ErrorCode.UPLOAD_ERROR,
            )
        return target

    def upload(self, audio_path: str, destination_key: str) -> str:
        """
        Copy ``audio_path`` to ``base_path/destination_key``.

        Returns:
            Absolute path of the stored file

        Raises:
            ExternalServiceError: If the source is missing or the copy fails
        """
        source = Path(audio_path)
        if not source.is_file():
            raise ExternalServiceError(
                f"Audio file not found: {audio_path}", error_code=ErrorCode.UPLOAD_ERROR
            )

        target = self._resolve(destination_key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            raise ExternalServiceError(
                f"Failed to store audio at {target}: {e}",
                error_code=ErrorCode.UPLOAD_ERROR,
                original_error=e,
            ) from e

        logger.info(f"Stored audio {destination_key} ({target.stat().st_size} bytes)")
        return str(target)
