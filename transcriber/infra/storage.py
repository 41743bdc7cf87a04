"""
Artifact storage

Local filesystem storage for uploaded sources and segment audio files.
Paths handed out by the storage are the artifact references persisted on
tasks and segments.
"""

from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from transcriber.core.config import settings
from transcriber.core.logging import get_logger

logger = get_logger(__name__)


class ArtifactStorage:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.upload_dir)

    def task_dir(self, task_id: str) -> Path:
        return self.root / task_id

    async def save(self, task_id: str, filename: str, content: bytes) -> str:
        directory = self.task_dir(task_id)
        await aiofiles.os.makedirs(directory, exist_ok=True)
        path = directory / Path(filename).name
        async with aiofiles.open(path, "wb") as out_file:
            await out_file.write(content)
        logger.info(f"Stored artifact {path} ({len(content)} bytes)")
        return str(path)

    async def delete(self, ref: str) -> bool:
        """
        Delete one artifact.
        Returns False when it was already gone, so repeated cleanups are no-ops.
        """
        try:
            await aiofiles.os.remove(ref)
        except FileNotFoundError:
            return False
        logger.debug(f"Deleted artifact {ref}")
        return True

    def segment_dir(self, task_id: str) -> Path:
        return self.task_dir(task_id) / "segments"

    async def remove_task_dir(self, task_id: str) -> None:
        for directory in (self.segment_dir(task_id), self.task_dir(task_id)):
            try:
                await aiofiles.os.rmdir(directory)
            except FileNotFoundError:
                pass
            except OSError as e:
                # Directory still holds files another cleanup pass will handle
                logger.debug(f"Directory {directory} not removed: {e}")
