"""
Repository for manual documents, one JSON file per manual.
"""
import logging
import threading
from pathlib import Path
from typing import List, Optional

from manualizer.models.domain import Manual, utc_now
from manualizer.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ManualRepository(BaseRepository):
    """Stores manuals as ``<id>.json`` under the manuals directory."""

    def __init__(self, base_path: Path):
        super().__init__(base_path)
        self._id_lock = threading.Lock()

    @staticmethod
    def _get_manual_filename(manual_id: int) -> str:
        return f"{int(manual_id)}.json"

    def _existing_ids(self) -> List[int]:
        ids = []
        for file_path in self.base_path.glob("*.json"):
            if file_path.stem.isdigit():
                ids.append(int(file_path.stem))
        return sorted(ids)

    def create(self, manual: Manual) -> Manual:
        """
        Persist a new manual under the next free integer id.

        Args:
            manual: Manual without an id

        Returns:
            The same manual with ``id`` set
        """
        with self._id_lock:
            existing = self._existing_ids()
            manual.id = (existing[-1] + 1) if existing else 1
            manual.created_at = manual.updated_at = utc_now()
            self.write_json(self._get_manual_filename(manual.id), manual.to_dict())

        logger.info(f"Created manual {manual.id} for {manual.video_path}")
        return manual

    def get(self, manual_id: int) -> Optional[Manual]:
        data = self.read_json(self._get_manual_filename(manual_id))
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning(f"Manual file for {manual_id} does not contain an object")
            return None
        return Manual.from_dict(data)

    def save(self, manual: Manual) -> Manual:
        """Overwrite a stored manual and bump ``updated_at``."""
        if manual.id is None:
            raise ValueError("Cannot save a manual without an id, use create()")
        manual.updated_at = utc_now()
        self.write_json(self._get_manual_filename(manual.id), manual.to_dict())
        return manual

    def list_all(self) -> List[Manual]:
        manuals = []
        for manual_id in self._existing_ids():
            manual = self.get(manual_id)
            if manual is not None:
                manuals.append(manual)
        return manuals

    def delete(self, manual_id: int) -> bool:
        return self.delete_file(self._get_manual_filename(manual_id))
