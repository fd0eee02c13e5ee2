"""
Base repository class with common file operations.
"""
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base class for file-based repositories."""

    def __init__(self, base_path: Path):
        """
        Initialize repository.

        Args:
            base_path: Base directory for this repository's files
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def get_file_path(self, filename: str) -> Path:
        """Get the full path for a file in this repository."""
        return self.base_path / filename

    def read_json(self, filename: str) -> Optional[Any]:
        """
        Read JSON data from a file.

        Args:
            filename: Name of the file to read

        Returns:
            Parsed JSON data or None if the file doesn't exist or can't be parsed
        """
        if not filename:
            return None

        file_path = self.get_file_path(filename)
        if not file_path.exists():
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing JSON file {file_path}: {str(e)}")
            return None
        except OSError as e:
            logger.error(f"Error reading file {file_path}: {str(e)}")
            return None

    def write_json(self, filename: str, data: Any) -> None:
        """
        Write JSON data to a file.

        The document is written to a temporary sibling first and renamed into
        place, so readers see either the old or the new version.

        Raises:
            OSError: The file could not be written
        """
        file_path = self.get_file_path(filename)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = file_path.with_name(f".{file_path.name}.{uuid.uuid4().hex[:8]}.tmp")

        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, file_path)
        except OSError as e:
            logger.error(f"Error writing file {file_path}: {str(e)}")
            if temp_path.exists():
                temp_path.unlink()
            raise

    def delete_file(self, filename: str) -> bool:
        """
        Delete a file from this repository.

        Returns:
            True if a file was removed, False if there was none
        """
        file_path = self.get_file_path(filename)
        try:
            file_path.unlink()
            return True
        except FileNotFoundError:
            return False
