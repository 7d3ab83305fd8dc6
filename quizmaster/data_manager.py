"""
Data manager for the JSON score store.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List

from .errors import PersistenceFailure, ValidationError
from .models import ScoreRecord


class ScoreStore:
    """
    Owns the list of saved score records and mirrors it to a JSON file.

    The whole list is rewritten on every change. Writers are serialized with
    a lock, and each write goes to a temporary file that replaces the store
    file in one step.
    """

    DEFAULT_SCORES_FILE = "./data/scores.json"

    def __init__(self, scores_file: str = DEFAULT_SCORES_FILE):
        """
        Initialize ScoreStore with the path of its JSON file.

        Args:
            scores_file: Path to the JSON file holding the score list
        """
        self.scores_file = Path(scores_file)
        self.logger = logging.getLogger(__name__)
        self._records: List[ScoreRecord] = []
        self._lock = threading.Lock()
        self.load_errors: List[str] = []  # Track skipped entries for status reporting

    def load(self) -> List[ScoreRecord]:
        """
        Load records from disk.

        A missing or unreadable file starts an empty store. Individual
        entries that fail validation are skipped and reported in load_errors.

        Raises:
            PersistenceFailure: If the data directory cannot be created
        """
        with self._lock:
            self.load_errors.clear()
            self._ensure_data_directory()
            self._records = self._read_records()
            self.logger.info(f"Loaded {len(self._records)} scores from {self.scores_file}")
            return list(self._records)

    def _ensure_data_directory(self) -> None:
        try:
            self.scores_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Failed to create data directory {self.scores_file.parent}: {e}")
            raise PersistenceFailure(f"Cannot create data directory {self.scores_file.parent}: {e}")

    def _read_records(self) -> List[ScoreRecord]:
        if not self.scores_file.exists():
            self.logger.info(f"No score file at {self.scores_file}, starting with empty scores")
            return []

        try:
            with open(self.scores_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Invalid JSON in {self.scores_file}: {e}; starting with empty scores")
            self.load_errors.append(f"Invalid JSON: {e}")
            return []
        except OSError as e:
            self.logger.warning(f"Failed to read {self.scores_file}: {e}; starting with empty scores")
            self.load_errors.append(f"Read error: {e}")
            return []

        if not isinstance(data, list):
            self.logger.warning(f"Score file {self.scores_file} must contain a JSON array; starting with empty scores")
            self.load_errors.append("Score file must contain a JSON array")
            return []

        records = []
        for i, entry in enumerate(data):
            try:
                records.append(ScoreRecord.from_dict(entry))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid score entry {i}: {e.message}")
                self.load_errors.append(f"Entry {i}: {e.message}")
        return records

    def _write_records(self, records: List[ScoreRecord]) -> None:
        """
        Write the full list atomically.

        Raises:
            PersistenceFailure: If the file cannot be written
        """
        payload = [record.to_dict() for record in records]
        self._ensure_data_directory()
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=".scores-", suffix=".json", dir=str(self.scores_file.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.scores_file)
        except OSError as e:
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)
            self.logger.error(f"Error saving scores to {self.scores_file}: {e}")
            raise PersistenceFailure(f"Failed to save scores: {e}")

    def list_records(self) -> List[ScoreRecord]:
        """Return a copy of all stored records in insertion order."""
        with self._lock:
            return list(self._records)

    def append_record(self, record: ScoreRecord) -> ScoreRecord:
        """
        Persist a new record.

        Raises:
            PersistenceFailure: If the store cannot be written; the record is not kept
        """
        with self._lock:
            updated = self._records + [record]
            self._write_records(updated)
            self._records = updated

        self.logger.info(
            f"Score saved: {record.username} - {record.score}/{record.total_questions} ({record.percentage}%)"
        )
        return record

    def create_record(
        self,
        username: Any,
        score: Any,
        total_questions: Any,
        percentage: Any = None,
        date: Any = None
    ) -> ScoreRecord:
        """
        Validate a submission and persist it.

        Raises:
            ValidationError: If a field is missing or invalid
            PersistenceFailure: If the store cannot be written
        """
        record = ScoreRecord.create(
            username=username,
            score=score,
            total_questions=total_questions,
            percentage=percentage,
            date=date
        )
        return self.append_record(record)

    def delete_record(self, record_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if the record existed and was removed, False otherwise

        Raises:
            PersistenceFailure: If the store cannot be written; nothing is removed
        """
        with self._lock:
            remaining = [record for record in self._records if record.id != record_id]
            if len(remaining) == len(self._records):
                self.logger.debug(f"Score {record_id} not found")
                return False
            self._write_records(remaining)
            self._records = remaining

        self.logger.info(f"Score deleted: {record_id}")
        return True

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def get_loading_summary(self) -> Dict[str, Any]:
        """Summary of the last load operation."""
        return {
            'total_scores': self.count(),
            'has_errors': bool(self.load_errors),
            'errors': list(self.load_errors),
            'scores_file': str(self.scores_file),
        }
