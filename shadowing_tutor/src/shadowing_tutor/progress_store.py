"""
Season Progress Store

Persists the season countdown so an interrupted session can resume.
Uses Supabase when a client is available, then a local JSON file, then an
in-memory fallback.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from shadowing_tutor.tutor_state import ProgressSnapshot

logger = logging.getLogger(__name__)

PROGRESS_TABLE = "season_progress"


class SeasonProgressStore:
    """
    Stores and retrieves ProgressSnapshot objects.

    One snapshot is kept per learner. Backend errors are logged and the next
    fallback is used, so callers never see an exception.
    """

    def __init__(
        self,
        supabase_client=None,
        file_path: Optional[Union[str, Path]] = None,
        learner_id: str = "default",
    ):
        """
        Initialize SeasonProgressStore.

        Args:
            supabase_client: Supabase client instance (optional)
            file_path: JSON file used when Supabase is not configured (optional)
            learner_id: Key for the stored snapshot
        """
        self.supabase = supabase_client
        self.use_supabase = supabase_client is not None
        self.file_path = Path(file_path) if file_path else None
        self.learner_id = learner_id

        # Always initialize in-memory fallback (used in error cases)
        self._in_memory: Optional[ProgressSnapshot] = None

    def snapshot_to_dict(self, snapshot: ProgressSnapshot) -> Dict[str, Any]:
        return {
            "learner_id": snapshot.learner_id or self.learner_id,
            "season_id": snapshot.season_id,
            "announced_total": snapshot.announced_total,
            "remaining": snapshot.remaining,
            "expression_index": snapshot.expression_index,
            "expression_order": list(snapshot.expression_order),
            "updated_at": datetime.now().isoformat(),
        }

    def dict_to_snapshot(self, data: Dict[str, Any]) -> ProgressSnapshot:
        return ProgressSnapshot(
            season_id=int(data.get("season_id", 0)),
            announced_total=int(data.get("announced_total", 0)),
            remaining=int(data.get("remaining", 0)),
            expression_index=int(data.get("expression_index", 0)),
            learner_id=data.get("learner_id", self.learner_id),
            expression_order=[str(text) for text in data.get("expression_order") or []],
        )

    def save(self, snapshot: ProgressSnapshot) -> bool:
        """
        Save a snapshot.

        Args:
            snapshot: Progress to persist

        Returns:
            True if written to the primary backend, False if a fallback was used
        """
        self._in_memory = snapshot
        data = self.snapshot_to_dict(snapshot)

        if self.use_supabase:
            try:
                self.supabase.table(PROGRESS_TABLE).upsert(data, on_conflict="learner_id").execute()
                return True
            except Exception as e:
                logger.warning(f"⚠️ [ProgressStore] Error saving progress to database: {e}")
                return False

        if self.file_path:
            try:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                self.file_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
                return True
            except OSError as e:
                logger.warning(f"⚠️ [ProgressStore] Error writing {self.file_path}: {e}")
                return False

        return True

    def load(self) -> Optional[ProgressSnapshot]:
        """Load the stored snapshot, or None if nothing was saved."""
        if self.use_supabase:
            try:
                result = self.supabase.table(PROGRESS_TABLE) \
                    .select('*') \
                    .eq('learner_id', self.learner_id) \
                    .execute()
                if result.data and len(result.data) > 0:
                    return self.dict_to_snapshot(result.data[0])
                return None
            except Exception as e:
                logger.warning(f"⚠️ [ProgressStore] Error loading progress from database: {e}")
                return self._in_memory

        if self.file_path:
            if not self.file_path.exists():
                return None
            try:
                return self.dict_to_snapshot(json.loads(self.file_path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                logger.warning(f"⚠️ [ProgressStore] Unreadable progress file {self.file_path}: {e}")
                return None

        return self._in_memory

    def clear(self) -> bool:
        """Forget the stored snapshot."""
        self._in_memory = None

        if self.use_supabase:
            try:
                self.supabase.table(PROGRESS_TABLE).delete().eq('learner_id', self.learner_id).execute()
                return True
            except Exception as e:
                logger.warning(f"⚠️ [ProgressStore] Error clearing progress: {e}")
                return False

        if self.file_path and self.file_path.exists():
            try:
                self.file_path.unlink()
            except OSError as e:
                logger.warning(f"⚠️ [ProgressStore] Error removing {self.file_path}: {e}")
                return False

        return True
