import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from .types import FileRecord, FileStatus

logger = logging.getLogger(__name__)

Listener = Callable[[FileRecord], None]


class RecordFinalizedError(RuntimeError):
    """Tentative de modification d'un enregistrement déjà terminé."""


class DuplicateRecordError(ValueError):
    """Identifiant déjà présent dans le lot en mémoire."""


class BatchStore:
    """
    Collection des FileRecord en mémoire, seul point de mutation autorisé.

    Les écritures (ajout de lot, mise à jour par identifiant, vidage complet)
    sont sérialisées par un verrou ; les lectures renvoient des copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: List[FileRecord] = []
        self._index: Dict[str, FileRecord] = {}
        self._listeners: List[Listener] = []
        self._processing = False

    # --- abonnements -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, record: FileRecord) -> None:
        for listener in list(self._listeners):
            listener(replace(record))

    # --- mutations ---------------------------------------------------------

    def append_batch(self, records: Sequence[FileRecord]) -> None:
        """Ajoute un lot en tête de liste (le plus récent d'abord)."""
        with self._lock:
            ids = [r.id for r in records]
            if len(set(ids)) != len(ids) or any(i in self._index for i in ids):
                raise DuplicateRecordError("Identifiant de fichier déjà présent dans le lot")
            self._records = list(records) + self._records
            for r in records:
                self._index[r.id] = r
        logger.debug("Lot ajouté: %d fichier(s)", len(records))

    def update(self, record_id: str, **changes) -> FileRecord:
        with self._lock:
            record = self._index[record_id]
            if record.is_terminal:
                raise RecordFinalizedError(f"Enregistrement {record_id} déjà au statut {record.status.value}")
            for key, value in changes.items():
                if not hasattr(record, key):
                    raise AttributeError(f"Champ inconnu: {key}")
                setattr(record, key, value)
            snapshot = replace(record)
            self._notify(record)
        return snapshot

    def clear_all(self) -> None:
        with self._lock:
            self._records = []
            self._index = {}
        logger.info("Lot vidé")

    def set_processing(self, value: bool) -> None:
        with self._lock:
            self._processing = value

    # --- lectures ----------------------------------------------------------

    @property
    def processing(self) -> bool:
        return self._processing

    def get(self, record_id: str) -> Optional[FileRecord]:
        with self._lock:
            record = self._index.get(record_id)
            return replace(record) if record else None

    def records(self) -> List[FileRecord]:
        with self._lock:
            return [replace(r) for r in self._records]

    def completed(self) -> List[FileRecord]:
        return [r for r in self.records() if r.status == FileStatus.COMPLETED]

    def __len__(self) -> int:
        return len(self._records)
