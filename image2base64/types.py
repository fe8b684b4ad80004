from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({FileStatus.COMPLETED, FileStatus.ERROR})


@dataclass
class ProcessConfig:
    """Configuration de haut niveau pour exécuter le pipeline."""
    out_root: Path
    pdf_scale: float = 2.0               # facteur de rendu des pages PDF
    debounce_delay: float = 0.5          # secondes
    min_auto_length: int = 20
    export_base64_cap: int = 32000       # limite d'une cellule Excel
    default_mime: str = "image/png"      # politique "lenient" du décodage
    sheet_name: str = "Processed Data"


@dataclass(frozen=True)
class PageImage:
    page_number: int
    base64: str


@dataclass
class RawFile:
    """Un fichier sélectionné par l'utilisateur, avant traitement."""
    name: str
    data: bytes
    mime_type: str
    relative_path: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FileRecord:
    id: str
    name: str
    folder_name: str
    type: str
    size: int
    base64: str = ""
    pages: Optional[List[PageImage]] = None
    extracted_text: str = ""
    status: FileStatus = FileStatus.PENDING
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class DecodedResource:
    """Résultat d'un décodage base64 prêt à être affiché ou téléchargé."""
    mime_type: str
    base64: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"

    @property
    def is_pdf(self) -> bool:
        return "pdf" in self.mime_type


@dataclass
class Recognized:
    """Réponse d'extraction reconnue (objet JSON avec `document_details`)."""
    category: Optional[str]
    details: Dict[str, Any]
    data: Optional[str] = None
    pages: List[Dict[str, Any]] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Unrecognized:
    raw: str


ParsedExtraction = Union[Recognized, Unrecognized]


@dataclass
class BatchReport:
    total: int
    completed: int
    errors: int
    duration_sec: float
