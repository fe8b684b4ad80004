import json
import mimetypes
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .types import FileRecord, RawFile

_UNSAFE_RE = re.compile(r"[^\w.-]+")


def safe_name(name: str) -> str:
    """Nom de fichier sûr : caractères hors `[\\w.-]` regroupés en un seul `_`."""
    return _UNSAFE_RE.sub("_", name).strip("_") or "file"


def create_batch_dir(out_root: Path, started: Optional[datetime] = None) -> Path:
    """
    Crée le dossier de sortie d'un lot : `batch_<AAAAMMJJ_HHMMSS>`.

    Deux lots lancés dans la même seconde reçoivent un suffixe `_2`, `_3`...
    """
    stamp = f"batch_{(started or datetime.now()):%Y%m%d_%H%M%S}"
    out_root.mkdir(parents=True, exist_ok=True)
    candidate = out_root / stamp
    n = 1
    while True:
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            n += 1
            candidate = out_root / f"{stamp}_{n}"


def guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def load_raw_file(path: Path, base_dir: Optional[Path] = None) -> RawFile:
    """
    Lit un fichier sur disque.

    Si `base_dir` est fourni (dossier sélectionné), le chemin relatif commence
    par le nom de ce dossier, comme pour un upload de dossier.
    """
    relative = ""
    if base_dir is not None:
        relative = (Path(base_dir.name) / path.relative_to(base_dir)).as_posix()
    return RawFile(
        name=path.name,
        data=path.read_bytes(),
        mime_type=guess_mime_type(path),
        relative_path=relative,
    )


def record_to_dict(record: FileRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "name": record.name,
        "folder_name": record.folder_name,
        "type": record.type,
        "size": record.size,
        "status": record.status.value,
        "error": record.error,
        "pages": len(record.pages) if record.pages else 0,
    }


def write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def write_batch_status(process_dir: Path, records: Sequence[FileRecord]) -> Path:
    p = process_dir / "status.json"
    write_json(p, {"files": [record_to_dict(r) for r in records]})
    return p

