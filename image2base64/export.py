import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .results import truncate_long_strings
from .types import FileRecord, FileStatus

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["Folder Name", "File Name", "Extracted Data (JSON)", "Base64 Content"]
DEFAULT_BASE64_CAP = 32000
DEFAULT_SHEET_NAME = "Processed Data"
DEFAULT_EXPORT_NAME = "processed_documents.xlsx"
# Taille maximale d'une cellule Excel.
EXCEL_CELL_LIMIT = 32767


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def clean_object(value: Any) -> Any:
    """
    Supprime récursivement les valeurs nulles ou vides.

    Un objet ou tableau vidé par le nettoyage est lui-même supprimé (`None`).
    """
    if isinstance(value, list):
        items = [clean_object(v) for v in value]
        items = [v for v in items if not _is_empty(v)]
        return items or None
    if isinstance(value, dict):
        entries = {k: clean_object(v) for k, v in value.items()}
        entries = {k: v for k, v in entries.items() if not _is_empty(v)}
        return entries or None
    return value


def _cleaned_json(extracted_text: str) -> str:
    try:
        parsed = json.loads(extracted_text)
        cleaned = clean_object(parsed)
        if cleaned is None:
            cleaned = {}
    except (TypeError, ValueError):
        cleaned = {"error": "Invalid JSON", "raw": extracted_text}
    # Les longues chaînes (base64 renvoyé par le modèle...) sont abrégées comme à l'affichage.
    text = json.dumps(truncate_long_strings(cleaned), ensure_ascii=False, separators=(",", ":"))
    return text[:EXCEL_CELL_LIMIT]


def build_rows(records: Sequence[FileRecord], cap: int = DEFAULT_BASE64_CAP) -> List[Dict[str, str]]:
    """Une ligne par fichier `completed` ; les autres statuts sont ignorés."""
    rows: List[Dict[str, str]] = []
    for r in records:
        if r.status != FileStatus.COMPLETED:
            continue
        rows.append(
            {
                "Folder Name": r.folder_name,
                "File Name": r.name,
                "Extracted Data (JSON)": _cleaned_json(r.extracted_text),
                "Base64 Content": r.base64[:cap],
            }
        )
    return rows


def write_workbook(rows: List[Dict[str, str]], path: Path, sheet_name: str = DEFAULT_SHEET_NAME) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    return path


def export_to_excel(
    records: Sequence[FileRecord],
    path: Path,
    sheet_name: str = DEFAULT_SHEET_NAME,
    cap: int = DEFAULT_BASE64_CAP,
) -> Optional[Path]:
    """
    Exporte les fichiers terminés dans un classeur Excel à une feuille.

    Retourne `None` (sans lever d'exception) s'il n'y a rien à exporter.
    """
    rows = build_rows(records, cap=cap)
    if not rows:
        logger.warning("No completed files to export.")
        return None
    out = write_workbook(rows, path, sheet_name=sheet_name)
    logger.info("Export Excel: %d ligne(s) → %s", len(rows), out)
    return out
