from pathlib import Path

from .codec import decode_bytes, extension_for_mime
from .snapshot import render_json_snapshot
from .storage import safe_name
from .types import DecodedResource, FileRecord


def _record_prefix(record: FileRecord) -> str:
    return safe_name(f"{record.folder_name}_{Path(record.name).stem}_{record.id}")


def write_record_outputs(out_dir: Path, record: FileRecord) -> Path:
    """
    Écrit la réponse d'extraction (`.json`) et le base64 principal (`.b64.txt`)
    d'un fichier traité.
    """
    prefix = _record_prefix(record)
    json_path = out_dir / f"{prefix}.json"
    json_path.write_text(record.extracted_text, encoding="utf-8")
    (out_dir / f"{prefix}.b64.txt").write_text(record.base64, encoding="utf-8")
    return json_path


def write_snapshot(out_dir: Path, record: FileRecord) -> Path:
    """Écrit l'image PNG du panneau de données extraites."""
    path = out_dir / f"{_record_prefix(record)}_json.png"
    path.write_bytes(render_json_snapshot(record.extracted_text))
    return path


def write_decoded_file(out_dir: Path, resource: DecodedResource) -> Path:
    """Télécharge la ressource décodée sous `converted-file.<ext>`."""
    data = decode_bytes(resource)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"converted-file.{extension_for_mime(resource.mime_type)}"
    path.write_bytes(data)
    return path
