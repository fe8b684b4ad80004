"""Classification des réponses d'extraction pour l'affichage."""

import json
from typing import Any, List

from .codec import format_file_size, truncate_string
from .types import FileRecord, FileStatus, ParsedExtraction, Recognized, Unrecognized

LONG_STRING_LIMIT = 1000


def classify(extracted_text: str) -> ParsedExtraction:
    """Décide une seule fois si la réponse est un document reconnu ou du texte brut."""
    try:
        parsed = json.loads(extracted_text)
    except (TypeError, ValueError):
        return Unrecognized(raw=extracted_text)

    if not isinstance(parsed, dict) or not isinstance(parsed.get("document_details"), dict):
        return Unrecognized(raw=extracted_text)

    pages = parsed.get("pages")
    return Recognized(
        category=parsed.get("document_category"),
        details=parsed["document_details"],
        data=parsed.get("document_data"),
        pages=pages if isinstance(pages, list) else [],
        payload=parsed,
    )


def truncate_long_strings(value: Any, limit: int = LONG_STRING_LIMIT) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:50] + "... [TRUNCATED] ..." + value[-50:]
    if isinstance(value, list):
        return [truncate_long_strings(v, limit) for v in value]
    if isinstance(value, dict):
        return {k: truncate_long_strings(v, limit) for k, v in value.items()}
    return value


def render_text(record: FileRecord, full: bool = False) -> str:
    lines: List[str] = [
        f"{record.name} [{record.folder_name}] - {format_file_size(record.size)} - {record.status.value}"
    ]
    if record.status == FileStatus.ERROR:
        lines.append(f"  Erreur: {record.error}")
        return "\n".join(lines)
    if record.status != FileStatus.COMPLETED:
        return "\n".join(lines)

    lines.append(f"  Base64: {truncate_string(record.base64, 60)}")
    result = classify(record.extracted_text)
    if isinstance(result, Recognized) and not full:
        lines.append(f"  Catégorie: {result.category}")
        for key, value in result.details.items():
            label = key.replace("_", " ")
            lines.append(f"  - {label}: {value if value is not None else 'N/A'}")
        for page in result.pages:
            lines.append(f"  Page {page.get('page_number')}: {page.get('base64_preview')}")
    elif isinstance(result, Recognized):
        lines.append(json.dumps(result.payload, ensure_ascii=False, indent=2))
    else:
        try:
            shown = truncate_long_strings(json.loads(result.raw)) if not full else json.loads(result.raw)
            lines.append(json.dumps(shown, ensure_ascii=False, indent=2))
        except ValueError:
            lines.append(result.raw)
    return "\n".join(lines)
