import asyncio
import json
import logging
import time
import uuid
from typing import List, Optional, Sequence

from .codec import file_to_base64
from .config import load_config
from .extraction_service import IMAGE_DATA_PLACEHOLDER, AzureExtractionService, ExtractionService
from .pdf_service import Pdf2ImageSplitter, PdfSplitError, PdfSplitter
from .store import BatchStore, RecordFinalizedError
from .types import BatchReport, FileRecord, FileStatus, PageImage, ProcessConfig, RawFile

logger = logging.getLogger(__name__)

ROOT_FOLDER_LABEL = "Root"
PAGE_PREVIEW_LENGTH = 100
PDF_MIME = "application/pdf"


def _new_record_id(taken: set) -> str:
    while True:
        candidate = uuid.uuid4().hex[:9]
        if candidate not in taken:
            taken.add(candidate)
            return candidate


def folder_label(relative_path: str) -> str:
    """Premier segment du chemin relatif d'upload, `Root` sinon."""
    parts = [p for p in relative_path.replace("\\", "/").split("/") if p]
    return parts[0] if len(parts) > 1 else ROOT_FOLDER_LABEL


def create_records(raw_files: Sequence[RawFile], taken_ids: Optional[set] = None) -> List[FileRecord]:
    """Crée un enregistrement `pending` par fichier, dans le même ordre."""
    taken = set(taken_ids or ())
    return [
        FileRecord(
            id=_new_record_id(taken),
            name=raw.name,
            folder_name=folder_label(raw.relative_path),
            type=raw.mime_type,
            size=raw.size,
        )
        for raw in raw_files
    ]


def merge_extraction(response: str, pages: Optional[List[PageImage]], base64_payload: str) -> str:
    """
    Fusionne la réponse du service d'extraction avec les métadonnées du fichier.

    - avec pages : ajoute un tableau `pages` (numéro + aperçu tronqué) si la
      réponse est un objet JSON, sinon la réponse brute est conservée ;
    - sans pages : le marqueur `{{image_data}}` est remplacé par le base64.
    """
    if pages:
        try:
            parsed = json.loads(response)
        except ValueError:
            return response
        if not isinstance(parsed, dict):
            return response
        parsed["pages"] = [
            {
                "page_number": p.page_number,
                "base64_preview": p.base64[:PAGE_PREVIEW_LENGTH] + "...",
            }
            for p in pages
        ]
        return json.dumps(parsed, ensure_ascii=False, indent=2)
    return response.replace(IMAGE_DATA_PLACEHOLDER, base64_payload)


async def _to_base64(raw: RawFile, splitter: PdfSplitter):
    """Retourne (base64 principal, pages) ; un PDF non découpable retombe sur le fichier entier."""
    if raw.mime_type == PDF_MIME:
        try:
            pages = await asyncio.to_thread(splitter.split, raw.data)
            if not pages:
                raise PdfSplitError("Aucune page rendue")
            # La première page sert de base64 principal (miniature).
            return pages[0].base64, pages
        except Exception as e:
            logger.warning("Découpage PDF échoué pour %s, encodage du fichier entier: %s", raw.name, e)
    return file_to_base64(raw), None


async def process_file(
    raw: RawFile,
    record_id: str,
    store: BatchStore,
    extractor: ExtractionService,
    splitter: PdfSplitter,
) -> None:
    try:
        store.update(record_id, status=FileStatus.PROCESSING)
        logger.info("Traitement de %s (%s)", raw.name, raw.mime_type)

        # 1) Conversion base64 (ou découpage PDF)
        base64_payload, pages = await _to_base64(raw, splitter)

        # 2) Extraction IA ; un échec ici n'empêche pas le statut `completed`
        try:
            response = await extractor.extract(pages or base64_payload, raw.mime_type)
            extracted_text = merge_extraction(response, pages, base64_payload)
        except Exception as e:
            logger.warning("Extraction échouée pour %s: %s", raw.name, e)
            extracted_text = "Extraction failed: " + (str(e) or "Unknown error")

        store.update(
            record_id,
            base64=base64_payload,
            pages=pages,
            extracted_text=extracted_text,
            status=FileStatus.COMPLETED,
        )
        logger.info("✅ %s terminé", raw.name)
    except Exception as err:
        logger.error("❌ Échec: %s → %s", raw.name, err)
        try:
            store.update(record_id, status=FileStatus.ERROR, error=str(err) or "Generic error")
        except (KeyError, RecordFinalizedError):
            # Lot vidé pendant le traitement : plus rien à mettre à jour.
            logger.debug("Enregistrement %s introuvable ou déjà terminé", record_id)


async def run_batch(
    raw_files: Sequence[RawFile],
    records: Sequence[FileRecord],
    store: BatchStore,
    extractor: Optional[ExtractionService] = None,
    splitter: Optional[PdfSplitter] = None,
    cfg: Optional[ProcessConfig] = None,
) -> BatchReport:
    """
    Orchestrateur principal : base64 → extraction IA → enregistrement, fichier par fichier.

    Les fichiers sont traités strictement l'un après l'autre ; l'échec d'un
    fichier n'interrompt jamais le lot.
    """
    if len(raw_files) != len(records):
        raise ValueError("raw_files et records doivent avoir la même longueur")

    cfg = cfg or load_config()
    extractor = extractor or AzureExtractionService()
    splitter = splitter or Pdf2ImageSplitter(scale=cfg.pdf_scale)

    t0 = time.time()
    store.set_processing(True)
    try:
        for i, (raw, record) in enumerate(zip(raw_files, records), start=1):
            logger.debug("[%d/%d] %s", i, len(raw_files), raw.name)
            await process_file(raw, record.id, store, extractor, splitter)
    finally:
        store.set_processing(False)

    ids = {r.id for r in records}
    final = [r for r in store.records() if r.id in ids]
    return BatchReport(
        total=len(records),
        completed=sum(1 for r in final if r.status == FileStatus.COMPLETED),
        errors=sum(1 for r in final if r.status == FileStatus.ERROR),
        duration_sec=time.time() - t0,
    )


async def submit_batch(
    raw_files: Sequence[RawFile],
    store: BatchStore,
    extractor: Optional[ExtractionService] = None,
    splitter: Optional[PdfSplitter] = None,
    cfg: Optional[ProcessConfig] = None,
) -> BatchReport:
    """Crée les enregistrements d'un lot, les ajoute au store puis lance le traitement."""
    records = create_records(raw_files, taken_ids={r.id for r in store.records()})
    store.append_batch(records)
    return await run_batch(raw_files, records, store, extractor=extractor, splitter=splitter, cfg=cfg)
