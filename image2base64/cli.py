import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from .codec import Base64DecodeError, decode_input
from .config import load_config
from .debounce import AutoConverter
from .export import DEFAULT_EXPORT_NAME, export_to_excel
from .orchestrator import submit_batch
from .results import render_text
from .storage import create_batch_dir, guess_mime_type, load_raw_file, write_batch_status
from .store import BatchStore
from .types import DecodedResource, FileRecord, FileStatus, ProcessConfig, RawFile
from .writer import write_decoded_file, write_record_outputs, write_snapshot

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def _is_supported(path: Path) -> bool:
    mime = guess_mime_type(path)
    return mime.startswith("image/") or mime == "application/pdf"


def find_documents(input_dir: str) -> List[Path]:
    """
    Retourne tous les fichiers supportés dans le dossier d'entrée :
    - PDF
    - Images (PNG, JPEG, GIF, WEBP...)
    """
    root = Path(input_dir).expanduser().resolve()
    return sorted(p for p in root.rglob("*") if p.is_file() and _is_supported(p))


def collect_raw_files(inputs: List[str]) -> List[RawFile]:
    raw_files: List[RawFile] = []
    for item in inputs:
        path = Path(item).expanduser().resolve()
        if path.is_dir():
            raw_files.extend(load_raw_file(p, base_dir=path) for p in find_documents(str(path)))
        elif path.is_file() and _is_supported(path):
            raw_files.append(load_raw_file(path))
        else:
            print(f"⚠️ Ignoré (introuvable ou type non supporté): {item}")
    return raw_files


def _print_progress(record: FileRecord) -> None:
    marker = {
        FileStatus.PROCESSING: "⏳",
        FileStatus.COMPLETED: "✅",
        FileStatus.ERROR: "❌",
    }.get(record.status, "•")
    print(f"{marker} {record.folder_name}/{record.name} → {record.status.value}")


def run_process(args: argparse.Namespace, cfg: ProcessConfig) -> int:
    raw_files = collect_raw_files(args.input)
    if not raw_files:
        print("Aucun fichier image/PDF trouvé.")
        return 0

    process_dir = create_batch_dir(cfg.out_root)
    print(f"{len(raw_files)} fichier(s) détecté(s) → sortie: {process_dir}")

    store = BatchStore()
    store.subscribe(_print_progress)
    report = asyncio.run(submit_batch(raw_files, store, cfg=cfg))

    records = store.records()
    for record in records:
        print()
        print(render_text(record, full=args.full))
        if record.status == FileStatus.COMPLETED:
            write_record_outputs(process_dir, record)
            if args.snapshots:
                write_snapshot(process_dir, record)
    write_batch_status(process_dir, records)

    print(
        f"\nLot terminé en {report.duration_sec:.1f}s: "
        f"{report.completed} terminé(s), {report.errors} en erreur."
    )

    if args.export is not None:
        target = Path(args.export) if args.export else process_dir / DEFAULT_EXPORT_NAME
        written = export_to_excel(records, target, sheet_name=cfg.sheet_name, cap=cfg.export_base64_cap)
        if written is None:
            print("No completed files to export.")
        else:
            print(f"📊 Export Excel: {written}")
    return 0


def _print_resource(resource: DecodedResource, out_dir: Path) -> None:
    path = write_decoded_file(out_dir, resource)
    kind = "PDF" if resource.is_pdf else "image"
    print(f"✅ {kind} ({resource.mime_type}) → {path}")


async def _interactive_decode(cfg: ProcessConfig, out_dir: Path) -> None:
    """Lit l'entrée standard ligne par ligne ; l'aperçu se met à jour après une pause."""
    converter = AutoConverter(
        delay=cfg.debounce_delay,
        min_length=cfg.min_auto_length,
        default_mime=cfg.default_mime,
        on_preview=lambda res: _print_resource(res, out_dir),
    )
    loop = asyncio.get_running_loop()
    text = ""
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        text += line
        converter.feed(text)
    # Fin de saisie : conversion manuelle immédiate, sauf si l'aperçu est déjà à jour.
    if not converter.up_to_date:
        converter.submit()


def run_decode(args: argparse.Namespace, cfg: ProcessConfig) -> int:
    out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else cfg.out_root
    try:
        if args.interactive:
            asyncio.run(_interactive_decode(cfg, out_dir))
            return 0

        if args.file:
            text = Path(args.file).read_text(encoding="utf-8")
        elif args.text == "-":
            text = sys.stdin.read()
        else:
            text = args.text or ""

        resource = decode_input(text, manual=True, default_mime=cfg.default_mime)
        _print_resource(resource, out_dir)
    except Base64DecodeError as e:
        print(f"❌ {e}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image2base64",
        description="Images/PDF → base64 + extraction IA (Azure OpenAI), et base64 → image/PDF.",
    )
    parser.add_argument("--out-root", required=False, help="Dossier racine de sortie (défaut: outputs)")
    parser.add_argument("--verbose", action="store_true", help="Logs détaillés (DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_process = sub.add_parser("process", help="Convertit des images/PDF et extrait leurs champs")
    p_process.add_argument("--input", nargs="+", required=True, help="Fichiers ou dossiers (images, PDF)")
    p_process.add_argument("--scale", type=float, default=None, help="Échelle de rendu des pages PDF (défaut via env PDF_RENDER_SCALE=2.0)")
    p_process.add_argument(
        "--export",
        nargs="?",
        const="",
        default=None,
        help=f"Exporte les fichiers terminés en Excel (défaut: <dossier du lot>/{DEFAULT_EXPORT_NAME})",
    )
    p_process.add_argument("--snapshots", action="store_true", help="Écrit une image PNG des données extraites")
    p_process.add_argument("--full", action="store_true", help="Affiche le JSON complet, sans troncature")

    p_decode = sub.add_parser("decode", help="Décode une chaîne base64 en image ou PDF")
    p_decode.add_argument("text", nargs="?", default=None, help="Chaîne base64 (avec ou sans préfixe data:), '-' pour stdin")
    p_decode.add_argument("--file", required=False, help="Fichier texte contenant la chaîne base64")
    p_decode.add_argument("--out-dir", required=False, help="Dossier de sortie du fichier décodé")
    p_decode.add_argument("--interactive", action="store_true", help="Conversion automatique pendant la saisie sur stdin")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    # Charger .env avant toute lecture d'os.getenv (config/services)
    load_dotenv(find_dotenv(usecwd=True), override=False)

    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    cfg = load_config(out_root=args.out_root, pdf_scale=getattr(args, "scale", None))
    try:
        if args.command == "process":
            code = run_process(args, cfg)
        else:
            code = run_decode(args, cfg)
    except KeyboardInterrupt:
        print("Interrompu par l'utilisateur.")
        sys.exit(130)
    except Exception as e:
        logger.exception("Échec de la commande %s", args.command)
        print(f"❌ Échec → {e}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
