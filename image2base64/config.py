import os
from pathlib import Path
from typing import Optional

from .types import ProcessConfig


def load_config(
    out_root: Optional[str] = None,
    pdf_scale: Optional[float] = None,
    export_base64_cap: Optional[int] = None,
    default_mime: Optional[str] = None,
) -> ProcessConfig:
    root = Path(out_root or os.getenv("PIPELINE_OUT_ROOT", "outputs")).expanduser().resolve()

    cfg = ProcessConfig(
        out_root=root,
        pdf_scale=float(pdf_scale or float(os.getenv("PDF_RENDER_SCALE", "2.0"))),
        debounce_delay=int(os.getenv("DECODE_DEBOUNCE_MS", "500")) / 1000,
        min_auto_length=int(os.getenv("DECODE_MIN_LENGTH", "20")),
        export_base64_cap=int(export_base64_cap or int(os.getenv("EXPORT_BASE64_CAP", "32000"))),
        default_mime=(default_mime or os.getenv("DECODE_DEFAULT_MIME", "image/png")).lower(),
        sheet_name=os.getenv("EXPORT_SHEET_NAME", "Processed Data"),
    )
    return cfg
