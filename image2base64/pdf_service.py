import base64
import io
import logging
from typing import List

from pdf2image import convert_from_bytes
from PIL import Image

from .types import PageImage

logger = logging.getLogger(__name__)

# pdf2image raisonne en DPI ; 72 DPI correspond à l'échelle 1.0.
BASE_DPI = 72


class PdfSplitError(RuntimeError):
    """Le PDF n'a pas pu être découpé en images de pages."""


def _image_to_png_base64(img: Image.Image) -> str:
    with io.BytesIO() as buf:
        img.save(buf, format="PNG")
        return base64.b64encode(buf.getvalue()).decode("utf-8")


def split_pdf_to_pages(data: bytes, scale: float = 2.0) -> List[PageImage]:
    """
    Rasterise chaque page d'un PDF en PNG encodé en base64.

    Les pages sont numérotées à partir de 1, dans l'ordre du document.
    Toute erreur (PDF invalide, poppler absent...) lève `PdfSplitError`.
    """
    dpi = int(BASE_DPI * scale)
    try:
        images = convert_from_bytes(data, dpi=dpi, fmt="png")
    except Exception as e:
        raise PdfSplitError(f"Découpage PDF impossible: {e}") from e

    pages: List[PageImage] = []
    for idx, img in enumerate(images, start=1):
        try:
            pages.append(PageImage(page_number=idx, base64=_image_to_png_base64(img)))
        finally:
            img.close()
    logger.debug("PDF découpé en %d page(s) à %d DPI", len(pages), dpi)
    return pages


class PdfSplitter:
    def split(self, data: bytes) -> List[PageImage]:
        raise NotImplementedError


class Pdf2ImageSplitter(PdfSplitter):
    def __init__(self, scale: float = 2.0) -> None:
        self.scale = scale

    def split(self, data: bytes) -> List[PageImage]:
        return split_pdf_to_pages(data, scale=self.scale)
