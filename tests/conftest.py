"""Fixtures partagées : collaborateurs factices (extraction, découpage PDF) et fichiers de test."""

from __future__ import annotations

import base64
import io
import json
from typing import List, Optional, Sequence, Union

import pytest
from PIL import Image

from image2base64.extraction_service import ExtractionError, ExtractionService
from image2base64.pdf_service import PdfSplitError, PdfSplitter
from image2base64.types import PageImage, ProcessConfig, RawFile

MINIMAL_PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


def png_bytes(color: str = "red", size: tuple = (4, 4)) -> bytes:
    with io.BytesIO() as buf:
        Image.new("RGB", size, color).save(buf, format="PNG")
        return buf.getvalue()


class FakeExtractor(ExtractionService):
    """Renvoie une réponse fixe, ou échoue pour les fichiers listés dans `fail_on`."""

    def __init__(self, response: Optional[str] = None, fail_on: Sequence[str] = ()) -> None:
        self.response = response if response is not None else json.dumps(
            {
                "document_category": "passport",
                "document_details": {"name": "JOHN DOE", "passport_no": "N1234567"},
                "document_data": "{{image_data}}",
            }
        )
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []

    async def extract(self, payload: Union[str, Sequence[PageImage]], mime_type: str) -> str:
        self.calls.append((payload, mime_type))
        if isinstance(payload, str) and payload in self.fail_on:
            raise ExtractionError("Failed to extract text using AI.")
        return self.response


class FakeSplitter(PdfSplitter):
    def __init__(self, pages: int = 2, fail: bool = False) -> None:
        self.pages = pages
        self.fail = fail
        self.calls = 0

    def split(self, data: bytes) -> List[PageImage]:
        self.calls += 1
        if self.fail:
            raise PdfSplitError("not a PDF")
        page_b64 = base64.b64encode(png_bytes("blue")).decode("utf-8")
        return [PageImage(page_number=i, base64=page_b64) for i in range(1, self.pages + 1)]


@pytest.fixture
def cfg(tmp_path) -> ProcessConfig:
    return ProcessConfig(out_root=tmp_path / "outputs")


@pytest.fixture
def png_file() -> RawFile:
    return RawFile(name="photo.png", data=png_bytes(), mime_type="image/png", relative_path="scans/photo.png")


@pytest.fixture
def pdf_file() -> RawFile:
    return RawFile(name="doc.pdf", data=MINIMAL_PDF, mime_type="application/pdf")


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def splitter() -> FakeSplitter:
    return FakeSplitter()
