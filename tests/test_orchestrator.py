from __future__ import annotations

import base64
import json

import pytest

from conftest import MINIMAL_PDF, FakeExtractor, FakeSplitter, png_bytes
from image2base64.codec import encode_bytes
from image2base64.orchestrator import create_records, folder_label, merge_extraction, run_batch, submit_batch
from image2base64.store import BatchStore
from image2base64.types import FileStatus, PageImage, RawFile


def _batch(raw_files):
    store = BatchStore()
    records = create_records(raw_files)
    store.append_batch(records)
    return store, records


class TestCreateRecords:
    def test_pending_with_empty_payloads(self, png_file, pdf_file):
        records = create_records([png_file, pdf_file])
        assert [r.status for r in records] == [FileStatus.PENDING, FileStatus.PENDING]
        assert all(r.base64 == "" and r.extracted_text == "" and r.pages is None for r in records)
        assert records[0].name == "photo.png"
        assert records[0].size == len(png_file.data)

    def test_identifiers_unique(self, png_file):
        records = create_records([png_file] * 50)
        assert len({r.id for r in records}) == 50

    def test_folder_label(self):
        assert folder_label("scans/2024/photo.png") == "scans"
        assert folder_label("") == "Root"
        assert folder_label("photo.png") == "Root"


class TestMergeExtraction:
    def test_placeholder_replaced_without_pages(self):
        out = merge_extraction('{"document_data": "{{image_data}}"}', None, "QUJD")
        assert json.loads(out)["document_data"] == "QUJD"

    def test_pages_injected_when_json(self):
        pages = [PageImage(1, "A" * 150), PageImage(2, "B" * 10)]
        out = json.loads(merge_extraction('{"document_category": "id"}', pages, "A" * 150))
        assert out["pages"] == [
            {"page_number": 1, "base64_preview": "A" * 100 + "..."},
            {"page_number": 2, "base64_preview": "B" * 10 + "..."},
        ]
        assert out["document_category"] == "id"

    def test_raw_text_kept_when_pages_and_invalid_json(self):
        pages = [PageImage(1, "AAAA")]
        assert merge_extraction("not json", pages, "AAAA") == "not json"


@pytest.mark.asyncio
async def test_all_records_reach_terminal_status(png_file, pdf_file, extractor, splitter):
    raw_files = [png_file, pdf_file, png_file]
    store, records = _batch(raw_files)

    report = await run_batch(raw_files, records, store, extractor=extractor, splitter=splitter)

    statuses = [r.status for r in store.records()]
    assert all(s in (FileStatus.COMPLETED, FileStatus.ERROR) for s in statuses)
    assert report.total == 3
    assert report.completed == 3
    assert store.processing is False


@pytest.mark.asyncio
async def test_image_payload_and_placeholder(png_file, extractor, splitter):
    store, records = _batch([png_file])
    await run_batch([png_file], records, store, extractor=extractor, splitter=splitter)

    record = store.get(records[0].id)
    assert record.base64 == encode_bytes(png_file.data)
    assert record.pages is None
    assert json.loads(record.extracted_text)["document_data"] == record.base64
    assert extractor.calls == [(record.base64, "image/png")]
    assert splitter.calls == 0


@pytest.mark.asyncio
async def test_pdf_split_into_pages(pdf_file, extractor):
    splitter = FakeSplitter(pages=3)
    store, records = _batch([pdf_file])
    await run_batch([pdf_file], records, store, extractor=extractor, splitter=splitter)

    record = store.get(records[0].id)
    assert record.status == FileStatus.COMPLETED
    assert [p.page_number for p in record.pages] == [1, 2, 3]
    assert record.base64 == record.pages[0].base64
    parsed = json.loads(record.extracted_text)
    assert [p["page_number"] for p in parsed["pages"]] == [1, 2, 3]
    payload, mime = extractor.calls[0]
    assert list(payload) == record.pages
    assert mime == "application/pdf"


@pytest.mark.asyncio
async def test_single_page_pdf_keeps_pages(pdf_file, extractor):
    store, records = _batch([pdf_file])
    await run_batch([pdf_file], records, store, extractor=extractor, splitter=FakeSplitter(pages=1))

    record = store.get(records[0].id)
    assert [p.page_number for p in record.pages] == [1]
    assert record.base64 == record.pages[0].base64
    assert [p["page_number"] for p in json.loads(record.extracted_text)["pages"]] == [1]


@pytest.mark.asyncio
async def test_pdf_split_failure_falls_back_to_whole_file(pdf_file, extractor):
    store, records = _batch([pdf_file])
    await run_batch([pdf_file], records, store, extractor=extractor, splitter=FakeSplitter(fail=True))

    record = store.get(records[0].id)
    assert record.status == FileStatus.COMPLETED
    assert record.pages is None
    assert record.base64 == base64.b64encode(MINIMAL_PDF).decode("utf-8")
    assert record.base64 != ""


@pytest.mark.asyncio
async def test_pdf_without_pages_falls_back(pdf_file, extractor):
    store, records = _batch([pdf_file])
    await run_batch([pdf_file], records, store, extractor=extractor, splitter=FakeSplitter(pages=0))

    record = store.get(records[0].id)
    assert record.pages is None
    assert record.base64 == encode_bytes(MINIMAL_PDF)


@pytest.mark.asyncio
async def test_extraction_failure_is_not_fatal(splitter):
    first = RawFile(name="a.png", data=png_bytes("red"), mime_type="image/png")
    second = RawFile(name="b.png", data=png_bytes("green"), mime_type="image/png")
    extractor = FakeExtractor(fail_on=[encode_bytes(first.data)])
    store, records = _batch([first, second])

    await run_batch([first, second], records, store, extractor=extractor, splitter=splitter)

    failed, ok = store.get(records[0].id), store.get(records[1].id)
    assert failed.status == FileStatus.COMPLETED
    assert failed.extracted_text == "Extraction failed: Failed to extract text using AI."
    assert ok.status == FileStatus.COMPLETED
    assert json.loads(ok.extracted_text)["document_category"] == "passport"
    assert len(extractor.calls) == 2


class _BrokenRaw(RawFile):
    @property
    def size(self) -> int:
        return 0

    def __getattribute__(self, item):
        if item == "data":
            raise OSError("read error")
        return super().__getattribute__(item)


@pytest.mark.asyncio
async def test_unexpected_failure_marks_error_and_continues(png_file, extractor, splitter):
    broken = _BrokenRaw(name="broken.png", data=b"", mime_type="image/png")
    store, records = _batch([broken, png_file])

    report = await run_batch([broken, png_file], records, store, extractor=extractor, splitter=splitter)

    bad, good = store.get(records[0].id), store.get(records[1].id)
    assert bad.status == FileStatus.ERROR
    assert bad.error == "read error"
    assert good.status == FileStatus.COMPLETED
    assert report.errors == 1 and report.completed == 1


@pytest.mark.asyncio
async def test_status_visible_progressively(png_file, extractor, splitter):
    store, records = _batch([png_file, png_file])
    seen = []
    store.subscribe(lambda r: seen.append((r.id, r.status)))

    await run_batch([png_file, png_file], records, store, extractor=extractor, splitter=splitter)

    a, b = records[0].id, records[1].id
    assert seen == [
        (a, FileStatus.PROCESSING),
        (a, FileStatus.COMPLETED),
        (b, FileStatus.PROCESSING),
        (b, FileStatus.COMPLETED),
    ]


@pytest.mark.asyncio
async def test_processing_flag_set_during_batch(png_file, splitter):
    store, records = _batch([png_file])
    flags = []

    class SpyExtractor(FakeExtractor):
        async def extract(self, payload, mime_type):
            flags.append(store.processing)
            return "{}"

    await run_batch([png_file], records, store, extractor=SpyExtractor(), splitter=splitter)
    assert flags == [True]
    assert store.processing is False


@pytest.mark.asyncio
async def test_length_mismatch_rejected(png_file, extractor, splitter):
    store = BatchStore()
    with pytest.raises(ValueError):
        await run_batch([png_file], [], store, extractor=extractor, splitter=splitter)


@pytest.mark.asyncio
async def test_clear_during_batch_does_not_abort(png_file, splitter):
    store = BatchStore()

    class ClearingExtractor(FakeExtractor):
        async def extract(self, payload, mime_type):
            store.clear_all()
            return "{}"

    report = await submit_batch([png_file, png_file], store, extractor=ClearingExtractor(), splitter=splitter)
    assert len(store) == 0
    assert report.total == 2


@pytest.mark.asyncio
async def test_submit_batch_prepends_records(png_file, pdf_file, extractor, splitter):
    store = BatchStore()
    await submit_batch([png_file], store, extractor=extractor, splitter=splitter)
    await submit_batch([pdf_file], store, extractor=extractor, splitter=splitter)

    names = [r.name for r in store.records()]
    assert names == ["doc.pdf", "photo.png"]
