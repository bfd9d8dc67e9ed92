"""Tests for the document intake pipeline with a stubbed extractor."""

from unittest.mock import ANY, AsyncMock, MagicMock, patch

import fitz
import pytest

from docintake.config import Settings
from docintake.core.catalog import CatalogProvider, load_default_catalog
from docintake.core.exceptions import (
    ExtractionParseError,
    FileTooLargeError,
    InvalidReportInputError,
    UnsupportedMediaTypeError,
)
from docintake.core.models import NormalizedDocument, PageRange
from docintake.pipeline import DocumentIntakePipeline


def make_pdf(page_count: int) -> bytes:
    doc = fitz.open()
    try:
        for _ in range(page_count):
            doc.new_page()
        return doc.tobytes()
    finally:
        doc.close()


@pytest.fixture
def extractor():
    stub = MagicMock()
    stub.extract = AsyncMock()
    return stub


@pytest.fixture
def pipeline(extractor):
    settings = Settings(gemini_api_key="test-key", max_upload_mb=1)
    return DocumentIntakePipeline(settings, CatalogProvider(load_default_catalog), extractor)


class TestProcess:

    @pytest.mark.asyncio
    async def test_normalizes_extraction(self, pipeline, extractor):
        extractor.extract.return_value = {
            "cedula-identidad": {"rut": "11.111.111-1"},
            "liquidacion-sueldo": [{"periodo": "2025-07", "liquido_a_pagar": 1}],
            "comentario": "dos documentos",
        }

        documents = await pipeline.process(b"%PDF", "application/pdf")

        assert [d.doc_type_id for d in documents] == ["cedula-identidad", "liquidacion-sueldo"]
        assert documents[1].doc_date == "2025-07-01"
        extractor.extract.assert_awaited_once_with(b"%PDF", "application/pdf", None, catalog=ANY)

    @pytest.mark.asyncio
    async def test_hint_passed_to_extractor(self, pipeline, extractor):
        extractor.extract.return_value = {"rut": "1-9"}

        documents = await pipeline.process(b"img", "IMAGE/PNG", "cedula-identidad")

        assert documents[0].data == {"rut": "1-9"}
        extractor.extract.assert_awaited_once_with(b"img", "image/png", "cedula-identidad", catalog=ANY)

    @pytest.mark.asyncio
    async def test_rejected_upload_never_reaches_extractor(self, pipeline, extractor):
        with pytest.raises(UnsupportedMediaTypeError):
            await pipeline.process(b"text", "text/plain")
        with pytest.raises(FileTooLargeError):
            await pipeline.process(b"x" * (1024 * 1024 + 1), "application/pdf")
        extractor.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_catalog_snapshot_per_upload(self, pipeline, extractor):
        extractor.extract.return_value = {"cedula-identidad": {"rut": "1-9"}}
        snapshot = pipeline.catalog_provider.snapshot()

        with patch.object(pipeline.catalog_provider, "snapshot", return_value=snapshot) as snapshot_mock:
            await pipeline.process(b"img", "image/png")

        snapshot_mock.assert_called_once_with()
        assert extractor.extract.await_args.kwargs["catalog"] is snapshot

    @pytest.mark.asyncio
    async def test_parse_error_propagates(self, pipeline, extractor):
        extractor.extract.side_effect = ExtractionParseError("basura")
        with pytest.raises(ExtractionParseError):
            await pipeline.process(b"%PDF", "application/pdf")

    @pytest.mark.asyncio
    async def test_nothing_recognized(self, pipeline, extractor):
        extractor.extract.return_value = {"resultado": "sin datos"}
        assert await pipeline.process(b"%PDF", "application/pdf") == []

    @pytest.mark.asyncio
    async def test_process_file(self, pipeline, extractor, tmp_path):
        path = tmp_path / "carnet.jpg"
        path.write_bytes(b"jpeg-bytes")
        extractor.extract.return_value = {"cedula-identidad": {"rut": "1-9"}}

        documents = await pipeline.process_file(path)

        assert documents[0].doc_type_id == "cedula-identidad"
        extractor.extract.assert_awaited_once_with(b"jpeg-bytes", "image/jpeg", None, catalog=ANY)

    @pytest.mark.asyncio
    async def test_process_file_unknown_extension(self, pipeline, tmp_path):
        path = tmp_path / "notas.txt"
        path.write_text("hola")
        with pytest.raises(UnsupportedMediaTypeError):
            await pipeline.process_file(path)


class TestBuildReport:

    def test_report_from_request_body(self, pipeline):
        report = pipeline.build_report({"documents": [
            {"docTypeId": "cedula-identidad", "data": {"rut": "11.111.111-1", "nombres": "Ana", "apellidos": "Soto"}},
        ]})
        assert report.meta.main_name == "Ana Soto"

    def test_invalid_body(self, pipeline):
        with pytest.raises(InvalidReportInputError):
            pipeline.build_report("documents")


class TestSplitFiles:

    def test_pdf_sliced_by_page_range(self, pipeline):
        pdf = make_pdf(4)
        documents = [
            NormalizedDocument(doc_type_id="cedula-identidad", data={}, page_range=PageRange(start=1, end=1)),
            NormalizedDocument(doc_type_id="liquidacion-sueldo", doc_date="2025-07-01", is_multiple=True,
                               data=[{}], page_range=PageRange(start=2, end=4)),
        ]

        files = pipeline.split_files(pdf, "application/pdf", documents)

        assert [f.filename for f in files] == [
            "unknown-date_cedula-identidad.pdf",
            "2025-07-01_liquidacion-sueldo.pdf",
        ]
        with fitz.open(stream=files[1].content, filetype="pdf") as doc:
            assert doc.page_count == 3

    def test_pdf_documents_without_valid_range_skipped(self, pipeline):
        pdf = make_pdf(2)
        documents = [
            NormalizedDocument(doc_type_id="cedula-identidad", data={}),
            NormalizedDocument(doc_type_id="cuenta-bancaria", data={}, page_range=PageRange(start=2, end=5)),
        ]
        assert pipeline.split_files(pdf, "application/pdf", documents) == []

    def test_unreadable_pdf_skipped(self, pipeline):
        documents = [
            NormalizedDocument(doc_type_id="cedula-identidad", data={}, page_range=PageRange(start=1, end=1)),
        ]
        assert pipeline.split_files(b"not a pdf at all", "application/pdf", documents) == []

    def test_image_returned_whole_per_document(self, pipeline):
        documents = [
            NormalizedDocument(doc_type_id="cedula-identidad", data={}),
            NormalizedDocument(doc_type_id="cuenta-bancaria", doc_date="2025-06-01", data={}),
        ]

        files = pipeline.split_files(b"png-bytes", "image/png", documents)

        assert [f.filename for f in files] == [
            "unknown-date_cedula-identidad.png",
            "2025-06-01_cuenta-bancaria.png",
        ]
        assert all(f.content == b"png-bytes" for f in files)
