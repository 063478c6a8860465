"""
Tests for document classification, page extraction and the straightening pipeline.
"""

import fitz
import img2pdf
import pytest

from conftest import (
    StubEstimator,
    fitz_pdf,
    jpeg_bytes,
    make_page,
    scanned_pdf,
    with_jfif_dpi,
)
from pdf_straighten.deskew import resolve_angles
from pdf_straighten.document import Document, PageEvent
from pdf_straighten.errors import (
    ClassificationError,
    DecodeError,
    EstimationError,
    ExtractionError,
    TransformError,
)
from pdf_straighten.transform import decode_image


def page_sizes(pdf_bytes):
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [(page.rect.width, page.rect.height) for page in doc]


class TestOpenClose:

    def test_from_bytes(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            assert doc.num_pages == 3
            assert not doc.closed
        assert doc.closed

    def test_from_file(self, tmp_path, three_page_pdf):
        path = tmp_path / "scan.pdf"
        path.write_bytes(three_page_pdf)
        with Document.from_file(path) as doc:
            assert doc.name == "scan.pdf"
            assert doc.num_pages == 3

    def test_close_is_idempotent(self, three_page_pdf):
        doc = Document.from_bytes(three_page_pdf)
        doc.close()
        doc.close()
        assert doc.closed

    def test_closed_document_refuses_work(self, three_page_pdf):
        doc = Document.from_bytes(three_page_pdf)
        doc.close()
        with pytest.raises(ValueError):
            doc.is_scanned()

    def test_closed_on_error(self, three_page_pdf):
        with pytest.raises(RuntimeError):
            with Document.from_bytes(three_page_pdf) as doc:
                raise RuntimeError("boom")
        assert doc.closed

    def test_garbage_is_extraction_error(self):
        with pytest.raises(ExtractionError):
            Document.from_bytes(b"this is not a pdf")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExtractionError):
            Document.from_file(tmp_path / "missing.pdf")


class TestIsScanned:

    def test_scanned_document(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            assert doc.is_scanned()

    def test_minimum_size_is_accepted(self):
        pdf = scanned_pdf(make_page(800, 600))
        with Document.from_bytes(pdf) as doc:
            assert doc.is_scanned()

    def test_small_image_is_not_scanned(self):
        pdf = scanned_pdf(make_page(850, 1100), make_page(400, 300))
        with Document.from_bytes(pdf) as doc:
            assert not doc.is_scanned()

    def test_page_without_image(self):
        pdf = fitz_pdf([{"images": [jpeg_bytes(make_page())]}, {}])
        with Document.from_bytes(pdf) as doc:
            assert not doc.is_scanned()

    def test_page_with_two_images(self):
        images = [jpeg_bytes(make_page(seed=1)), jpeg_bytes(make_page(seed=2))]
        pdf = fitz_pdf([{"images": images}])
        with Document.from_bytes(pdf) as doc:
            assert not doc.is_scanned()

    def test_page_with_text(self):
        pdf = fitz_pdf([
            {"images": [jpeg_bytes(make_page(seed=1))]},
            {"images": [jpeg_bytes(make_page(seed=2))], "text": "Invoice 42"},
        ])
        with Document.from_bytes(pdf) as doc:
            assert not doc.is_scanned()

    def test_engine_failure_is_classification_error(self, three_page_pdf, monkeypatch):
        def broken(self, *args, **kwargs):
            raise RuntimeError("text layer exploded")

        monkeypatch.setattr(fitz.Page, "get_text", broken)
        with Document.from_bytes(three_page_pdf) as doc:
            with pytest.raises(ClassificationError) as exc_info:
                doc.is_scanned()
        assert exc_info.value.page == 0


class TestPageImage:

    def test_extracts_jpeg(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            page = doc.page_image(1)
        assert page.index == 1
        assert page.ext == "jpg"
        assert page.raw[:2] == b"\xff\xd8"
        assert (page.width, page.height) == (900, 1150)
        assert page.channels == 1

    def test_resolution_from_page_box(self):
        # 850 x 1100 px filling a 612 x 792 pt page
        pdf = fitz_pdf([{"images": [jpeg_bytes(make_page(850, 1100))]}])
        with Document.from_bytes(pdf) as doc:
            page = doc.page_image(0)
        assert page.dpi == (pytest.approx(100.0), pytest.approx(100.0))

    def test_page_without_image(self):
        pdf = fitz_pdf([{}])
        with Document.from_bytes(pdf) as doc:
            with pytest.raises(ExtractionError) as exc_info:
                doc.page_image(0)
        assert exc_info.value.page == 0

    def test_page_with_two_images(self):
        images = [jpeg_bytes(make_page(seed=1)), jpeg_bytes(make_page(seed=2))]
        pdf = fitz_pdf([{"images": images}])
        with Document.from_bytes(pdf) as doc:
            with pytest.raises(ExtractionError):
                doc.page_image(0)

    def test_decode_is_lazy(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            page = doc.page_image(0)
        page.raw = b"corrupt"
        with pytest.raises(DecodeError):
            page.image


class TestPageAngles:

    def test_one_angle_per_page_in_order(self, three_page_pdf):
        estimator = StubEstimator([0.0, 1.2, -0.4])
        with Document.from_bytes(three_page_pdf) as doc:
            angles = doc.page_angles(2.5, True, estimator=estimator)
        assert angles == [0.0, 1.2, -0.4]
        assert [call[1:] for call in estimator.calls] == [(2.5, True)] * 3
        assert [call[0] for call in estimator.calls] == [
            (1100, 850), (1150, 900), (1060, 820),
        ]

    def test_observer_receives_page_events(self, three_page_pdf):
        events = []
        with Document.from_bytes(three_page_pdf) as doc:
            doc.page_angles(2.5, False, estimator=StubEstimator([0, 2, 0]), observer=events.append)
            raw_sizes = [len(page.raw) for page in doc.pages()]
        assert events == [
            PageEvent(0, raw_sizes[0], 0),
            PageEvent(1, raw_sizes[1], 2),
            PageEvent(2, raw_sizes[2], 0),
        ]

    def test_events_arrive_as_pages_finish(self, three_page_pdf):
        log = []

        class LoggingEstimator:
            def estimate(self, gray, max_angle, include_90_degrees=False):
                log.append("estimate")
                return 0.0

        with Document.from_bytes(three_page_pdf) as doc:
            doc.page_angles(
                2.5, False,
                estimator=LoggingEstimator(),
                observer=lambda event: log.append(event.page),
            )
        assert log == ["estimate", 0, "estimate", 1, "estimate", 2]

    def test_real_estimator(self):
        pdf = scanned_pdf(make_page(seed=1), make_page(angle=1.5, seed=2))
        with Document.from_bytes(pdf) as doc:
            angles = doc.page_angles(2.5, False)
        assert angles[0] == 0.0
        assert angles[1] == pytest.approx(1.5, abs=0.3)

    def test_workers_preserve_order(self, three_page_pdf):
        class SizeEstimator:
            def estimate(self, gray, max_angle, include_90_degrees=False):
                return float(gray.shape[1])

        with Document.from_bytes(three_page_pdf) as doc:
            angles = doc.page_angles(2.5, False, estimator=SizeEstimator(), workers=3)
        assert angles == [850.0, 900.0, 820.0]

    def test_estimator_failure(self, three_page_pdf):
        class BrokenEstimator:
            def estimate(self, gray, max_angle, include_90_degrees=False):
                raise ZeroDivisionError("oops")

        with Document.from_bytes(three_page_pdf) as doc:
            with pytest.raises(EstimationError) as exc_info:
                doc.page_angles(2.5, False, estimator=BrokenEstimator())
        assert exc_info.value.page == 0
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_negative_window_rejected(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            with pytest.raises(ValueError):
                doc.page_angles(-1, False)


class TestStraighten:

    def test_end_to_end_quarter_turn_reduced(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            raw = doc.page_angles(2.5, True, estimator=StubEstimator([0, 91, 0]))
            angles = resolve_angles(raw)
            assert angles == [0, 1, 0]

            originals = [page.raw for page in doc.pages()]
            pages = doc.straightened_images(angles)
            output = doc.straighten(angles)

        assert [page.index for page in pages] == [0, 1, 2]
        assert pages[0].passthrough and pages[0].data == originals[0]
        assert pages[2].passthrough and pages[2].data == originals[2]
        assert not pages[1].passthrough
        assert pages[1].ext == "jpg"
        assert pages[1].data != originals[1]
        # Rotated by -1° inside the crop tolerance: same canvas
        assert decode_image(pages[1].data).shape == (1150, 900)

        sizes = page_sizes(output)
        assert len(sizes) == 3
        ratios = [round(w / h, 3) for w, h in sizes]
        assert ratios == [round(850 / 1100, 3), round(900 / 1150, 3), round(820 / 1060, 3)]

    def test_passthrough_bytes_survive_assembly(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            originals = [page.raw for page in doc.pages()]
            output = doc.straighten([0, 0, 0])

        with Document.from_bytes(output) as straightened:
            assert straightened.num_pages == 3
            assert [page.raw for page in straightened.pages()] == originals

    def test_observer_receives_transform_events(self, three_page_pdf):
        events = []
        with Document.from_bytes(three_page_pdf) as doc:
            raw_sizes = [len(page.raw) for page in doc.pages()]
            doc.straighten([0, 1.0, 0], observer=events.append)
        assert events == [
            PageEvent(0, raw_sizes[0], 0),
            PageEvent(1, raw_sizes[1], 1.0),
            PageEvent(2, raw_sizes[2], 0),
        ]

    def test_page_size_kept_at_tagged_resolution(self):
        # 850 x 1100 px at 300 dpi is 204 x 264 pt
        pdf = img2pdf.convert([
            with_jfif_dpi(jpeg_bytes(make_page(seed=1)), 300),
            with_jfif_dpi(jpeg_bytes(make_page(seed=2)), 300),
        ])
        assert page_sizes(pdf) == [(pytest.approx(204), pytest.approx(264))] * 2

        with Document.from_bytes(pdf) as doc:
            output = doc.straighten([0, 1.0])
        sizes = page_sizes(output)
        assert len(sizes) == 2
        for width, height in sizes:
            assert width == pytest.approx(204, abs=0.5)
            assert height == pytest.approx(264, abs=0.5)

    def test_angle_count_must_match(self, three_page_pdf):
        with Document.from_bytes(three_page_pdf) as doc:
            with pytest.raises(ValueError):
                doc.straightened_images([0, 1])

    def test_workers_match_sequential(self, three_page_pdf):
        angles = [1.0, 0, -2.0]
        with Document.from_bytes(three_page_pdf) as doc:
            sequential = doc.straightened_images(angles)
            threaded = doc.straightened_images(angles, workers=3)
        assert [p.index for p in threaded] == [0, 1, 2]
        assert [p.data for p in threaded] == [p.data for p in sequential]

    def test_failed_page_is_reported(self, three_page_pdf):
        class BrokenOrienter:
            def make_upright(self, image):
                raise ValueError("sideways")

        class FailingOrienter:
            def make_upright(self, image):
                raise TransformError("cannot tell")

        with Document.from_bytes(three_page_pdf) as doc:
            with pytest.raises(TransformError) as exc_info:
                doc.straightened_images([0, 0, 1.5], FailingOrienter())
            # Pass-through pages never reach the orienter
            doc.straightened_images([0, 0, 0], BrokenOrienter())
        assert exc_info.value.page == 2

    def test_one_pass(self):
        pdf = scanned_pdf(make_page(seed=1), make_page(angle=1.5, seed=2))
        events = []
        with Document.from_bytes(pdf) as doc:
            originals = [page.raw for page in doc.pages()]
            output = doc.straighten_one_pass(2.5, observer=events.append)

        assert [event.page for event in events] == [0, 1]
        assert events[0].angle == 0.0
        assert events[1].angle == pytest.approx(1.5, abs=0.3)
        with Document.from_bytes(output) as straightened:
            pages = list(straightened.pages())
        assert pages[0].raw == originals[0]
        assert pages[1].raw != originals[1]
        assert (pages[1].width, pages[1].height) == (850, 1100)
