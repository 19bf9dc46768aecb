"""Tests des moteurs de capture Qt et wkhtmltoimage."""

from types import SimpleNamespace

import pytest

from speedybill.core.services import rasterizers
from speedybill.core.services.export_service import has_visible_pixels
from speedybill.core.services.rasterizers import (
    CaptureRequest,
    QtTextMeasurer,
    QtTextRasterizer,
    RasterizationError,
    WkhtmlImageRasterizer,
    flatten_on_white,
    rgba_bytes,
)

HTML = "<html><body><p style='font-size:40px;color:#000'>Invoice INV-1</p></body></html>"


class TestQtTextRasterizer:
    def test_output_size_follows_scale(self, qapp):
        image = QtTextRasterizer().rasterize(CaptureRequest(html=HTML, width=200, height=100, scale=2))
        assert (image.width(), image.height()) == (400, 200)

    def test_empty_document_is_white(self, qapp):
        image = QtTextRasterizer().rasterize(CaptureRequest(html="<p></p>", width=50, height=50, scale=2))
        assert not has_visible_pixels(rgba_bytes(image))


class TestPixels:
    def test_rgba_bytes_length(self, qapp):
        from PySide6.QtGui import QImage

        image = QImage(3, 2, QImage.Format.Format_ARGB32)
        assert len(rgba_bytes(image)) == 3 * 2 * 4

    def test_flatten_on_white_removes_transparency(self, qapp):
        from PySide6.QtCore import Qt
        from PySide6.QtGui import QImage

        image = QImage(4, 4, QImage.Format.Format_ARGB32)
        image.fill(Qt.GlobalColor.transparent)
        flat = flatten_on_white(image)
        assert not flat.hasAlphaChannel()
        assert flat.pixelColor(0, 0).name() == "#ffffff"


class TestMeasurer:
    def test_measure_respects_width(self, qapp):
        w, h = QtTextMeasurer().measure(HTML, 300)
        assert w == 300
        assert h > 0


class TestWkhtmlImageRasterizer:
    def test_missing_binary(self, monkeypatch):
        monkeypatch.setattr(rasterizers, "find_wkhtml_binary", lambda name, configured=None: None)
        with pytest.raises(RasterizationError):
            WkhtmlImageRasterizer().rasterize(CaptureRequest(html=HTML, width=10, height=10, scale=2))

    def test_nonzero_exit(self, monkeypatch):
        monkeypatch.setattr(rasterizers, "find_wkhtml_binary", lambda name, configured=None: "/bin/wkhtmltoimage")
        monkeypatch.setattr(
            rasterizers.subprocess, "run", lambda cmd, **kw: SimpleNamespace(returncode=1, stderr=b"no display")
        )
        with pytest.raises(RasterizationError, match="no display"):
            WkhtmlImageRasterizer().rasterize(CaptureRequest(html=HTML, width=10, height=10, scale=2))

    def test_command_line(self, tmp_path):
        cmd = WkhtmlImageRasterizer()._command(
            "wkhtmltoimage",
            CaptureRequest(html=HTML, width=794, height=1123, scale=2),
            tmp_path / "in.html",
            tmp_path / "out.png",
        )
        assert cmd[0] == "wkhtmltoimage"
        assert cmd[cmd.index("--zoom") + 1] == "2"
        assert cmd[cmd.index("--width") + 1] == "1588"
        assert cmd[-1] == str(tmp_path / "out.png")

    def test_command_does_not_crop_to_measured_height(self, tmp_path):
        # la hauteur mesurée ignore padding et bordures : la page entière doit être capturée
        cmd = WkhtmlImageRasterizer()._command(
            "wkhtmltoimage",
            CaptureRequest(html=HTML, width=794, height=1500, scale=2),
            tmp_path / "in.html",
            tmp_path / "out.png",
        )
        assert "--height" not in cmd
        assert "--crop-h" not in cmd

    def test_unreadable_output(self, qapp, monkeypatch):
        monkeypatch.setattr(rasterizers, "find_wkhtml_binary", lambda name, configured=None: "/bin/wkhtmltoimage")
        monkeypatch.setattr(rasterizers.subprocess, "run", lambda cmd, **kw: SimpleNamespace(returncode=0, stderr=b""))
        with pytest.raises(RasterizationError):
            WkhtmlImageRasterizer().rasterize(CaptureRequest(html=HTML, width=10, height=10, scale=2))


class TestFontDatabase:
    def test_load_font_database_returns_family_names(self, qapp):
        families = rasterizers.load_font_database()
        assert isinstance(families, list)
        assert all(isinstance(name, str) for name in families)
