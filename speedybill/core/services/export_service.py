from __future__ import annotations
import copy
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from PySide6.QtCore import QBuffer, QIODevice, QMarginsF, QRectF, QSizeF
from PySide6.QtGui import QImage, QPageLayout, QPageSize, QPainter, QPdfWriter

from speedybill.core.config import AppSettings
from speedybill.core.services.rasterizers import (
    CaptureRequest,
    Rasterizer,
    flatten_on_white,
    rgba_bytes,
)
from speedybill.core.services.render_service import DocumentSurface, format_style, page_html, parse_style

log = logging.getLogger(__name__)

# Heuristique « capture vide » : un pixel sur BLANK_SAMPLE_STRIDE, visible si
# alpha > BLANK_ALPHA_THRESHOLD et au moins un canal <= BLANK_RGB_THRESHOLD.
BLANK_SAMPLE_STRIDE = 4
BLANK_RGB_THRESHOLD = 248
BLANK_ALPHA_THRESHOLD = 0

OFFSCREEN_CONTAINER_STYLE = {
    "position": "fixed",
    "left": "0",
    "top": "0",
    "background": "#ffffff",
    "opacity": "0",
    "pointer-events": "none",
    "z-index": "-1",
}
# décorations d'affichage retirées de la copie capturée
_STRIPPED = re.compile(r"^(transform|transform-origin|scale|box-shadow|margin(-.*)?)$")

# renvoie None si l'utilisateur annule l'enregistrement
Deliver = Callable[[str, bytes], Optional[Path]]


# ---------- Document hors écran ----------

class OffscreenDocument:
    """Corps de document qui héberge les conteneurs d'instantanés pendant une capture."""

    def __init__(self) -> None:
        self.body = ET.Element("body")

    def attach(self, element: ET.Element) -> None:
        self.body.append(element)

    def detach(self, element: ET.Element) -> None:
        if element in list(self.body):
            self.body.remove(element)

    @property
    def containers(self) -> List[ET.Element]:
        return list(self.body)


def isolate_snapshot(source: ET.Element, natural_size: Tuple[int, int]) -> Tuple[ET.Element, ET.Element]:
    """Copie profonde de `source` dans un conteneur invisible, sans échelle ni ombre ni marge."""
    width, height = natural_size
    clone = copy.deepcopy(source)
    props = {k: v for k, v in parse_style(clone.get("style")).items() if not _STRIPPED.match(k)}
    props.update({
        "transform": "none",
        "margin": "0",
        "box-shadow": "none",
        "width": f"{width}px",
        "min-height": f"{height}px",
    })
    clone.set("style", format_style(props))

    container = ET.Element("div", {
        "class": "export-snapshot",
        "aria-hidden": "true",
        "style": format_style({**OFFSCREEN_CONTAINER_STYLE, "width": f"{width}px"}),
    })
    container.append(clone)
    return container, clone


# ---------- Validation de capture ----------

def has_visible_pixels(
    rgba: bytes,
    stride: int = BLANK_SAMPLE_STRIDE,
    rgb_threshold: int = BLANK_RGB_THRESHOLD,
    alpha_threshold: int = BLANK_ALPHA_THRESHOLD,
) -> bool:
    """Vrai si un pixel échantillonné n'est ni transparent ni quasi blanc."""
    step = max(1, stride) * 4
    for r, g, b, a in zip(rgba[0::step], rgba[1::step], rgba[2::step], rgba[3::step]):
        if a > alpha_threshold and not (r > rgb_threshold and g > rgb_threshold and b > rgb_threshold):
            return True
    return False


# ---------- PDF ----------

def page_height_mm(pixel_width: int, pixel_height: int, page_width_mm: float = 210, min_height_mm: float = 297) -> float:
    if pixel_width <= 0 or pixel_height <= 0:
        return min_height_mm
    return max(min_height_mm, (pixel_height / pixel_width) * page_width_mm)


def assemble_pdf(
    image: QImage,
    page_width_mm: float = 210,
    min_height_mm: float = 297,
    title: str = "",
) -> Tuple[bytes, float]:
    """PDF d'une seule page à la largeur fixe, hauteur suivant le ratio de l'image, image pleine page."""
    height_mm = page_height_mm(image.width(), image.height(), page_width_mm, min_height_mm)

    buf = QBuffer()
    buf.open(QIODevice.OpenModeFlag.WriteOnly)
    writer = QPdfWriter(buf)
    writer.setTitle(title)
    writer.setCreator("SpeedyBill")
    writer.setPageSize(QPageSize(
        QSizeF(page_width_mm, height_mm), QPageSize.Unit.Millimeter, "Invoice", QPageSize.SizeMatchPolicy.ExactMatch
    ))
    writer.setPageMargins(QMarginsF(0, 0, 0, 0), QPageLayout.Unit.Millimeter)
    # une unité du périphérique = un pixel de la capture
    writer.setResolution(max(72, round(image.width() / (page_width_mm / 25.4))))

    painter = QPainter(writer)
    try:
        painter.drawImage(QRectF(0, 0, writer.width(), writer.height()), image)
    finally:
        painter.end()
    buf.close()
    return bytes(buf.data().data()), height_mm


# ---------- Livraison ----------

def export_filename(invoice_number: Optional[str], default: str = "invoice") -> str:
    text = (invoice_number or "").strip()
    text = re.sub(r'[\\/:*?"<>|\n\r\t]', "_", text)
    text = re.sub(r"\s+", " ", text)
    return f"{text or default}.pdf"


def save_to_directory(directory: Path) -> Deliver:
    def _deliver(filename: str, data: bytes) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        out = directory / filename
        out.write_bytes(data)
        return out

    return _deliver


@dataclass
class ExportResult:
    path: Optional[Path]
    strategy: str
    pixel_size: Tuple[int, int]
    page_size_mm: Tuple[float, float]


# ---------- Pipeline ----------

class ExportPipeline:
    """
    Export PDF de la copie canonique (échelle 1) :
    instantané isolé -> polices prêtes -> capture -> validation / repli -> PDF -> livraison.
    Le conteneur hors écran est retiré sur toutes les sorties, exceptions comprises.
    """

    def __init__(
        self,
        primary: Rasterizer,
        fallback: Rasterizer,
        settings: Optional[AppSettings] = None,
        deliver: Optional[Deliver] = None,
        fonts_ready: Optional[Callable[[], None]] = None,
        device_pixel_ratio: float = 1.0,
        offscreen: Optional[OffscreenDocument] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.primary = primary
        self.fallback = fallback
        self.deliver = deliver or save_to_directory(Path(self.settings.exports_dir))
        self.fonts_ready = fonts_ready
        self.device_pixel_ratio = device_pixel_ratio
        self.offscreen = offscreen or OffscreenDocument()

    def capture_scale(self) -> float:
        return max(self.settings.capture_min_scale, self.device_pixel_ratio or 1.0)

    def is_visible(self, image: QImage) -> bool:
        s = self.settings
        return has_visible_pixels(
            rgba_bytes(image),
            stride=s.blank_sample_stride,
            rgb_threshold=s.blank_rgb_threshold,
            alpha_threshold=s.blank_alpha_threshold,
        )

    def capture(self, request: CaptureRequest) -> Tuple[QImage, str]:
        try:
            image = self.primary.rasterize(request)
        except Exception as e:
            log.warning("Échec %s (%s). Fallback %s...", self.primary.name, e, self.fallback.name)
        else:
            if self.is_visible(image):
                return image, self.primary.name
            log.warning("Capture %s vide. Fallback %s...", self.primary.name, self.fallback.name)
        # une erreur du repli remonte telle quelle
        return self.fallback.rasterize(request), self.fallback.name

    def export(self, surface: DocumentSurface, invoice_number: str = "") -> Optional[ExportResult]:
        source = surface.root
        if source is None:
            log.info("Export ignoré : la surface %s n'est pas rendue", surface.name)
            return None

        width, height = (int(v) for v in surface.current_size())
        container, clone = isolate_snapshot(source, (width, height))
        self.offscreen.attach(container)
        try:
            if self.fonts_ready:
                self.fonts_ready()

            request = CaptureRequest(
                html=page_html(ET.tostring(clone, encoding="unicode", method="html"), title=invoice_number or "Invoice"),
                width=width,
                height=height,
                scale=self.capture_scale(),
            )
            image, strategy = self.capture(request)
            image = flatten_on_white(image)

            pdf, height_mm = assemble_pdf(
                image,
                page_width_mm=self.settings.page_width_mm,
                min_height_mm=self.settings.page_min_height_mm,
                title=invoice_number,
            )
            path = self.deliver(export_filename(invoice_number, self.settings.default_filename), pdf)
            if path is None:
                log.info("Enregistrement annulé (%s, %.1fmm)", strategy, height_mm)
            else:
                log.info("PDF exporté (%s, %.1fmm): %s", strategy, height_mm, path)
            return ExportResult(
                path=path,
                strategy=strategy,
                pixel_size=(image.width(), image.height()),
                page_size_mm=(self.settings.page_width_mm, height_mm),
            )
        finally:
            self.offscreen.detach(container)
