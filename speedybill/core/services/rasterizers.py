from __future__ import annotations
import logging
import math
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple

from PySide6.QtCore import QRectF, Qt
from PySide6.QtGui import QFontDatabase, QImage, QPainter, QTextDocument

from speedybill.core.config import find_wkhtml_binary

log = logging.getLogger(__name__)


class RasterizationError(RuntimeError):
    """Le moteur n'a pas pu produire d'image (binaire absent, code retour, sortie illisible)."""


@dataclass(frozen=True)
class CaptureRequest:
    html: str  # document HTML complet de l'instantané
    width: int  # taille naturelle en px CSS
    height: int  # hauteur mesurée, plancher de la capture
    scale: float  # facteur de rastérisation (>= 2)

    @property
    def output_size(self) -> Tuple[int, int]:
        return math.ceil(self.width * self.scale), math.ceil(self.height * self.scale)


class Rasterizer(Protocol):
    name: str

    def rasterize(self, request: CaptureRequest) -> QImage:
        ...


# ---------- Stratégie principale : moteur HTML complet ----------

class WkhtmlImageRasterizer:
    """
    wkhtmltoimage : rendu fidèle (CSS complet, images intégrées) mais peut rendre
    une image toute blanche sur certaines configurations ; à valider après coup.
    """

    name = "wkhtmltoimage"

    def __init__(self, binary: Optional[str] = None) -> None:
        self.binary = binary

    def _command(self, exe: str, request: CaptureRequest, src: Path, out: Path) -> list[str]:
        # pas de --height : la hauteur mesurée n'est qu'un plancher (min-height de la copie),
        # wkhtmltoimage capture la page entière avec padding et bordures
        out_w, _ = request.output_size
        return [
            exe,
            "--quiet",
            "--format", "png",
            "--enable-local-file-access",
            "--disable-smart-width",
            "--zoom", f"{request.scale:g}",
            "--width", str(out_w),
            str(src),
            str(out),
        ]

    def rasterize(self, request: CaptureRequest) -> QImage:
        exe = find_wkhtml_binary("wkhtmltoimage", self.binary)
        if not exe:
            raise RasterizationError(
                "wkhtmltoimage introuvable. Installez wkhtmltopdf ou définissez WKHTMLTOIMAGE."
            )
        with tempfile.TemporaryDirectory(prefix="speedybill-") as tmp:
            src = Path(tmp) / "snapshot.html"
            out = Path(tmp) / "capture.png"
            src.write_text(request.html, encoding="utf-8")
            proc = subprocess.run(self._command(exe, request, src, out), capture_output=True)
            if proc.returncode != 0:
                err = proc.stderr.decode("utf-8", errors="replace").strip()
                raise RasterizationError(f"wkhtmltoimage a échoué (code {proc.returncode}): {err}")
            image = QImage(str(out))
        if image.isNull():
            raise RasterizationError("wkhtmltoimage n'a produit aucune image lisible")
        return image


# ---------- Stratégie de repli : moteur texte riche Qt ----------

class QtTextRasterizer:
    """QTextDocument peint dans une QImage : CSS limité mais jamais de page blanche."""

    name = "qt-text"

    def rasterize(self, request: CaptureRequest) -> QImage:
        out_w, out_h = request.output_size
        image = QImage(out_w, out_h, QImage.Format.Format_ARGB32)
        if image.isNull():
            raise RasterizationError(f"Image {out_w}x{out_h} impossible à allouer")
        image.fill(Qt.GlobalColor.white)

        doc = QTextDocument()
        doc.setDocumentMargin(0)
        doc.setHtml(request.html)
        doc.setTextWidth(request.width)

        painter = QPainter(image)
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            painter.setRenderHint(QPainter.RenderHint.TextAntialiasing)
            painter.scale(request.scale, request.scale)
            doc.drawContents(painter, QRectF(0, 0, request.width, request.height))
        finally:
            painter.end()
        return image


def load_font_database() -> list[str]:
    """
    Qt charge les polices de façon synchrone : il n'y a rien à attendre, mais la base
    de polices n'est peuplée qu'au premier accès. On la force avant la capture pour
    que le moteur de repli ne mette pas en page avec une police de substitution.
    """
    return list(QFontDatabase.families())


class QtTextMeasurer:
    """
    Taille naturelle d'un document HTML mis en page à largeur fixe.
    QTextDocument ignore padding et bordures des blocs : la hauteur obtenue est un
    minimum, la capture principale n'est donc jamais recadrée dessus.
    """

    def measure(self, html: str, width: int) -> Tuple[int, int]:
        doc = QTextDocument()
        doc.setDocumentMargin(0)
        doc.setHtml(html)
        doc.setTextWidth(width)
        size = doc.size()
        return math.ceil(size.width()), math.ceil(size.height())


# ---------- Pixels ----------

def rgba_bytes(image: QImage) -> bytes:
    """Pixels en RGBA 8 bits, ligne par ligne (sans remplissage : 4 octets/pixel)."""
    converted = image.convertToFormat(QImage.Format.Format_RGBA8888)
    return bytes(converted.constBits())[: converted.sizeInBytes()]


def flatten_on_white(image: QImage) -> QImage:
    """Composite sur fond blanc opaque : aucune transparence ne passe dans le PDF."""
    out = QImage(image.size(), QImage.Format.Format_RGB32)
    out.fill(Qt.GlobalColor.white)
    painter = QPainter(out)
    try:
        painter.drawImage(0, 0, image)
    finally:
        painter.end()
    return out
