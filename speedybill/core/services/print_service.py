from __future__ import annotations
import logging
import os
import shutil
import subprocess
import sys
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Optional

import pdfkit  # utilisé si wkhtmltopdf dispo

from speedybill.core.config import AppSettings, TEMPLATES_DIR, find_wkhtml_binary
from speedybill.core.services.export_service import export_filename
from speedybill.core.services.render_service import DocumentSurface, page_html

log = logging.getLogger(__name__)

# Impression : A4 sans marge, couleurs exactes ; la pagination est laissée au moteur.
PRINT_PAGE_CSS = """
@page { size: A4; margin: 0; }
body { -webkit-print-color-adjust: exact; print-color-adjust: exact; }
.invoice-document { box-shadow: none !important; margin: 0 !important; }
"""


class PrintError(RuntimeError):
    pass


def _render_pdf_with_weasyprint(html: str, out_path: Path, base_url: Optional[str]) -> None:
    """Fallback WeasyPrint (si wkhtmltopdf absent)."""
    try:
        from weasyprint import HTML
    except Exception as e:
        raise PrintError(
            "Aucun wkhtmltopdf trouvé et WeasyPrint n'est pas utilisable. "
            "Installe WeasyPrint (pip install weasyprint) ou configure wkhtmltopdf.\n"
            f"Détails: {e}"
        ) from e
    HTML(string=html, base_url=base_url).write_pdf(str(out_path))


def send_to_printer(path: Path) -> None:
    """Confie le PDF à l'impression du système."""
    if sys.platform.startswith("win"):
        os.startfile(str(path), "print")  # type: ignore[attr-defined]
        return
    cmd = shutil.which("lp") or shutil.which("lpr")
    if not cmd:
        raise PrintError("Aucune commande d'impression (lp / lpr) trouvée")
    try:
        subprocess.run([cmd, str(path)], check=True, capture_output=True)
    except subprocess.CalledProcessError as e:
        err = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise PrintError(f"Impression refusée par {Path(cmd).name}: {err}") from e


class PrintService:
    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        printer: Callable[[Path], None] = send_to_printer,
        out_dir: Optional[Path] = None,
        keep_after_print: Optional[bool] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.printer = printer
        self.out_dir = Path(out_dir) if out_dir else Path(self.settings.exports_dir) / "print"
        # os.startfile rend la main avant que l'application d'impression ait lu le fichier
        self.keep_after_print = sys.platform.startswith("win") if keep_after_print is None else keep_after_print

    def _purge_previous(self) -> None:
        """Un seul PDF d'impression à la fois dans le dossier de travail."""
        for old in self.out_dir.glob("*.pdf"):
            try:
                old.unlink()
            except OSError as e:  # encore ouvert par l'application d'impression
                log.debug("PDF d'impression conservé (%s): %s", old.name, e)

    def render_print_pdf(self, surface: DocumentSurface, title: str = "") -> Optional[Path]:
        """
        PDF A4 de la copie canonique.
        Essaie wkhtmltopdf (pdfkit) en priorité, sinon fallback WeasyPrint.
        """
        root = surface.root
        if root is None:
            log.info("Impression ignorée : la surface %s n'est pas rendue", surface.name)
            return None

        fragment = ET.tostring(root, encoding="unicode", method="html")
        html = page_html(fragment, extra_css=PRINT_PAGE_CSS, title=title or "Invoice")

        self.out_dir.mkdir(parents=True, exist_ok=True)
        self._purge_previous()
        out_path = self.out_dir / export_filename(title, self.settings.default_filename)

        # 1) wkhtmltopdf d'abord
        wkhtml = find_wkhtml_binary("wkhtmltopdf", self.settings.wkhtmltopdf_path)
        if wkhtml:
            try:
                config = pdfkit.configuration(wkhtmltopdf=wkhtml)
                options = {
                    "page-size": "A4",
                    "margin-top": "0",
                    "margin-right": "0",
                    "margin-bottom": "0",
                    "margin-left": "0",
                    "print-media-type": None,
                    "enable-local-file-access": None,
                    "quiet": "",
                    "encoding": "UTF-8",
                    "title": title or "Invoice",
                }
                pdfkit.from_string(html, str(out_path), options=options, configuration=config)
                return out_path
            except Exception as e:
                log.warning("Échec wkhtmltopdf (%s). Fallback WeasyPrint...", e)

        # 2) Fallback WeasyPrint
        _render_pdf_with_weasyprint(html, out_path, base_url=str(TEMPLATES_DIR.resolve()))
        return out_path

    def print_document(self, surface: DocumentSurface, title: str = "") -> Optional[Path]:
        path = self.render_print_pdf(surface, title)
        if path is None:
            return None
        try:
            self.printer(path)
            log.info("Document envoyé à l'impression: %s", path)
        finally:
            if not self.keep_after_print:
                path.unlink(missing_ok=True)
        return path
