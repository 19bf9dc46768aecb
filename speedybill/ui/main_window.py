from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QFileDialog, QMainWindow, QMessageBox, QScrollArea, QSplitter

from speedybill.core.config import AppSettings
from speedybill.core.models.invoice import Invoice
from speedybill.core.services.export_service import ExportPipeline
from speedybill.core.services.invoice_store import InvoiceStore
from speedybill.core.services.print_service import PrintService
from speedybill.core.services.rasterizers import (
    QtTextMeasurer,
    QtTextRasterizer,
    WkhtmlImageRasterizer,
    load_font_database,
)
from speedybill.core.services.render_service import DocumentSurface
from speedybill.ui.widgets.editor_panel import EditorPanel
from speedybill.ui.widgets.preview_overlay import PreviewOverlay
from speedybill.ui.widgets.preview_pane import PreviewPane

log = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self, settings: AppSettings, store: InvoiceStore):
        super().__init__()
        self.setWindowTitle("SpeedyBill - Factures")
        self.resize(1280, 800)
        self.settings = settings
        self.store = store

        self.measurer = QtTextMeasurer()
        # copie affichée (réduite) et copie d'export (toujours à l'échelle 1)
        self.desktop_surface = DocumentSurface("desktop", self.measurer)
        self.export_surface = DocumentSurface("export", self.measurer, scalable=False)

        self.exporter = ExportPipeline(
            WkhtmlImageRasterizer(settings.wkhtmltoimage_path),
            QtTextRasterizer(),
            settings,
            deliver=self._ask_save_path,
            fonts_ready=load_font_database,
            device_pixel_ratio=self.devicePixelRatioF(),
        )
        self.printer = PrintService(settings)

        # ---------- Barre d'outils ----------
        tb = self.addToolBar("Facture")
        tb.setMovable(False)
        act_new = QAction("Nouveau", self)
        act_print = QAction("Imprimer", self)
        act_download = QAction("Télécharger PDF", self)
        act_preview = QAction("Aperçu", self)
        for act in (act_new, act_print, act_download, act_preview):
            tb.addAction(act)
        act_new.triggered.connect(self._new_invoice)
        act_print.triggered.connect(self._print)
        act_download.triggered.connect(self._download)
        act_preview.triggered.connect(self._open_preview)

        # ---------- Éditeur | aperçu ----------
        self.editor = EditorPanel(store)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(self.editor)

        self.preview = PreviewPane(self.desktop_surface, settings)

        split = QSplitter(Qt.Orientation.Horizontal)
        split.addWidget(scroll)
        split.addWidget(self.preview)
        split.setStretchFactor(0, 2)
        split.setStretchFactor(1, 3)
        self.setCentralWidget(split)

        self._render(store.current_invoice)
        self._unsubscribe = store.subscribe(self._render)
        self.preview.activate()

    # ==================== RENDU ====================
    def _render(self, invoice: Invoice) -> None:
        self.preview.show_invoice(invoice)
        self.export_surface.mount(invoice)

    # ==================== ACTIONS ====================
    def _new_invoice(self):
        if QMessageBox.question(self, "Nouvelle facture", "Abandonner la facture en cours ?") != QMessageBox.Yes:
            return
        self.editor.load(self.store.reset())

    def _ask_save_path(self, filename: str, data: bytes) -> Optional[Path]:
        start = Path(self.settings.exports_dir) / filename
        path, _ = QFileDialog.getSaveFileName(self, "Enregistrer le PDF", str(start), "PDF (*.pdf)")
        if not path:
            return None
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(data)
        return out

    def _download(self):
        try:
            result = self.exporter.export(self.export_surface, self.store.current_invoice.meta.invoice_number)
        except Exception as e:
            log.exception("Export PDF en échec")
            QMessageBox.critical(self, "Export PDF", str(e))
            return
        if result and result.path:
            self.statusBar().showMessage(f"PDF enregistré : {result.path}", 5000)

    def _print(self):
        try:
            out = self.printer.print_document(self.export_surface, self.store.current_invoice.meta.invoice_number)
        except Exception as e:
            log.exception("Impression en échec")
            QMessageBox.critical(self, "Impression", str(e))
            return
        if out:
            self.statusBar().showMessage("Document envoyé à l'imprimante", 5000)

    def _open_preview(self):
        dlg = PreviewOverlay(self.store, self.settings, self.measurer, self)
        dlg.exec()

    # ==================== FERMETURE ====================
    def closeEvent(self, event):
        try:
            self._unsubscribe()
            self.preview.deactivate()
        finally:
            super().closeEvent(event)
