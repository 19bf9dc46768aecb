from __future__ import annotations
from typing import Callable, Optional

from PySide6.QtWidgets import QDialog, QHBoxLayout, QLabel, QPushButton, QVBoxLayout

from speedybill.core.config import AppSettings
from speedybill.core.services.invoice_store import InvoiceStore
from speedybill.core.services.render_service import DocumentSurface, LayoutMeasurer
from speedybill.ui.widgets.preview_pane import PreviewPane


class PreviewOverlay(QDialog):
    """Aperçu plein écran, avec sa propre surface et sa propre échelle ; tout est libéré à la fermeture."""

    def __init__(self, store: InvoiceStore, settings: AppSettings, measurer: LayoutMeasurer, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Aperçu de la facture")
        self.setModal(True)
        self.resize(480, 800)
        self.store = store

        self.surface = DocumentSurface("overlay", measurer, transform_origin="top left")
        self.pane = PreviewPane(self.surface, settings, self, align_left=True)

        btn_close = QPushButton("Fermer")
        btn_close.clicked.connect(self.accept)
        bar = QHBoxLayout()
        bar.addWidget(QLabel("<b>Aperçu de la facture</b>")); bar.addStretch(1); bar.addWidget(btn_close)

        lay = QVBoxLayout(self)
        lay.addLayout(bar)
        lay.addWidget(self.pane, 1)

        self._unsubscribe: Optional[Callable[[], None]] = None

    def showEvent(self, event):
        super().showEvent(event)
        if self._unsubscribe is None:
            self.pane.show_invoice(self.store.current_invoice)
            self.pane.activate()
            self._unsubscribe = self.store.subscribe(self.pane.show_invoice)

    def done(self, result):
        try:
            self._release()
        finally:
            super().done(result)

    def _release(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        try:
            if unsubscribe:
                unsubscribe()
        finally:
            self.pane.deactivate()
            self.surface.unmount()
