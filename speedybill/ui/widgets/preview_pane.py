from __future__ import annotations
from typing import Callable, List, Optional, Tuple

from PySide6.QtCore import QEvent, QObject, QRectF, Qt
from PySide6.QtGui import QColor, QPainter
from PySide6.QtWidgets import QGraphicsScene, QGraphicsTextItem, QGraphicsView, QWidget

from speedybill.core.config import AppSettings
from speedybill.core.models.invoice import Invoice
from speedybill.core.services.render_service import DOCUMENT_WIDTH_PX, DocumentSurface, page_html
from speedybill.core.services.scaler import FitScaler



class WidgetSizeSource(QObject):
    """Taille d'un widget, observée via un filtre d'évènements Resize posé à la demande."""

    def __init__(self, widget: QWidget):
        super().__init__(widget)
        self._widget = widget
        self._callbacks: List[Callable[[], None]] = []

    def current_size(self) -> Tuple[float, float]:
        return float(self._widget.width()), float(self._widget.height())

    def observe(self, callback: Callable[[], None]) -> Callable[[], None]:
        if not self._callbacks:
            self._widget.installEventFilter(self)
        self._callbacks.append(callback)

        def _release() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            if not self._callbacks:
                self._widget.removeEventFilter(self)

        return _release

    def eventFilter(self, obj, event):
        if obj is self._widget and event.type() == QEvent.Type.Resize:
            for cb in list(self._callbacks):
                cb()
        return False


class PreviewPane(QGraphicsView):
    """Aperçu ajusté au conteneur : la surface est rendue puis réduite (jamais agrandie)."""

    def __init__(
        self,
        surface: DocumentSurface,
        settings: AppSettings,
        parent: Optional[QWidget] = None,
        align_left: bool = False,
    ):
        super().__init__(parent)
        self.surface = surface
        self.align_left = align_left
        self.padding = settings.preview_padding_px

        self.setScene(QGraphicsScene(self))
        self.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop)
        self.setRenderHints(QPainter.RenderHint.Antialiasing | QPainter.RenderHint.TextAntialiasing
                            | QPainter.RenderHint.SmoothPixmapTransform)
        self.setBackgroundBrush(QColor("#faf9f6"))
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAsNeeded if align_left
                                          else Qt.ScrollBarPolicy.ScrollBarAlwaysOff)

        self._item = QGraphicsTextItem()
        self._item.document().setDocumentMargin(0)
        self._item.setTextWidth(DOCUMENT_WIDTH_PX)
        self.scene().addItem(self._item)

        self._host = WidgetSizeSource(self.viewport())
        self.scaler = FitScaler(on_scale=self._apply_scale, padding=self.padding, min_scale=settings.min_scale)

    # ---------- cycle de vie ----------
    def activate(self) -> None:
        self.scaler.activate(self._host, self.surface)

    def deactivate(self) -> None:
        self.scaler.deactivate()

    # ---------- rendu ----------
    def show_invoice(self, invoice: Invoice) -> None:
        doc = self.surface.mount(invoice)
        self._item.setHtml(page_html(doc.fragment()))
        self._apply_scale(self.scaler.scale)

    def _apply_scale(self, scale: float) -> None:
        self.surface.set_scale(scale)
        self._item.setScale(scale)
        content_w, content_h = self.surface.current_size()
        host_w = self.viewport().width()
        host_h = self.viewport().height()
        shown_w, shown_h = content_w * scale, content_h * scale
        margin = self.padding / 2
        x = margin if self.align_left else max(margin, (host_w - shown_w) / 2)
        self._item.setPos(x, margin)
        self.scene().setSceneRect(QRectF(0, 0, max(host_w, x + shown_w + margin), max(host_h, shown_h + self.padding)))
        if self.align_left:
            self.horizontalScrollBar().setValue(0)
            self.verticalScrollBar().setValue(0)
