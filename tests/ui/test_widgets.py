"""Tests des widgets (plateforme Qt offscreen)."""

import pytest
from PySide6.QtCore import QSize
from PySide6.QtGui import QResizeEvent
from PySide6.QtWidgets import QApplication, QWidget

from speedybill.core.config import AppSettings
from speedybill.core.models.invoice import TemplateVariant
from speedybill.core.services.render_service import DocumentSurface
from speedybill.ui.widgets.editor_panel import COL_PRICE, COL_QTY, COL_TOTAL, EditorPanel
from speedybill.ui.widgets.preview_overlay import PreviewOverlay
from speedybill.ui.widgets.preview_pane import PreviewPane, WidgetSizeSource


class TestWidgetSizeSource:
    def test_resize_notifies_until_released(self, qapp):
        widget = QWidget()
        source = WidgetSizeSource(widget)
        calls = []
        release = source.observe(lambda: calls.append(1))

        QApplication.sendEvent(widget, QResizeEvent(QSize(300, 200), QSize(0, 0)))
        assert calls == [1]

        release()
        QApplication.sendEvent(widget, QResizeEvent(QSize(400, 200), QSize(300, 200)))
        assert calls == [1]


class TestPreviewPane:
    def test_show_invoice_mounts_surface(self, qapp, store, measurer):
        surface = DocumentSurface("desktop", measurer)
        pane = PreviewPane(surface, AppSettings())
        pane.show_invoice(store.current_invoice)
        assert surface.root is not None
        assert surface.current_size() == (794, 1123)

    def test_activate_and_deactivate(self, qapp, store, measurer):
        surface = DocumentSurface("desktop", measurer)
        pane = PreviewPane(surface, AppSettings())
        pane.show_invoice(store.current_invoice)

        pane.activate()
        assert pane.scaler.active
        assert 0.05 <= pane.scaler.scale <= 1

        pane.deactivate()
        assert not pane.scaler.active
        assert surface._listeners == []


class TestPreviewOverlay:
    def test_close_releases_everything(self, qapp, store, measurer):
        overlay = PreviewOverlay(store, AppSettings(), measurer)
        overlay.show()
        assert overlay.surface.root is not None
        assert overlay.pane.scaler.active

        overlay.reject()
        assert overlay.surface.root is None
        assert not overlay.pane.scaler.active

        # plus abonné au store
        store.update_client(name="Acme")
        assert overlay.surface.root is None


class TestEditorPanel:
    @pytest.fixture
    def panel(self, qapp, store):
        return EditorPanel(store)

    def test_loads_current_invoice(self, panel, store):
        assert panel.ed_number.text() == "INV-2024-001"
        assert panel.tbl_items.rowCount() == 1
        assert panel.lab_total.text().endswith("$500.00")

    def test_text_edit_patches_store(self, panel, store):
        panel.ed_number.textEdited.emit("INV-77")
        assert store.current_invoice.meta.invoice_number == "INV-77"

    def test_item_cell_edit_updates_line_and_totals(self, panel, store):
        panel.tbl_items.item(0, COL_QTY).setText("3")
        assert store.current_invoice.items[0].qty == 3
        assert panel.tbl_items.item(0, COL_TOTAL).text() == "$1,500.00"
        assert panel.lab_subtotal.text().endswith("$1,500.00")

    def test_tax_spinbox(self, panel, store):
        panel.sp_tax.setValue(12)
        assert store.current_invoice.settings.tax_rate == 12
        assert panel.lab_total.text().endswith("$560.00")

    def test_tax_rate_above_one_thousand_percent(self, panel, store):
        panel.sp_tax.setValue(2500)
        assert store.current_invoice.settings.tax_rate == 2500
        assert panel.sp_tax.value() == 2500

    def test_non_numeric_qty_cell_shows_stored_zero(self, panel, store):
        panel.tbl_items.item(0, COL_QTY).setText("abc")
        assert store.current_invoice.items[0].qty == 0
        assert panel.tbl_items.item(0, COL_QTY).text() == "0"
        assert panel.tbl_items.item(0, COL_TOTAL).text() == "$0.00"

    def test_comma_price_cell_is_normalised(self, panel, store):
        panel.tbl_items.item(0, COL_PRICE).setText("12,5")
        assert store.current_invoice.items[0].unit_price == 12.5
        assert panel.tbl_items.item(0, COL_PRICE).text() == "12.5"

    def test_template_radio(self, panel, store):
        panel._template_buttons[TemplateVariant.CLASSIC].setChecked(True)
        assert store.current_invoice.settings.template is TemplateVariant.CLASSIC

    def test_items_table_follows_store(self, panel, store):
        new_id = store.add_item()
        assert panel.tbl_items.rowCount() == 2
        store.remove_item(new_id)
        assert panel.tbl_items.rowCount() == 1

    def test_reload_after_reset(self, panel, store):
        store.update_meta(invoice_number="X-1")
        panel.load(store.reset())
        assert panel.ed_number.text() == "INV-2024-001"
