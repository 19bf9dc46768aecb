from __future__ import annotations
import logging
from typing import Tuple

from PySide6.QtCore import QDate, Qt
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QButtonGroup, QColorDialog, QComboBox, QDateEdit, QDoubleSpinBox, QFileDialog, QFormLayout,
    QGroupBox, QHBoxLayout, QHeaderView, QLabel, QLineEdit, QMessageBox, QPushButton, QRadioButton,
    QTableWidget, QTableWidgetItem, QTabWidget, QTextEdit, QVBoxLayout, QWidget
)

from speedybill.core.formatting import CURRENCIES, format_money
from speedybill.core.models.invoice import Invoice, TemplateVariant
from speedybill.core.services.invoice_store import InvoiceStore
from speedybill.core.services.logo_service import logo_to_data_url
from speedybill.core.services.totals import line_total, subtotal, total

log = logging.getLogger(__name__)

# colonnes du tableau des lignes
COL_DESC, COL_QTY, COL_PRICE, COL_TOTAL = range(4)


def _qdate(d) -> QDate:
    return QDate(d.year, d.month, d.day) if d else QDate.currentDate()


class _PartyForm(QGroupBox):
    """Nom / adresse / contact d'une partie (entreprise ou client)."""

    def __init__(self, title: str, parent=None):
        super().__init__(title, parent)
        self.ed_name = QLineEdit(); self.ed_name.setPlaceholderText("Nom")
        self.ed_line1 = QLineEdit(); self.ed_line1.setPlaceholderText("Adresse ligne 1")
        self.ed_line2 = QLineEdit(); self.ed_line2.setPlaceholderText("Adresse ligne 2")
        self.ed_state = QLineEdit(); self.ed_state.setPlaceholderText("État / Région")
        self.ed_country = QLineEdit(); self.ed_country.setPlaceholderText("Pays")
        self.ed_phone = QLineEdit(); self.ed_phone.setPlaceholderText("Téléphone")
        self.ed_email = QLineEdit(); self.ed_email.setPlaceholderText("Email")

        self.form = QFormLayout(self)
        self.form.addRow("Nom", self.ed_name)
        self.form.addRow("Adresse ligne 1", self.ed_line1)
        self.form.addRow("Adresse ligne 2", self.ed_line2)
        self.form.addRow("État / Région", self.ed_state)
        self.form.addRow("Pays", self.ed_country)
        self.form.addRow("Téléphone", self.ed_phone)
        self.form.addRow("Email", self.ed_email)

    def party_fields(self):
        return {"name": self.ed_name, "phone": self.ed_phone, "email": self.ed_email}

    def address_fields(self):
        return {"line1": self.ed_line1, "line2": self.ed_line2, "state": self.ed_state, "country": self.ed_country}

    def fill(self, party) -> None:
        for name, ed in self.party_fields().items():
            ed.setText(getattr(party, name) or "")
        for name, ed in self.address_fields().items():
            ed.setText(getattr(party.address, name) or "")


class EditorPanel(QWidget):
    """
    Formulaire d'édition : chaque saisie devient un patch sur le store.
    Le panneau se resynchronise sur le store (reset, ajout / suppression de ligne).
    """

    def __init__(self, store: InvoiceStore, parent=None):
        super().__init__(parent)
        self.store = store
        self._syncing = False
        self._item_ids: Tuple[str, ...] = ()

        # --- Gabarit ---
        grp_tpl = QGroupBox("Gabarit")
        lay_tpl = QHBoxLayout(grp_tpl)
        self.grp_template = QButtonGroup(self)
        self._template_buttons = {}
        for variant, label in ((TemplateVariant.MODERN, "Moderne"), (TemplateVariant.CLASSIC, "Classique"),
                               (TemplateVariant.MINIMAL, "Minimal")):
            rb = QRadioButton(label)
            self.grp_template.addButton(rb)
            self._template_buttons[variant] = rb
            lay_tpl.addWidget(rb)
            rb.toggled.connect(lambda checked, v=variant: checked and self._patch(self.store.update_settings, template=v))

        self.tabs = QTabWidget()
        self.tabs.addTab(self._details_tab(), "Détails")
        self.tabs.addTab(self._items_tab(), "Lignes")
        self.tabs.addTab(self._custom_tab(), "Personnalisation")

        lay = QVBoxLayout(self)
        lay.addWidget(grp_tpl)
        lay.addWidget(self.tabs, 1)

        self.load(store.current_invoice)
        store.subscribe(self._on_store_changed)

    # ==================== ONGLETS ====================
    def _details_tab(self) -> QWidget:
        w = QWidget(); root = QVBoxLayout(w)

        grp_meta = QGroupBox("Facture")
        form = QFormLayout(grp_meta)
        self.cb_currency = QComboBox(); self.cb_currency.setEditable(True); self.cb_currency.addItems(CURRENCIES)
        self.ed_number = QLineEdit()
        self.ed_issue = QDateEdit(); self.ed_issue.setCalendarPopup(True)
        self.ed_due = QDateEdit(); self.ed_due.setCalendarPopup(True)
        form.addRow("Devise", self.cb_currency)
        form.addRow("Numéro", self.ed_number)
        form.addRow("Date d'émission", self.ed_issue)
        form.addRow("Échéance", self.ed_due)

        self.frm_business = _PartyForm("Entreprise")
        logo_bar = QHBoxLayout()
        self.lbl_logo = QLabel("Aucun logo")
        btn_logo = QPushButton("Logo (PNG/JPG, 2 Mo max)…")
        btn_logo_clear = QPushButton("Retirer")
        logo_bar.addWidget(self.lbl_logo, 1); logo_bar.addWidget(btn_logo); logo_bar.addWidget(btn_logo_clear)
        self.frm_business.form.insertRow(0, "Logo", logo_bar)
        self.frm_client = _PartyForm("Client")

        root.addWidget(grp_meta)
        root.addWidget(self.frm_business)
        root.addWidget(self.frm_client)
        root.addStretch(1)

        self.cb_currency.currentTextChanged.connect(lambda t: self._patch(self.store.update_meta, currency=t.strip().upper()))
        self.ed_number.textEdited.connect(lambda t: self._patch(self.store.update_meta, invoice_number=t))
        self.ed_issue.dateChanged.connect(lambda d: self._patch(self.store.update_meta, issue_date=d.toPython()))
        self.ed_due.dateChanged.connect(lambda d: self._patch(self.store.update_meta, due_date=d.toPython()))
        btn_logo.clicked.connect(self._pick_logo)
        btn_logo_clear.clicked.connect(lambda: self._patch(self.store.update_business, logo=None))

        for name, ed in self.frm_business.party_fields().items():
            ed.textEdited.connect(lambda t, n=name: self._patch(self.store.update_business, **{n: t}))
        for name, ed in self.frm_business.address_fields().items():
            ed.textEdited.connect(lambda t, n=name: self._patch(self.store.update_business_address, **{n: t}))
        for name, ed in self.frm_client.party_fields().items():
            ed.textEdited.connect(lambda t, n=name: self._patch(self.store.update_client, **{n: t}))
        for name, ed in self.frm_client.address_fields().items():
            ed.textEdited.connect(lambda t, n=name: self._patch(self.store.update_client_address, **{n: t}))
        return w

    def _items_tab(self) -> QWidget:
        w = QWidget(); root = QVBoxLayout(w)

        self.tbl_items = QTableWidget(0, 4)
        self.tbl_items.setHorizontalHeaderLabels(["Description", "Qté", "Prix unitaire", "Total"])
        self.tbl_items.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.tbl_items.setSelectionBehavior(self.tbl_items.SelectionBehavior.SelectRows)

        btn_add = QPushButton("Ajouter une ligne")
        btn_del = QPushButton("Supprimer la ligne")
        self.lab_subtotal = QLabel()
        self.lab_total = QLabel()

        bar = QHBoxLayout()
        bar.addWidget(btn_add); bar.addWidget(btn_del); bar.addStretch(1)
        bar.addWidget(self.lab_subtotal); bar.addWidget(self.lab_total)

        root.addLayout(bar)
        root.addWidget(self.tbl_items, 1)

        btn_add.clicked.connect(lambda: self.store.add_item())
        btn_del.clicked.connect(self._del_item)
        self.tbl_items.itemChanged.connect(self._on_item_cell_changed)
        return w

    def _custom_tab(self) -> QWidget:
        w = QWidget(); root = QVBoxLayout(w)

        grp = QGroupBox("Montants & couleur")
        form = QFormLayout(grp)
        self.sp_tax = QDoubleSpinBox(); self.sp_tax.setRange(0.0, 1e12); self.sp_tax.setDecimals(2); self.sp_tax.setSuffix(" %")
        self.sp_discount = QDoubleSpinBox(); self.sp_discount.setRange(0.0, 1e12); self.sp_discount.setDecimals(2)
        self.ed_accent = QLineEdit()
        btn_accent = QPushButton("Choisir…")
        accent_bar = QHBoxLayout(); accent_bar.addWidget(self.ed_accent, 1); accent_bar.addWidget(btn_accent)
        form.addRow("Taxe", self.sp_tax)
        form.addRow("Remise", self.sp_discount)
        form.addRow("Couleur d'accent", accent_bar)

        grp_notes = QGroupBox("Notes")
        form_n = QFormLayout(grp_notes)
        self.ed_notes = QTextEdit()
        self.ed_terms = QTextEdit()
        self.ed_footer = QLineEdit()
        form_n.addRow("Notes", self.ed_notes)
        form_n.addRow("Conditions", self.ed_terms)
        form_n.addRow("Pied de page", self.ed_footer)

        root.addWidget(grp)
        root.addWidget(grp_notes, 1)

        self.sp_tax.valueChanged.connect(lambda v: self._patch(self.store.update_settings, tax_rate=v))
        self.sp_discount.valueChanged.connect(lambda v: self._patch(self.store.update_settings, discount=v))
        self.ed_accent.editingFinished.connect(
            lambda: self._patch(self.store.update_settings, accent_color=self.ed_accent.text().strip()))
        btn_accent.clicked.connect(self._pick_accent)
        self.ed_notes.textChanged.connect(lambda: self._patch(self.store.update_notes, notes=self.ed_notes.toPlainText()))
        self.ed_terms.textChanged.connect(lambda: self._patch(self.store.update_notes, terms=self.ed_terms.toPlainText()))
        self.ed_footer.textEdited.connect(lambda t: self._patch(self.store.update_notes, footer=t))
        return w

    # ==================== SYNCHRO ====================
    def _patch(self, op, **patch) -> None:
        if self._syncing:
            return
        op(**patch)

    def load(self, inv: Invoice) -> None:
        """Recharge tous les champs depuis la facture (démarrage, reset)."""
        self._syncing = True
        try:
            self._template_buttons[inv.settings.template].setChecked(True)
            self.cb_currency.setCurrentText(inv.meta.currency)
            self.ed_number.setText(inv.meta.invoice_number)
            self.ed_issue.setDate(_qdate(inv.meta.issue_date))
            self.ed_due.setDate(_qdate(inv.meta.due_date))
            self.frm_business.fill(inv.business)
            self.frm_client.fill(inv.client)
            self.lbl_logo.setText("Logo chargé" if inv.business.logo else "Aucun logo")
            self.sp_tax.setValue(inv.settings.tax_rate)
            self.sp_discount.setValue(inv.settings.discount)
            self.ed_accent.setText(inv.settings.accent_color)
            self.ed_notes.setPlainText(inv.notes.notes)
            self.ed_terms.setPlainText(inv.notes.terms)
            self.ed_footer.setText(inv.notes.footer)
        finally:
            self._syncing = False
        self._refresh_items(inv, rebuild=True)

    def _on_store_changed(self, inv: Invoice) -> None:
        ids = tuple(it.id for it in inv.items)
        self.lbl_logo.setText("Logo chargé" if inv.business.logo else "Aucun logo")
        self._refresh_items(inv, rebuild=ids != self._item_ids)

    def _refresh_items(self, inv: Invoice, rebuild: bool) -> None:
        cur = inv.meta.currency
        self._syncing = True
        try:
            if rebuild:
                self.tbl_items.setRowCount(0)
                for it in inv.items:
                    r = self.tbl_items.rowCount()
                    self.tbl_items.insertRow(r)
                    desc = QTableWidgetItem(it.description)
                    desc.setData(Qt.ItemDataRole.UserRole, it.id)
                    self.tbl_items.setItem(r, COL_DESC, desc)
                    self.tbl_items.setItem(r, COL_QTY, QTableWidgetItem(f"{it.qty:g}"))
                    self.tbl_items.setItem(r, COL_PRICE, QTableWidgetItem(f"{it.unit_price:g}"))
                    tot = QTableWidgetItem()
                    tot.setFlags(tot.flags() & ~Qt.ItemFlag.ItemIsEditable)
                    self.tbl_items.setItem(r, COL_TOTAL, tot)
                self._item_ids = tuple(it.id for it in inv.items)
            for r, it in enumerate(inv.items):
                cell = self.tbl_items.item(r, COL_TOTAL)
                if cell is not None:
                    cell.setText(format_money(line_total(it), cur))
        finally:
            self._syncing = False
        self.lab_subtotal.setText(f"Sous-total : {format_money(subtotal(inv), cur)}")
        self.lab_total.setText(f"Total : {format_money(total(inv), cur)}")

    # ==================== ACTIONS ====================
    def _on_item_cell_changed(self, cell: QTableWidgetItem) -> None:
        if self._syncing:
            return
        head = self.tbl_items.item(cell.row(), COL_DESC)
        if head is None:
            return
        item_id = head.data(Qt.ItemDataRole.UserRole)
        col = cell.column()
        if col == COL_DESC:
            self.store.update_item(item_id, description=cell.text())
        elif col in (COL_QTY, COL_PRICE):
            field = "qty" if col == COL_QTY else "unit_price"
            self.store.update_item(item_id, **{field: cell.text()})
            # saisie non numérique -> 0 dans le modèle : la cellule réaffiche la valeur retenue
            stored = next((it for it in self.store.current_invoice.items if it.id == item_id), None)
            if stored is not None:
                self._syncing = True
                try:
                    cell.setText(f"{getattr(stored, field):g}")
                finally:
                    self._syncing = False

    def _del_item(self):
        row = self.tbl_items.currentRow()
        if row < 0: return
        head = self.tbl_items.item(row, COL_DESC)
        if head is not None:
            self.store.remove_item(head.data(Qt.ItemDataRole.UserRole))

    def _pick_logo(self):
        path, _ = QFileDialog.getOpenFileName(self, "Choisir un logo", "", "Images (*.png *.jpg *.jpeg)")
        if not path:
            return
        try:
            self.store.update_business(logo=logo_to_data_url(path))
        except (OSError, ValueError) as e:
            log.info("Logo refusé: %s", e)
            QMessageBox.warning(self, "Logo", str(e))

    def _pick_accent(self):
        color = QColorDialog.getColor(QColor(self.ed_accent.text().strip() or "#7C3AED"), self, "Couleur d'accent")
        if color.isValid():
            self.ed_accent.setText(color.name().upper())
            self.store.update_settings(accent_color=color.name().upper())
