"""Tests du rendu HTML et des surfaces de document."""

import xml.etree.ElementTree as ET

import pytest

from speedybill.core.models.invoice import TemplateVariant
from speedybill.core.services.render_service import (
    DOCUMENT_MIN_HEIGHT_PX,
    DOCUMENT_WIDTH_PX,
    VARIANT_STYLES,
    DocumentSurface,
    format_style,
    page_html,
    parse_style,
    render_invoice_html,
    variant_style,
)
from speedybill.core.services.scaler import FitScaler


def _text(el: ET.Element) -> str:
    return " ".join("".join(el.itertext()).split())


class TestStyles:
    def test_parse_and_format(self):
        props = parse_style("Transform: scale(0.5); margin:0 auto ;;bad")
        assert props == {"transform": "scale(0.5)", "margin": "0 auto"}
        assert format_style(props) == "transform: scale(0.5); margin: 0 auto;"

    def test_every_variant_has_a_style(self):
        assert set(VARIANT_STYLES) == set(TemplateVariant)

    def test_variant_lookup_accepts_value(self):
        assert variant_style("classic") is VARIANT_STYLES[TemplateVariant.CLASSIC]


class TestRenderInvoiceHtml:
    def test_structure_and_values(self, store):
        store.update_settings(tax_rate=10, discount=5)
        item_id = store.current_invoice.items[0].id
        root = ET.fromstring(render_invoice_html(store.current_invoice))

        assert root.get("class") == "print-surface"
        article = root.find("article")
        assert "variant-modern" in article.get("class")
        assert "border-top: 8px solid" in article.get("style")
        assert "border-color: #7C3AED" in article.get("style")

        row = article.find(f".//tr[@data-item-id='{item_id}']")
        assert row is not None
        assert "Service Fee" in _text(row)
        assert "$500.00" in _text(row)

        text = _text(article)
        assert "INV-2024-001" in text
        assert "Mar 15, 2024" in text
        assert "Mar 22, 2024" in text
        assert "$50.00" in text  # taxe
        assert "-$5.00" in text  # remise
        assert "$545.00" in text  # total

    def test_user_text_is_escaped(self, store):
        store.update_client(name="<b>A & B</b>")
        root = ET.fromstring(render_invoice_html(store.current_invoice))
        assert "<b>A & B</b>" in _text(root)
        assert root.find(".//b") is None

    def test_blank_description_shows_dash(self, store):
        item_id = store.add_item()
        root = ET.fromstring(render_invoice_html(store.current_invoice))
        row = root.find(f".//tr[@data-item-id='{item_id}']")
        assert row.find("td").text == "-"

    def test_logo_only_when_set(self, store):
        root = ET.fromstring(render_invoice_html(store.current_invoice))
        assert root.find(".//img") is None
        store.update_business(logo="data:image/png;base64,AAAA")
        root = ET.fromstring(render_invoice_html(store.current_invoice))
        assert root.find(".//img").get("src") == "data:image/png;base64,AAAA"

    @pytest.mark.parametrize("variant", list(TemplateVariant))
    def test_each_variant_renders(self, store, variant):
        store.update_settings(template=variant)
        article = ET.fromstring(render_invoice_html(store.current_invoice)).find("article")
        assert f"variant-{variant.value}" in article.get("class")

    def test_scale_in_surface_style(self, store):
        root = ET.fromstring(render_invoice_html(store.current_invoice, scale=0.5, transform_origin="top left"))
        props = parse_style(root.get("style"))
        assert props["transform"] == "scale(0.5)"
        assert props["transform-origin"] == "top left"

    def test_page_html_wraps_fragment(self):
        html = page_html("<p>x</p>", extra_css="body{}", title="T")
        assert html.startswith("<!doctype html>")
        assert "<title>T</title>" in html
        assert "body{}" in html
        assert "<body><p>x</p></body>" in html


class TestDocumentSurface:
    def test_unmounted_surface(self, measurer):
        surface = DocumentSurface("desktop", measurer)
        assert surface.root is None
        assert surface.current_size() == (0, 0)
        assert surface.html() == ""

    def test_mount_measures_and_notifies(self, store, measurer_of):
        measurer = measurer_of(size=(794, 1500))
        surface = DocumentSurface("desktop", measurer)
        calls = []
        surface.observe(lambda: calls.append(surface.current_size()))

        surface.mount(store.current_invoice)
        assert surface.root.tag == "article"
        assert surface.current_size() == (794, 1500)
        assert calls == [(794, 1500)]

        # même taille : pas de notification
        surface.mount(store.current_invoice)
        assert len(calls) == 1

    def test_size_never_below_a4(self, store, measurer_of):
        surface = DocumentSurface("desktop", measurer_of(size=(300, 200)))
        surface.mount(store.current_invoice)
        assert surface.current_size() == (DOCUMENT_WIDTH_PX, DOCUMENT_MIN_HEIGHT_PX)

    def test_set_scale_updates_display_copy(self, store, measurer):
        surface = DocumentSurface("desktop", measurer)
        surface.mount(store.current_invoice)
        surface.set_scale(0.4)
        assert surface.scale == 0.4
        assert "scale(0.4)" in surface.html()
        # l'article lui-même n'est jamais transformé
        assert "scale(" not in (surface.root.get("style") or "")

    def test_export_surface_stays_at_scale_one(self, store, measurer):
        surface = DocumentSurface("export", measurer, scalable=False)
        surface.mount(store.current_invoice)
        surface.set_scale(0.3)
        assert surface.scale == 1
        assert parse_style(surface.document.surface.get("style"))["transform"] == "scale(1)"

    def test_surfaces_are_independent(self, store, measurer):
        desktop = DocumentSurface("desktop", measurer)
        export = DocumentSurface("export", measurer, scalable=False)
        desktop.mount(store.current_invoice)
        export.mount(store.current_invoice)
        desktop.set_scale(0.5)
        assert desktop.root is not export.root
        assert "scale(1)" in export.html()

    def test_unmount(self, store, measurer):
        surface = DocumentSurface("overlay", measurer)
        surface.mount(store.current_invoice)
        surface.unmount()
        assert surface.root is None

    def test_release_observer(self, store, measurer_of):
        surface = DocumentSurface("desktop", measurer_of(size=(794, 1300)))
        calls = []
        release = surface.observe(lambda: calls.append(1))
        release()
        surface.mount(store.current_invoice)
        assert calls == []

    def test_unmount_notifies_observers(self, store, measurer_of):
        surface = DocumentSurface("overlay", measurer_of(size=(794, 1300)))
        surface.mount(store.current_invoice)
        seen = []
        surface.observe(lambda: seen.append(surface.current_size()))

        surface.unmount()
        assert seen == [(0, 0)]

        # déjà démontée : rien à signaler
        surface.unmount()
        assert seen == [(0, 0)]

    def test_scaler_watching_surface_drops_stale_size(self, store, measurer, size_source):
        surface = DocumentSurface("desktop", measurer)
        surface.mount(store.current_invoice)
        scaler = FitScaler().activate(size_source((800, 486)), surface)
        assert scaler.scale == pytest.approx(462 / 1123)

        surface.unmount()
        assert scaler.scale == 1
