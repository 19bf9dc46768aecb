from __future__ import annotations
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Protocol, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from speedybill.core.config import TEMPLATES_DIR
from speedybill.core.formatting import format_date, format_money, format_qty
from speedybill.core.models.invoice import Invoice, TemplateVariant
from speedybill.core.services.totals import compute_totals, line_total

log = logging.getLogger(__name__)

# Format A4 à 96 dpi : largeur fixe, hauteur minimale (le contenu peut l'allonger)
DOCUMENT_WIDTH_PX = 794
DOCUMENT_MIN_HEIGHT_PX = 1123
PAPER_SHADOW = "0 12px 36px rgba(31, 41, 55, 0.12)"


# ---------- Variantes de gabarit ----------

class VariantStyle(NamedTuple):
    border_css: str


VARIANT_STYLES: Dict[TemplateVariant, VariantStyle] = {
    TemplateVariant.MODERN: VariantStyle("border-top: 8px solid;"),
    TemplateVariant.CLASSIC: VariantStyle("border-top: 4px solid; border-bottom: 4px solid;"),
    TemplateVariant.MINIMAL: VariantStyle("border-left: 4px solid;"),
}

_missing = set(TemplateVariant) - set(VARIANT_STYLES)
if _missing:  # pragma: no cover
    raise RuntimeError(f"Variantes sans style: {sorted(v.value for v in _missing)}")


def variant_style(variant: TemplateVariant) -> VariantStyle:
    return VARIANT_STYLES[TemplateVariant(variant)]


# ---------- Styles inline ----------

def parse_style(style: Optional[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for decl in (style or "").split(";"):
        if ":" not in decl:
            continue
        prop, value = decl.split(":", 1)
        prop = prop.strip().lower()
        if prop:
            out[prop] = value.strip()
    return out


def format_style(props: Dict[str, str]) -> str:
    return " ".join(f"{k}: {v};" for k, v in props.items())


# ---------- Rendu HTML ----------

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def stylesheet(templates_dir: Path = TEMPLATES_DIR) -> str:
    css = templates_dir / "stylesheet.css"
    return css.read_text(encoding="utf-8") if css.exists() else ""


def render_invoice_html(invoice: Invoice, scale: float = 1.0, transform_origin: str = "top center") -> str:
    """Fragment XHTML : `div.print-surface` (échelle d'affichage) > `article.invoice-document`."""
    currency = invoice.meta.currency
    settings = invoice.settings
    totals = compute_totals(invoice)
    article_style = {
        **parse_style(variant_style(settings.template).border_css),
        "border-color": settings.accent_color,
        "width": f"{DOCUMENT_WIDTH_PX}px",
        "min-height": f"{DOCUMENT_MIN_HEIGHT_PX}px",
        "margin": "0 auto",
        "box-shadow": PAPER_SHADOW,
    }
    ctx = {
        "scale": f"{scale:g}",
        "transform_origin": transform_origin,
        "variant": settings.template.value,
        "article_style": format_style(article_style),
        "accent": settings.accent_color,
        "meta": invoice.meta,
        "issue_date": format_date(invoice.meta.issue_date),
        "due_date": format_date(invoice.meta.due_date),
        "business": invoice.business,
        "client": invoice.client,
        "rows": [
            {
                "id": it.id,
                "description": it.description or "-",
                "qty": format_qty(it.qty),
                "unit_price": format_money(it.unit_price, currency),
                "total": format_money(line_total(it), currency),
            }
            for it in invoice.items
        ],
        "totals": {
            "subtotal": format_money(totals.subtotal, currency),
            "tax_amount": format_money(totals.tax_amount, currency),
            "discount_amount": format_money(totals.discount_amount, currency),
            "total": format_money(totals.total, currency),
        },
        "notes": invoice.notes,
    }
    return _env.get_template("invoice.html").render(**ctx)


def page_html(fragment: str, extra_css: str = "", title: str = "Invoice") -> str:
    """Document HTML complet (feuille de style inline) pour les moteurs de rendu."""
    return (
        "<!doctype html>\n<html><head><meta charset=\"utf-8\"/>"
        f"<title>{title}</title><style>{stylesheet()}\n{extra_css}</style></head>"
        f"<body>{fragment}</body></html>"
    )


# ---------- Mesure ----------

class LayoutMeasurer(Protocol):
    def measure(self, html: str, width: int) -> Tuple[int, int]:
        ...


@dataclass
class RenderedDocument:
    surface: ET.Element  # div.print-surface
    article: ET.Element  # article.invoice-document (racine mesurée / capturée)
    natural_size: Tuple[int, int]

    def fragment(self) -> str:
        return ET.tostring(self.article, encoding="unicode", method="html")


class DocumentSurface:
    """
    Une copie rendue indépendante de la facture (volet d'aperçu, aperçu plein écran
    ou copie d'export hors écran). La copie d'export est créée avec `scalable=False`
    et reste toujours à l'échelle 1.
    """

    def __init__(
        self,
        name: str,
        measurer: LayoutMeasurer,
        *,
        scalable: bool = True,
        transform_origin: str = "top center",
    ) -> None:
        self.name = name
        self.scalable = scalable
        self.transform_origin = transform_origin
        self._measurer = measurer
        self._doc: Optional[RenderedDocument] = None
        self._scale = 1.0
        self._listeners: List[Callable[[], None]] = []

    # --- état ---
    @property
    def document(self) -> Optional[RenderedDocument]:
        return self._doc

    @property
    def root(self) -> Optional[ET.Element]:
        return self._doc.article if self._doc else None

    @property
    def scale(self) -> float:
        return self._scale

    def current_size(self) -> Tuple[float, float]:
        return self._doc.natural_size if self._doc else (0, 0)

    def html(self) -> str:
        if not self._doc:
            return ""
        return ET.tostring(self._doc.surface, encoding="unicode", method="html")

    # --- cycle de vie ---
    def mount(self, invoice: Invoice) -> RenderedDocument:
        previous = self.current_size()
        fragment = render_invoice_html(invoice, scale=self._scale, transform_origin=self.transform_origin)
        surface = ET.fromstring(fragment)
        article = surface.find("article")
        if article is None:  # pragma: no cover - gabarit cassé
            raise RuntimeError("Gabarit de facture sans <article>")
        article_html = ET.tostring(article, encoding="unicode", method="html")
        width, height = self._measurer.measure(page_html(article_html), DOCUMENT_WIDTH_PX)
        size = (max(int(width), DOCUMENT_WIDTH_PX), max(int(height), DOCUMENT_MIN_HEIGHT_PX))
        self._doc = RenderedDocument(surface=surface, article=article, natural_size=size)
        log.debug("Surface %s rendue (%sx%s)", self.name, *size)
        if size != previous:
            self._notify()
        return self._doc

    def unmount(self) -> None:
        if self._doc is None:
            return
        self._doc = None
        # taille revenue à (0, 0) : les observateurs recalculent
        self._notify()

    def set_scale(self, scale: float) -> None:
        if not self.scalable:
            return
        self._scale = scale
        if self._doc:
            props = parse_style(self._doc.surface.get("style"))
            props["transform"] = f"scale({scale:g})"
            self._doc.surface.set("style", format_style(props))

    # --- observation de la taille naturelle ---
    def observe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def _release() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _release

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb()
