from __future__ import annotations
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import coerce_number, gen_id

FALLBACK_CURRENCY = "USD"
DEFAULT_ACCENT = "#7C3AED"
DUE_DAYS = 7


class TemplateVariant(str, Enum):
    MODERN = "modern"
    CLASSIC = "classic"
    MINIMAL = "minimal"


class _Part(BaseModel):
    # sous-objets immuables : un patch remplace l'objet, jamais ses champs
    model_config = ConfigDict(frozen=True, extra="forbid")


class Address(_Part):
    line1: str = ""
    line2: str = ""
    state: str = ""
    country: str = ""


class InvoiceMeta(_Part):
    currency: str = FALLBACK_CURRENCY
    invoice_number: str = ""
    issue_date: Optional[date] = None
    due_date: Optional[date] = None

    @field_validator("issue_date", "due_date", mode="before")
    @classmethod
    def _empty_date(cls, v):
        # champ date vidé dans le formulaire
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ClientParty(_Part):
    name: str = ""
    address: Address = Field(default_factory=Address)
    phone: str = ""
    email: str = ""


class BusinessParty(ClientParty):
    logo: Optional[str] = None  # data: URL déjà intégrable


class LineItem(_Part):
    id: str = Field(default_factory=gen_id)
    description: str = ""
    qty: float = 1.0
    unit_price: float = 0.0

    @field_validator("qty", "unit_price", mode="before")
    @classmethod
    def _numeric(cls, v):
        return coerce_number(v)


class InvoiceSettings(_Part):
    tax_rate: float = 0.0
    discount: float = 0.0
    accent_color: str = DEFAULT_ACCENT
    template: TemplateVariant = TemplateVariant.MODERN

    @field_validator("tax_rate", "discount", mode="before")
    @classmethod
    def _numeric(cls, v):
        return coerce_number(v)


class InvoiceNotes(_Part):
    notes: str = ""
    terms: str = ""
    footer: str = ""


class Invoice(_Part):
    meta: InvoiceMeta = Field(default_factory=InvoiceMeta)
    business: BusinessParty = Field(default_factory=BusinessParty)
    client: ClientParty = Field(default_factory=ClientParty)
    items: Tuple[LineItem, ...] = ()
    settings: InvoiceSettings = Field(default_factory=InvoiceSettings)
    notes: InvoiceNotes = Field(default_factory=InvoiceNotes)


def locale_currency() -> str:
    """Code devise de la locale système (QLocale), USD si indéterminé."""
    try:
        from PySide6.QtCore import QLocale
        code = QLocale.system().currencySymbol(QLocale.CurrencySymbolFormat.CurrencyIsoCode)
    except ImportError:
        code = ""
    return (code or "").strip().upper() or FALLBACK_CURRENCY


def default_invoice(
    today: Optional[date] = None,
    currency: Optional[str] = None,
    item_id: Optional[str] = None,
) -> Invoice:
    today = today or date.today()
    return Invoice(
        meta=InvoiceMeta(
            currency=currency or locale_currency(),
            invoice_number=f"INV-{today.year}-001",
            issue_date=today,
            due_date=today + timedelta(days=DUE_DAYS),
        ),
        business=BusinessParty(
            name="Your Business Name",
            address=Address(
                line1="Street Address",
                line2="Suite / Floor",
                state="State",
                country="United States",
            ),
            phone="+1 555-0100",
            email="billing@business.com",
        ),
        client=ClientParty(
            name="Client Company",
            address=Address(
                line1="Client Street",
                line2="",
                state="State",
                country="United States",
            ),
            phone="+1 555-0199",
            email="accounts@client.com",
        ),
        items=(LineItem(id=item_id or gen_id(), description="Service Fee", qty=1, unit_price=500),),
        settings=InvoiceSettings(),
        notes=InvoiceNotes(
            notes="Thank you for your business.",
            terms="Payment due within 7 days.",
            footer="SpeedyBill",
        ),
    )
