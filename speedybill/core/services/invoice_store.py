from __future__ import annotations
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set, TypeVar

from pydantic import BaseModel

from speedybill.core.models.common import gen_id
from speedybill.core.models.invoice import Invoice, LineItem, default_invoice

log = logging.getLogger(__name__)

Listener = Callable[[Invoice], None]
P = TypeVar("P", bound=BaseModel)


def _merge(part: P, patch: Dict[str, Any]) -> P:
    """Nouvelle instance de `part` avec les champs du patch (validés) ; les autres gardent leur identité."""
    cls = type(part)
    data = {name: getattr(part, name) for name in cls.model_fields}
    data.update(patch)
    return cls.model_validate(data)


class InvoiceStore:
    """
    Conteneur d'état de la facture en cours d'édition (une instance par session).
    - Aucun singleton : l'instance est passée aux composants qui lisent / modifient.
    - Chaque patch remplace un seul sous-objet ; les voisins gardent leur identité
      (comparaison `is` suffisante pour savoir si une branche a changé).
    - Aucune validation métier ni clamp à l'écriture : les totaux s'en chargent.
    """

    def __init__(
        self,
        currency: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._currency = currency
        self._today = today
        self._used_ids: Set[str] = set()
        self._listeners: List[Listener] = []
        self._invoice = self._fresh_invoice()

    # ---------- Lecture / abonnements ----------

    @property
    def current_invoice(self) -> Invoice:
        return self._invoice

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, invoice: Invoice) -> Invoice:
        self._invoice = invoice
        for listener in list(self._listeners):
            listener(invoice)
        return invoice

    # ---------- Identifiants ----------

    def _new_item_id(self) -> str:
        # jamais réutilisé dans la session, y compris après reset
        while True:
            item_id = gen_id()
            if item_id not in self._used_ids:
                self._used_ids.add(item_id)
                return item_id

    def _fresh_invoice(self) -> Invoice:
        return default_invoice(today=self._today(), currency=self._currency, item_id=self._new_item_id())

    def reset(self) -> Invoice:
        log.debug("Réinitialisation de la facture")
        return self._commit(self._fresh_invoice())

    # ---------- Patchs par sous-objet ----------

    def _patch_part(self, field: str, patch: Dict[str, Any]) -> Invoice:
        if not patch:
            return self._invoice
        updated = _merge(getattr(self._invoice, field), patch)
        return self._commit(self._invoice.model_copy(update={field: updated}))

    def _patch_address(self, party_field: str, patch: Dict[str, Any]) -> Invoice:
        if not patch:
            return self._invoice
        party = getattr(self._invoice, party_field)
        party = party.model_copy(update={"address": _merge(party.address, patch)})
        return self._commit(self._invoice.model_copy(update={party_field: party}))

    def update_meta(self, **patch: Any) -> Invoice:
        return self._patch_part("meta", patch)

    def update_business(self, **patch: Any) -> Invoice:
        return self._patch_part("business", patch)

    def update_business_address(self, **patch: Any) -> Invoice:
        return self._patch_address("business", patch)

    def update_client(self, **patch: Any) -> Invoice:
        return self._patch_part("client", patch)

    def update_client_address(self, **patch: Any) -> Invoice:
        return self._patch_address("client", patch)

    def update_settings(self, **patch: Any) -> Invoice:
        return self._patch_part("settings", patch)

    def update_notes(self, **patch: Any) -> Invoice:
        return self._patch_part("notes", patch)

    # ---------- Lignes ----------

    def add_item(self) -> str:
        item = LineItem(id=self._new_item_id(), description="", qty=1, unit_price=0)
        self._commit(self._invoice.model_copy(update={"items": self._invoice.items + (item,)}))
        return item.id

    def update_item(self, item_id: str, **patch: Any) -> Invoice:
        if "id" in patch:
            raise ValueError("L'identifiant d'une ligne n'est pas modifiable")
        if not patch or not any(it.id == item_id for it in self._invoice.items):
            return self._invoice
        items = tuple(_merge(it, patch) if it.id == item_id else it for it in self._invoice.items)
        return self._commit(self._invoice.model_copy(update={"items": items}))

    def remove_item(self, item_id: str) -> Invoice:
        items = tuple(it for it in self._invoice.items if it.id != item_id)
        if len(items) == len(self._invoice.items):
            return self._invoice
        return self._commit(self._invoice.model_copy(update={"items": items}))
