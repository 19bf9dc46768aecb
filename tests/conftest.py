"""Fixtures partagées de la suite SpeedyBill."""

import os
from datetime import date

import pytest

# rendu Qt sans serveur d'affichage
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from speedybill.core.services.invoice_store import InvoiceStore

TODAY = date(2024, 3, 15)


class FakeMeasurer:
    """Mesureur fixe : renvoie la taille demandée, sans moteur de mise en page."""

    def __init__(self, size=(794, 1123)):
        self.size = size
        self.calls = 0

    def measure(self, html, width):
        self.calls += 1
        return self.size


class FakeSizeSource:
    """Source de taille pilotable à la main, qui compte ses observateurs."""

    def __init__(self, size=(0, 0)):
        self.size = size
        self.callbacks = []
        self.released = 0

    def current_size(self):
        return self.size

    def observe(self, callback):
        self.callbacks.append(callback)

        def _release():
            self.released += 1
            if callback in self.callbacks:
                self.callbacks.remove(callback)

        return _release

    def resize(self, size):
        self.size = size
        for cb in list(self.callbacks):
            cb()


@pytest.fixture(scope="session")
def qapp():
    """QApplication unique pour les tests qui touchent QImage / QPainter / widgets."""
    from PySide6.QtWidgets import QApplication

    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def store() -> InvoiceStore:
    return InvoiceStore(currency="USD", today=lambda: TODAY)


@pytest.fixture
def measurer() -> FakeMeasurer:
    return FakeMeasurer()


@pytest.fixture
def size_source():
    """Fabrique de sources de taille pilotables."""
    return FakeSizeSource


@pytest.fixture
def measurer_of():
    """Fabrique de mesureurs à taille imposée."""
    return FakeMeasurer
