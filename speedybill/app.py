from __future__ import annotations
import logging
import sys

from PySide6.QtWidgets import QApplication

from speedybill.core.config import load_settings
from speedybill.core.services.invoice_store import InvoiceStore
from speedybill.ui.main_window import MainWindow


def main() -> int:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)
    app.setApplicationName("SpeedyBill")

    store = InvoiceStore(currency=settings.default_currency)
    win = MainWindow(settings, store)
    win.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
