from __future__ import annotations
import base64
import logging
import mimetypes
import os
from pathlib import Path

log = logging.getLogger(__name__)

MAX_LOGO_BYTES = 2 * 1024 * 1024
ACCEPTED_TYPES = ("image/png", "image/jpeg")


class LogoTooLargeError(ValueError):
    pass


def logo_to_data_url(path: os.PathLike | str) -> str:
    """
    Fichier image -> URL `data:` intégrable dans le document.
    Repli sur une référence `file://` si le contenu ne peut pas être lu.
    """
    p = Path(path)
    mime = mimetypes.guess_type(p.name)[0]
    if mime not in ACCEPTED_TYPES:
        raise ValueError(f"Format de logo non supporté: {p.suffix or p.name} (PNG/JPG)")
    size = p.stat().st_size
    if size > MAX_LOGO_BYTES:
        raise LogoTooLargeError(f"Logo trop lourd ({size / 1024 / 1024:.1f} Mo, max 2 Mo)")
    try:
        data = p.read_bytes()
    except OSError as e:
        log.warning("Lecture du logo impossible (%s), référence fichier utilisée", e)
        return p.resolve().as_uri()
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
