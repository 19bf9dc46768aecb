from __future__ import annotations
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

log = logging.getLogger(__name__)

# --- Chemins de base ---
ROOT_DIR = Path(__file__).resolve().parents[2]  # racine du projet
DATA_DIR = ROOT_DIR / "data"
SETTINGS_JSON = DATA_DIR / "settings.json"
EXPORTS_DIR = ROOT_DIR / "exports" / "invoices"
TEMPLATES_DIR = ROOT_DIR / "speedybill" / "templates"


class AppSettings(BaseModel):
    """Paramètres de l'application (data/settings.json + variables d'environnement)."""

    model_config = ConfigDict(extra="ignore")

    # Aperçu
    preview_padding_px: int = Field(default=24, ge=0, description="Marge retirée de l'hôte avant ajustement")
    min_scale: float = Field(default=0.05, gt=0, le=1, description="Échelle plancher de l'aperçu")

    # Capture
    capture_min_scale: float = Field(default=2.0, ge=1, description="Facteur de rastérisation minimal")
    blank_sample_stride: int = Field(default=4, ge=1, description="Un pixel échantillonné sur N")
    blank_rgb_threshold: int = Field(default=248, ge=0, le=255, description="Au-dessus : pixel quasi blanc")
    blank_alpha_threshold: int = Field(default=0, ge=0, le=255, description="Au-dessus : pixel non transparent")

    # PDF
    page_width_mm: float = Field(default=210, gt=0)
    page_min_height_mm: float = Field(default=297, gt=0)
    default_filename: str = "invoice"
    exports_dir: Path = EXPORTS_DIR

    # Binaires externes (auto-détectés si absents)
    wkhtmltopdf_path: Optional[str] = None
    wkhtmltoimage_path: Optional[str] = None

    default_currency: Optional[str] = None
    log_level: str = "INFO"


# ---------- Utils JSON ----------
def _load_json(path: os.PathLike | str):
    p = Path(path)
    if not p.exists():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("Lecture impossible de %s (%s), paramètres par défaut", p, e)
        return None


def _clean_path(p: str) -> str:
    """Corrige 'C\\:\\Program Files\\...' -> 'C:\\Program Files\\...' et normalise."""
    if not p:
        return ""
    p = p.strip().strip('"').strip("'")
    p = p.replace("\\:", ":")
    return os.path.normpath(p)


def load_settings(path: os.PathLike | str = SETTINGS_JSON, environ: Optional[Mapping[str, str]] = None) -> AppSettings:
    env = os.environ if environ is None else environ
    raw = _load_json(path)
    data: dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}

    # compat: bloc "pdf" { "wkhtmltopdf_path": ... }
    pdf_conf = data.get("pdf") if isinstance(data.get("pdf"), dict) else {}
    for key in ("wkhtmltopdf_path", "wkhtmltoimage_path"):
        if not data.get(key) and pdf_conf.get(key):
            data[key] = pdf_conf[key]

    # l'environnement a priorité sur le fichier
    for env_key in ("WKHTMLTOPDF", "WKHTMLTOPDF_CMD"):
        if env.get(env_key):
            data["wkhtmltopdf_path"] = env[env_key]
            break
    if env.get("WKHTMLTOIMAGE"):
        data["wkhtmltoimage_path"] = env["WKHTMLTOIMAGE"]
    if env.get("SPEEDYBILL_EXPORTS_DIR"):
        data["exports_dir"] = env["SPEEDYBILL_EXPORTS_DIR"]
    if env.get("SPEEDYBILL_LOG_LEVEL"):
        data["log_level"] = env["SPEEDYBILL_LOG_LEVEL"]

    try:
        return AppSettings.model_validate(data)
    except ValidationError as e:
        log.warning("settings.json invalide, paramètres par défaut utilisés: %s", e)
        return AppSettings()


# ---------- Binaires wkhtmltox ----------
def find_wkhtml_binary(name: str, configured: Optional[str] = None) -> Optional[str]:
    """
    Localise wkhtmltopdf / wkhtmltoimage :
    - chemin configuré (settings / env)
    - chemins Windows connus
    - PATH
    """
    if configured:
        path = _clean_path(configured)
        if Path(path).is_file():
            return path
        log.warning("%s configuré mais introuvable: %s", name, path)

    for base in (r"C:\Program Files\wkhtmltopdf\bin", r"C:\Program Files (x86)\wkhtmltopdf\bin"):
        candidate = Path(base) / f"{name}.exe"
        if candidate.is_file():
            return str(candidate)

    found = shutil.which(name)
    if found:
        return _clean_path(found)
    return None
