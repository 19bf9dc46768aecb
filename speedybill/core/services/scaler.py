from __future__ import annotations
import logging
import math
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

log = logging.getLogger(__name__)

PREVIEW_PADDING_PX = 24
MIN_SCALE = 0.05


class SizeSource(Protocol):
    """Élément mesurable et observable (hôte d'aperçu ou document rendu)."""

    def current_size(self) -> Tuple[float, float]:
        ...

    def observe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Enregistre `callback` sur changement de taille ; retourne la fonction de libération."""
        ...


def _measurable(*dims: float) -> bool:
    return all(isinstance(d, (int, float)) and math.isfinite(d) and d > 0 for d in dims)


def compute_fit_scale(
    host_size: Tuple[float, float],
    content_size: Tuple[float, float],
    padding: float = PREVIEW_PADDING_PX,
    min_scale: float = MIN_SCALE,
) -> float:
    """
    Plus grande échelle uniforme s ∈ (0, 1] telle que le contenu tienne dans l'hôte
    moins la marge. Jamais d'agrandissement ; 1 si l'hôte ou le contenu n'est pas
    encore mesurable ; plancher `min_scale`.
    """
    host_w, host_h = host_size
    content_w, content_h = content_size
    if not _measurable(host_w, host_h, content_w, content_h):
        return 1.0
    available_w = max(1.0, host_w - padding)
    available_h = max(1.0, host_h - padding)
    scale = min(1.0, available_w / content_w, available_h / content_h)
    if not math.isfinite(scale):
        return 1.0
    return max(min_scale, scale)


class ScalerState(str, Enum):
    UNMEASURED = "unmeasured"
    SETTLED = "settled"


class FitScaler:
    """
    Échelle d'ajustement d'une surface d'aperçu.
    - `activate(host, content)` acquiert les deux observateurs, `deactivate()` les libère
      (toujours, même après une erreur) ; utilisable en gestionnaire de contexte.
    - Recalcul idempotent à chaque notification : la dernière taille observée gagne.
    """

    def __init__(
        self,
        on_scale: Optional[Callable[[float], None]] = None,
        padding: float = PREVIEW_PADDING_PX,
        min_scale: float = MIN_SCALE,
    ) -> None:
        self.padding = padding
        self.min_scale = min_scale
        self.state = ScalerState.UNMEASURED
        self.scale = 1.0
        self._on_scale = on_scale
        self._host: Optional[SizeSource] = None
        self._content: Optional[SizeSource] = None
        self._releases: List[Callable[[], None]] = []

    @property
    def active(self) -> bool:
        return bool(self._releases)

    def activate(self, host: SizeSource, content: SizeSource) -> "FitScaler":
        if self.active:
            self.deactivate()
        self._host, self._content = host, content
        try:
            self._releases.append(host.observe(self.recompute))
            self._releases.append(content.observe(self.recompute))
            self.recompute()
        except Exception:
            self.deactivate()
            raise
        return self

    def deactivate(self) -> None:
        releases, self._releases = self._releases, []
        self._host = self._content = None
        errors = []
        for release in reversed(releases):
            try:
                release()
            except Exception as e:  # on libère les suivants quand même
                errors.append(e)
        if errors:
            raise errors[0]

    def __enter__(self) -> "FitScaler":
        return self

    def __exit__(self, *exc) -> None:
        self.deactivate()

    def recompute(self) -> float:
        if self._host is None or self._content is None:
            return self.scale
        host_size = self._host.current_size()
        content_size = self._content.current_size()
        scale = compute_fit_scale(host_size, content_size, self.padding, self.min_scale)
        if self.state is ScalerState.UNMEASURED and _measurable(*host_size, *content_size):
            self.state = ScalerState.SETTLED
            log.debug("Échelle mesurée: %.3f (hôte %s, contenu %s)", scale, host_size, content_size)
        self.scale = scale
        if self._on_scale:
            self._on_scale(scale)
        return scale
