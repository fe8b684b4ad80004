import asyncio
import logging
from typing import Callable, Optional

from .codec import DEFAULT_MIME, Base64DecodeError, decode_bytes, decode_input
from .types import DecodedResource

logger = logging.getLogger(__name__)


class AutoConverter:
    """
    Conversion base64 → aperçu déclenchée à la saisie.

    Chaque modification réarme un minuteur ; la conversion n'a lieu que si
    la saisie dépasse `min_length` et reste inchangée pendant `delay`
    secondes. `submit()` convertit immédiatement, sans seuil ni délai.
    """

    def __init__(
        self,
        delay: float = 0.5,
        min_length: int = 20,
        default_mime: str = DEFAULT_MIME,
        on_preview: Optional[Callable[[Optional[DecodedResource]], None]] = None,
    ) -> None:
        self.delay = delay
        self.min_length = min_length
        self.default_mime = default_mime
        self.on_preview = on_preview
        self.text = ""
        self.preview: Optional[DecodedResource] = None
        self.error: Optional[str] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def up_to_date(self) -> bool:
        """Vrai si l'aperçu courant correspond déjà à la saisie courante."""
        if self.pending or self.preview is None:
            return False
        return self.preview == decode_input(self.text, manual=False, default_mime=self.default_mime)

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def feed(self, text: str) -> None:
        """Nouvelle valeur de la zone de saisie (doit être appelé dans une boucle asyncio)."""
        self.text = text
        self._cancel()
        if len(text) > self.min_length:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(self.delay, self._fire, text)

    def _fire(self, text: str) -> None:
        self._handle = None
        self._convert(text, manual=False)

    def submit(self, text: Optional[str] = None) -> Optional[DecodedResource]:
        self._cancel()
        return self._convert(self.text if text is None else text, manual=True)

    def clear(self) -> None:
        self._cancel()
        self.text = ""
        self.preview = None
        self.error = None

    def _convert(self, text: str, manual: bool) -> Optional[DecodedResource]:
        try:
            resource = decode_input(text, manual=manual, default_mime=self.default_mime)
            if resource is None:
                return None
            # Vérifie que le contenu se décode, comme le ferait le rendu.
            decode_bytes(resource)
        except Base64DecodeError as e:
            self.error = str(e)
            self.preview = None
            logger.debug("Conversion refusée: %s", e)
            if manual:
                raise
            return None

        self.error = None
        self.preview = resource
        if self.on_preview:
            self.on_preview(resource)
        return resource
