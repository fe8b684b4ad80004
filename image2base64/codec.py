import base64
import binascii
import logging
import re
from typing import List, Optional, Tuple

from .types import DecodedResource, RawFile

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(r"^data:([^;]+);base64,(.+)$")
_WHITESPACE_RE = re.compile(r"\s")

# Préfixes base64 des signatures binaires connues, testés dans l'ordre.
MAGIC_PREFIXES: List[Tuple[str, str]] = [
    ("iVBORw0KGgo", "image/png"),
    ("/9j/", "image/jpeg"),
    ("JVBERi0", "application/pdf"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
]

DEFAULT_MIME = "image/png"


class Base64DecodeError(ValueError):
    """Erreur de décodage d'une chaîne base64 saisie par l'utilisateur."""


class EmptyInputError(Base64DecodeError):
    """Aucune chaîne base64 fournie."""


class InvalidBase64Error(Base64DecodeError):
    """La chaîne ne se décode pas (équivalent d'un échec de rendu)."""


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def file_to_base64(raw: RawFile) -> str:
    """Encode le contenu complet d'un fichier en base64 (sans préfixe data:)."""
    return encode_bytes(raw.data)


def clean_input(text: str) -> str:
    return _WHITESPACE_RE.sub("", text.strip())


def parse_data_uri(text: str) -> Optional[Tuple[str, str]]:
    match = DATA_URI_RE.match(text)
    if not match:
        return None
    return match.group(1), match.group(2)


def sniff_mime(payload: str, default: str = DEFAULT_MIME) -> str:
    """
    Devine le type MIME à partir des premiers caractères base64.

    Aucun préfixe reconnu → `default` (PNG par défaut, politique volontairement
    permissive).
    """
    for prefix, mime in MAGIC_PREFIXES:
        if payload.startswith(prefix):
            return mime
    return default


def decode_input(text: str, manual: bool = True, default_mime: str = DEFAULT_MIME) -> Optional[DecodedResource]:
    """
    Transforme une saisie utilisateur en ressource affichable.

    - Un préfixe `data:<mime>;base64,` l'emporte sur la détection par signature.
    - Saisie vide : `EmptyInputError` si déclenchée manuellement, `None` sinon.
    - Le contenu base64 n'est pas validé ici, cf. `decode_bytes`.
    """
    if not text or not text.strip():
        if manual:
            raise EmptyInputError("Please enter a base64 string.")
        return None

    cleaned = clean_input(text)
    parsed = parse_data_uri(cleaned)
    if parsed:
        mime, payload = parsed
    else:
        mime, payload = sniff_mime(cleaned, default=default_mime), cleaned

    logger.debug("Décodage base64: mime=%s, longueur=%d", mime, len(payload))
    return DecodedResource(mime_type=mime, base64=payload)


def decode_bytes(resource: DecodedResource) -> bytes:
    # Le rembourrage `=` final est facultatif, comme dans un navigateur.
    payload = resource.base64 + "=" * (-len(resource.base64) % 4)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidBase64Error("Invalid base64 string format.") from e


def extension_for_mime(mime: Optional[str]) -> str:
    if not mime:
        return "png"
    _, _, subtype = mime.partition("/")
    return subtype or "png"


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def truncate_string(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    return text[:length] + "..."
