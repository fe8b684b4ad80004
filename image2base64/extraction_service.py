import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Sequence, Union

from openai import OpenAI

from .types import PageImage

logger = logging.getLogger(__name__)

API_TIMEOUT = int(os.getenv("API_TIMEOUT", "300"))

IMAGE_DATA_PLACEHOLDER = "{{image_data}}"

DETAIL_FIELDS: List[str] = [
    "name",
    "date_of_birth",
    "address",
    "nic_no",
    "nic_issue_date",
    "dl_no",
    "dl_issue_date",
    "dl_expiry_date",
    "passport_no",
    "passport_issue_date",
    "passport_expiry_date",
    "place_of_birth",
    "id_no",
]

Payload = Union[str, Sequence[PageImage]]


class ExtractionError(RuntimeError):
    """Échec d'appel au service d'extraction (transport, service, configuration)."""


class ExtractionService:
    async def extract(self, payload: Payload, mime_type: str) -> str:
        raise NotImplementedError


def _get_azure_client() -> OpenAI:
    endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
    deployment = os.getenv("AZURE_OPENAI_DEPLOYMENT")
    api_key = os.getenv("AZURE_OPENAI_API_KEY")
    if not (endpoint and deployment and api_key):
        raise RuntimeError("Variables Azure manquantes: AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_DEPLOYMENT, AZURE_OPENAI_API_KEY")
    base_url = endpoint.rstrip('/') + "/openai/v1/"
    return OpenAI(api_key=api_key, base_url=base_url, timeout=API_TIMEOUT)


def _strip_fences(raw: str) -> str:
    s = raw.strip()
    s = re.sub(r"<think>[\s\S]*?</think>", "", s)
    s = s.strip()
    if s.startswith("```json"):
        s = s[7:]
    if s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def _extraction_instructions() -> str:
    fields = ", ".join(DETAIL_FIELDS)
    parts: List[str] = []
    parts.append(
        "Extract information from this document and return it in the specified JSON format.\n"
    )
    parts.append(
        "Follow these strict rules for the JSON response:\n"
        "- If any extracted value is in a language other than English, translate it into English "
        "and store ONLY the translated English text.\n"
        "- If a field is NOT present in the document at all, completely OMIT that parameter from the JSON.\n"
        "- If a field IS present in the document (visually displayed) but you fail to extract its value, "
        "include the parameter and set its value explicitly to null.\n"
        "- If a field has a valid extracted value, include the parameter with that value.\n"
        "- Do not include any parameter in the JSON if its value is null and it is NOT visible in the document.\n"
        "- Only include parameters that either have a valid extracted value, or are visible in the document "
        "but extraction failed (set as null).\n"
    )
    parts.append(
        "\nThe JSON object has exactly these top-level keys:\n"
        "- document_category: string (e.g. passport, driving licence, national identity card)\n"
        "- document_details: object\n"
        "- document_data: string\n"
        f"\nFields to look for in 'document_details': {fields}.\n"
        f"\nThe 'document_data' field should be set to '{IMAGE_DATA_PLACEHOLDER}'.\n"
        "\nReturn ONLY the JSON."
    )
    return "\n".join(parts)


def build_content(payload: Payload, mime_type: str) -> List[Dict[str, Any]]:
    """
    Construit les blocs `input_*` de la requête Responses.

    - liste de pages : une image PNG par page, dans l'ordre ;
    - PDF non découpé : envoyé tel quel en `input_file` ;
    - sinon : une seule image avec le type MIME déclaré.
    """
    content: List[Dict[str, Any]] = []
    if isinstance(payload, str):
        data_url = f"data:{mime_type};base64,{payload}"
        if mime_type == "application/pdf":
            content.append({"type": "input_file", "filename": "document.pdf", "file_data": data_url})
        else:
            content.append({"type": "input_image", "image_url": data_url})
    else:
        for page in payload:
            content.append({"type": "input_image", "image_url": f"data:image/png;base64,{page.base64}"})
    content.append({"type": "input_text", "text": "Process this document according to the instructions."})
    return content


def _azure_extract(client: OpenAI, payload: Payload, mime_type: str) -> str:
    deployment = os.getenv("AZURE_OPENAI_DEPLOYMENT")

    resp = client.responses.create(
        model=deployment,
        instructions=_extraction_instructions(),
        input=[
            {
                "role": "user",
                "content": build_content(payload, mime_type),
            }
        ],
        text={"format": {"type": "json_object"}},
    )
    return _strip_fences(resp.output_text or "") or "{}"


class AzureExtractionService(ExtractionService):
    """
    Extraction de champs structurés via Azure OpenAI (API Responses).

    Aucun nouvel essai : tout échec est remonté sous forme d'`ExtractionError`.
    """

    async def extract(self, payload: Payload, mime_type: str) -> str:
        try:
            client = _get_azure_client()
            return await asyncio.to_thread(_azure_extract, client, payload, mime_type)
        except Exception as exc:
            logger.error("Erreur d'extraction IA: %s", exc)
            raise ExtractionError("Failed to extract text using AI.") from exc
