"""
ocr.py
Text extraction for Text Capture, backed by Google Gemini.

Images arrive as data URLs and are sent to the model as inline bytes.
"""

import base64
import binascii
import logging
from typing import Optional

from google import genai
from google.genai import types

import config

logger = logging.getLogger("text_capture.ocr")

_client: Optional[genai.Client] = None


class OcrError(Exception):
    """Raised when text could not be extracted from an image."""


def build_prompt(language: str = config.OCR_LANGUAGE) -> str:
    return (
        f"Extract all {language} text visible in this image. "
        "Return only the extracted text, keeping the original line breaks. "
        "If there is no text, return an empty response."
    )


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """
    Split a base64 data URL into its mime type and raw bytes.

    Args:
        data_url (str): Value such as ``data:image/png;base64,iVBOR...``.

    Returns:
        tuple[str, bytes]: Mime type and decoded payload.

    Raises:
        OcrError: If the value is not a base64 image data URL.
    """
    if not data_url or not data_url.startswith("data:"):
        raise OcrError("Image payload is not a data URL.")

    try:
        header, encoded = data_url.split(",", 1)
    except ValueError:
        raise OcrError("Image payload is not a data URL.") from None

    if ";base64" not in header:
        raise OcrError("Image payload is not base64 encoded.")

    mime_type = header[len("data:"):].split(";", 1)[0] or "image/png"
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise OcrError(f"Image payload could not be decoded: {exc}") from exc
    return mime_type, data


def get_client() -> genai.Client:
    """Return the shared Gemini client, creating it on first use."""
    global _client
    if _client is None:
        if not config.GEMINI_API_KEY:
            raise OcrError("GEMINI_API_KEY is not set. Add it to your environment or .env file.")
        _client = genai.Client(api_key=config.GEMINI_API_KEY)
    return _client


def extract_text(photo_data_uri: str, client: Optional[genai.Client] = None) -> str:
    """
    Extract text from an image.

    Args:
        photo_data_uri (str): Image encoded as a base64 data URL.
        client: Gemini client; the shared one is used when omitted.

    Returns:
        str: Extracted text, empty when the model found none.

    Raises:
        OcrError: If the payload is invalid or the model call fails.
    """
    mime_type, data = parse_data_url(photo_data_uri)
    client = client or get_client()

    logger.debug("Sending %d bytes (%s) to %s", len(data), mime_type, config.OCR_MODEL)
    try:
        response = client.models.generate_content(
            model=config.OCR_MODEL,
            contents=[
                types.Part.from_bytes(data=data, mime_type=mime_type),
                build_prompt(),
            ],
        )
    except Exception as exc:
        raise OcrError(f"Text extraction request failed: {exc}") from exc

    return getattr(response, "text", None) or ""
