import logging
import os
import re
from pathlib import Path
from typing import Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

import config

logger = logging.getLogger("text_capture.export")

HEADER_PATTERN = re.compile(r"^Text from image \d+$")


def entry_header(position: int) -> str:
    return f"Text from image {position}"


def get_unique_name(base_path: Path, filename: str) -> Path:
    """
    Generate a unique path in base_path for filename.

    Args:
        base_path: Directory where file will go.
        filename: Desired filename.

    Returns:
        Path object with a non-colliding filename.
    """
    name, ext = os.path.splitext(filename)
    candidate = Path(base_path) / f"{name}{ext}"
    i = 1
    while candidate.exists():
        candidate = Path(base_path) / f"{name}_{i}{ext}"
        i += 1
    return candidate


def default_export_path(directory: Path) -> Path:
    return get_unique_name(directory, config.EXPORT_FILENAME)


def build_export_text(texts: Sequence[str]) -> str:
    """Join all texts in order, each under a header naming its image."""
    blocks = [f"{entry_header(i)}\n{text}" for i, text in enumerate(texts, start=1)]
    return "\n\n".join(blocks)


def export_to_docx(text: str, filename) -> bool:
    """
    Write plain text to a DOCX file, one paragraph per line.

    Args:
        text: Text to write.
        filename: Destination path.

    Returns:
        True if the document was saved, False otherwise.
    """
    try:
        doc = Document()
        for line in text.splitlines():
            paragraph = doc.add_paragraph()
            run = paragraph.add_run(line)
            if HEADER_PATTERN.match(line):
                run.bold = True
            elif config.EXPORT_RTL:
                paragraph.alignment = WD_ALIGN_PARAGRAPH.RIGHT
                run.font.rtl = True
        doc.save(str(filename))
    except Exception as exc:
        logger.exception("DOCX export to %s failed: %s", filename, exc)
        return False

    logger.info("Exported %d characters to %s", len(text), filename)
    return True


def export_all(texts: Sequence[str], filename) -> bool:
    if not texts:
        logger.warning("Export requested with no extracted text")
        return False
    return export_to_docx(build_export_text(texts), filename)
