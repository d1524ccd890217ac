import os

from dotenv import load_dotenv

load_dotenv()

# =====================================================
# OCR (Gemini)
# =====================================================
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
OCR_MODEL: str = os.getenv("OCR_MODEL", "gemini-2.0-flash")
OCR_LANGUAGE: str = os.getenv("OCR_LANGUAGE", "Arabic")

# =====================================================
# Capture
# =====================================================
MAX_IMAGE_BYTES: int = 4 * 1024 * 1024
IMAGE_EXTENSIONS: set[str] = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".webp"}
CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))

# =====================================================
# Export
# =====================================================
EXPORT_FILENAME: str = "extracted_text.docx"
EXPORT_RTL: bool = os.getenv("EXPORT_RTL", "true").lower() == "true"

# =====================================================
# Logging
# =====================================================
LOG_MAX_MB = 5
LOG_BACKUPS = 3
