"""
AI pipeline package for Text Capture:
- OCR (extract text from images through Gemini)
"""
