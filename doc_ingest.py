import csv
import io
import logging
import os
from typing import Optional

# PDF
from pypdf import PdfReader

# DOCX
from docx import Document as DocxDocument

# XLSX
from openpyxl import load_workbook

# Images + OCR
from PIL import Image
import pytesseract

from config import get_settings

logger = logging.getLogger("chatbot.ingest")

PDF = "pdf"
DOCX = "docx"
SPREADSHEET = "spreadsheet"
CSV = "csv"
IMAGE = "image"
TEXT = "text"

KIND_BY_MIME = {
    "application/pdf": PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DOCX,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": SPREADSHEET,
    "application/vnd.ms-excel.sheet.macroenabled.12": SPREADSHEET,
    "text/csv": CSV,
    "application/csv": CSV,
    "application/json": TEXT,
}

KIND_BY_EXTENSION = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".xlsx": SPREADSHEET,
    ".xlsm": SPREADSHEET,
    ".csv": CSV,
    ".png": IMAGE,
    ".jpg": IMAGE,
    ".jpeg": IMAGE,
    ".bmp": IMAGE,
    ".gif": IMAGE,
    ".tif": IMAGE,
    ".tiff": IMAGE,
    ".webp": IMAGE,
    ".txt": TEXT,
    ".md": TEXT,
    ".json": TEXT,
}


# ------------------------------------------------
# DISPATCH
# ------------------------------------------------

def detect_kind(content_type: Optional[str], filename: Optional[str]) -> Optional[str]:
    """MIME type first, then the filename extension."""
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in KIND_BY_MIME:
        return KIND_BY_MIME[mime]
    if mime.startswith("image/"):
        return IMAGE
    if mime.startswith("text/"):
        return TEXT

    ext = os.path.splitext((filename or "").lower())[1]
    return KIND_BY_EXTENSION.get(ext)


def extract_text(data: bytes, content_type: Optional[str], filename: Optional[str]) -> str:
    """
    Best-effort text extraction for an uploaded file.

    Returns "" for unsupported types and for files whose extractor fails;
    the failure is logged, never raised.
    """
    kind = detect_kind(content_type, filename)
    if kind is None:
        logger.info(f"No extractor for {filename!r} ({content_type})")
        return ""

    extractor = EXTRACTORS[kind]
    try:
        return extractor(data) or ""
    except Exception as e:
        logger.error(f"extract_text failed for {filename!r} as {kind}: {e}")
        return ""


# ------------------------------------------------
# EXTRACTORS
# ------------------------------------------------

def _decode(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def extract_text_from_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def extract_text_from_docx(data: bytes) -> str:
    doc = DocxDocument(io.BytesIO(data))
    return "\n".join(p.text for p in doc.paragraphs if p.text.strip())


def _sheet_to_csv(sheet) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in sheet.iter_rows(values_only=True):
        writer.writerow(["" if cell is None else cell for cell in row])
    return buf.getvalue().rstrip("\n")


def extract_text_from_xlsx(data: bytes) -> str:
    wb = load_workbook(io.BytesIO(data), data_only=True)
    return "\n".join(_sheet_to_csv(sheet) for sheet in wb.worksheets)


def extract_text_from_csv(data: bytes) -> str:
    # a CSV file is a single sheet already in CSV form
    return _decode(data)


def extract_text_from_image(data: bytes) -> str:
    settings = get_settings()
    if settings.tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = settings.tesseract_cmd
    with Image.open(io.BytesIO(data)) as image:
        return pytesseract.image_to_string(image, lang=settings.ocr_lang)


def extract_text_from_txt(data: bytes) -> str:
    return _decode(data)


EXTRACTORS = {
    PDF: extract_text_from_pdf,
    DOCX: extract_text_from_docx,
    SPREADSHEET: extract_text_from_xlsx,
    CSV: extract_text_from_csv,
    IMAGE: extract_text_from_image,
    TEXT: extract_text_from_txt,
}
