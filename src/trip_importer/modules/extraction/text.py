from __future__ import annotations

import re
from dataclasses import dataclass, field
from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from trip_importer.core.config import settings


class TextExtractionError(Exception):
    pass


@dataclass(frozen=True)
class ExtractedText:
    text: str
    method: str
    warnings: tuple[str, ...] = field(default_factory=tuple)


def is_allowed_import_file(file_name: str | None) -> bool:
    name = (file_name or "").strip().lower()
    if "." not in name:
        return False
    return name.rsplit(".", 1)[-1] in set(settings.allowed_extensions)


def extract_text(file_name: str, content_type: str | None, body: bytes) -> ExtractedText:
    """
    Turn an uploaded file into plain text.

    Native text is preferred; OCR runs on images and on PDF pages without a text
    layer. Raises TextExtractionError when nothing usable comes out.
    """
    kind = detect_file_kind(filename=file_name, content_type=content_type, body=body)

    if kind == "text":
        if file_name.lower().endswith(".eml") or (content_type or "").lower() == "message/rfc822":
            text = _eml_to_text(body)
            method = "email"
        else:
            text = decode_text_bytes(body=body, filename=file_name, content_type=content_type)
            method = "native"
        if not text.strip():
            raise TextExtractionError("Arquivo de texto vazio.")
        return ExtractedText(text=text, method=method)

    if kind == "pdf":
        try:
            pages, ocr_pages = _extract_pdf_pages(body)
        except (PdfReadError, ValueError, OSError) as e:
            raise TextExtractionError(f"PDF ilegível: {e}") from e
        text = "\n\n".join(p for p in pages if p.strip())
        if not text.strip():
            raise TextExtractionError("Nenhum texto encontrado no PDF, mesmo com OCR.")
        warnings: list[str] = []
        if ocr_pages:
            warnings.append(f"OCR aplicado em {ocr_pages} página(s) sem texto nativo.")
        return ExtractedText(
            text=text, method="ocr" if ocr_pages else "native", warnings=tuple(warnings)
        )

    if kind == "image":
        text = _ocr_image_bytes(body)
        if not text.strip():
            raise TextExtractionError("OCR não encontrou texto na imagem.")
        return ExtractedText(text=text, method="ocr", warnings=("Texto obtido por OCR.",))

    if kind == "bad_pdf_upload":
        raise TextExtractionError("O arquivo tem extensão .pdf mas não é um PDF válido.")
    raise TextExtractionError("Formato de arquivo não suportado.")


def decode_text_bytes(*, body: bytes, filename: str, content_type: str | None) -> str:
    ctype = (content_type or "").lower()
    is_html = ctype.startswith("text/html") or filename.lower().endswith((".html", ".htm"))
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        text = body.decode("latin-1", errors="replace")
    if text.startswith("\ufeff"):
        text = text[1:]
    if is_html or _looks_like_html(text):
        text = html_to_text(text)
    return text


def _looks_like_html(text: str) -> bool:
    t = (text or "").lstrip().lower()
    if not t:
        return False
    if t.startswith("<!doctype html") or t.startswith("<html"):
        return True
    head = t[:2000]
    return bool(re.search(r"<(html|body|div|p|br|table|tr|td|span)(\s|>)", head, re.I))


def detect_file_kind(*, filename: str, content_type: str | None, body: bytes) -> str:
    if _looks_like_pdf_bytes(body):
        return "pdf"
    if _looks_like_image_bytes(body):
        return "image"
    if _looks_like_text_bytes(body):
        return "text"

    name = (filename or "").lower()
    ctype = (content_type or "").lower()
    if name.endswith((".png", ".jpg", ".jpeg", ".webp")) or ctype.startswith("image/"):
        return "image"
    # Never hand non-PDF bytes to PdfReader.
    if name.endswith(".pdf") or ctype.endswith("/pdf"):
        return "bad_pdf_upload"
    return "unknown"


def _looks_like_pdf_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    if b.startswith(b"\xef\xbb\xbf"):
        b = b[3:].lstrip()
    return b.startswith(b"%PDF")


def _looks_like_image_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    return (
        b.startswith(b"\x89PNG\r\n\x1a\n")
        or b.startswith(b"\xff\xd8\xff")
        or (len(b) >= 12 and b.startswith(b"RIFF") and b[8:12] == b"WEBP")
    )


def _looks_like_text_bytes(body: bytes) -> bool:
    if not body:
        return False
    sample = body[:4096]
    if b"\x00" in sample:
        return False
    stripped = sample.lstrip()
    if stripped.startswith(b"\xef\xbb\xbf"):
        stripped = stripped[3:]
    try:
        stripped.decode("utf-8", errors="strict")
    except UnicodeDecodeError:
        # A multi-byte character may be cut at the sample boundary.
        if len(body) <= 4096:
            return False
        try:
            stripped[:-4].decode("utf-8", errors="strict")
        except UnicodeDecodeError:
            return False

    nontext = sum(1 for ch in stripped if ch < 32 and ch not in {9, 10, 13})
    return (nontext / max(1, len(stripped))) <= 0.02


def html_to_text(html: str) -> str:
    from html import unescape

    html = re.sub(r"(?is)<(script|style).*?>.*?</\1>", "", html)
    html = re.sub(r"(?i)<br\s*/?>", "\n", html)
    html = re.sub(r"(?i)</p\s*>", "\n\n", html)
    html = re.sub(r"(?i)</(div|tr|li|h[1-6])\s*>", "\n", html)
    html = re.sub(r"(?s)<[^>]+>", " ", html)
    html = unescape(html)
    lines = [re.sub(r"\s+", " ", ln).strip() for ln in html.splitlines()]
    return "\n".join([ln for ln in lines if ln])


def _eml_to_text(body: bytes) -> str:
    from email import policy
    from email.parser import BytesParser

    msg = BytesParser(policy=policy.default).parsebytes(body)
    parts_plain: list[str] = []
    parts_html: list[str] = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        if str(part.get_content_disposition() or "").lower() == "attachment":
            continue
        ctype = str(part.get_content_type() or "").lower()
        try:
            content = part.get_content()
        except (LookupError, UnicodeDecodeError):
            payload = part.get_payload(decode=True) or b""
            content = payload.decode("utf-8", errors="replace")
        if not isinstance(content, str) or not content.strip():
            continue
        if ctype == "text/plain":
            parts_plain.append(content)
        elif ctype == "text/html":
            parts_html.append(content)

    if parts_plain:
        body_text = "\n\n".join(parts_plain).strip()
    elif parts_html:
        body_text = html_to_text("\n\n".join(parts_html))
    else:
        body_text = ""

    header_lines: list[str] = []
    subject = str(msg.get("subject") or "").strip()
    sender = str(msg.get("from") or "").strip()
    if subject:
        header_lines.append(f"Subject: {subject}")
    if sender:
        header_lines.append(f"From: {sender}")
    if not body_text.strip():
        return ""
    return ("\n".join(header_lines) + "\n\n" + body_text).strip()


def _extract_pdf_pages(body: bytes) -> tuple[list[str], int]:
    reader = PdfReader(BytesIO(body))
    pages: list[str] = []
    ocr_pages = 0
    for page in reader.pages:
        text = (page.extract_text() or "").replace("\u202f", " ").replace("\xa0", " ")
        if not text.strip():
            ocr_pages += 1
            text = _ocr_pdf_page(page).replace("\u202f", " ").replace("\xa0", " ") or text
        pages.append(text)
    return pages, ocr_pages


def _ocr_pdf_page(page) -> str:
    try:
        import pytesseract
    except ImportError:
        return ""

    best_image = None
    best_area = 0
    for image_file in list(page.images):
        image = image_file.image
        if image is None:
            continue
        area = image.width * image.height
        if area > best_area:
            best_area = area
            best_image = image

    if best_image is None:
        return ""

    if best_image.mode not in {"RGB", "L"}:
        best_image = best_image.convert("RGB")
    try:
        return pytesseract.image_to_string(best_image, lang=settings.tesseract_lang) or ""
    except pytesseract.TesseractError:
        return ""


def _ocr_image_bytes(body: bytes) -> str:
    try:
        import pytesseract
    except ImportError:
        return ""

    from PIL import Image, UnidentifiedImageError

    try:
        image = Image.open(BytesIO(body))
    except (UnidentifiedImageError, OSError) as e:
        raise TextExtractionError(f"Imagem ilegível: {e}") from e

    if image.mode not in {"RGB", "L"}:
        image = image.convert("RGB")
    try:
        return pytesseract.image_to_string(image, lang=settings.tesseract_lang) or ""
    except pytesseract.TesseractError:
        return ""
