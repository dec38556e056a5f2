"""
Raw text extraction for the supported document formats.
"""
import csv
import io
import json
import logging
import re
import zipfile
from xml.etree import ElementTree

from pypdf import PdfReader

from starknet_agent.domains.ingestion import DOCX_MIME_TYPE

logger = logging.getLogger(__name__)

_WORD_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"


def clean_text(text: str) -> str:
    """Normalize line endings, collapse runs of blank lines and trim."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n".join(pages)


def extract_docx(data: bytes) -> str:
    """Read the paragraphs of a .docx file's main document part."""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        xml_content = archive.read("word/document.xml")
    root = ElementTree.fromstring(xml_content)

    paragraphs = []
    for paragraph in root.iter(f"{_WORD_NS}p"):
        parts = []
        for node in paragraph.iter():
            if node.tag == f"{_WORD_NS}t" and node.text:
                parts.append(node.text)
            elif node.tag == f"{_WORD_NS}tab":
                parts.append("\t")
            elif node.tag in (f"{_WORD_NS}br", f"{_WORD_NS}cr"):
                parts.append("\n")
        paragraphs.append("".join(parts))
    return "\n\n".join(paragraphs)


def extract_csv(data: bytes) -> str:
    """Render each data row as its values joined by ", "."""
    reader = csv.DictReader(io.StringIO(data.decode("utf-8-sig")))
    rows = []
    for row in reader:
        values = [v for k, v in row.items() if k is not None and v is not None]
        rows.append(", ".join(values))
    return "\n".join(rows)


def extract_raw_text(data: bytes, mime_type: str) -> str:
    """Extract the text of a validated file."""
    try:
        if mime_type == "application/pdf":
            return extract_pdf(data)
        if mime_type == DOCX_MIME_TYPE:
            return extract_docx(data)
        if mime_type in ("text/csv", "application/csv"):
            return clean_text(extract_csv(data))
        if mime_type == "application/json":
            return json.dumps(json.loads(data.decode("utf-8")), indent=2, ensure_ascii=False)
        return clean_text(data.decode("utf-8", errors="replace"))
    except Exception as e:
        logger.error(f"Text extraction failed for {mime_type}: {e}")
        raise
