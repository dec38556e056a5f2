"""
Tests for upload validation.
"""

import io
import zipfile

import pytest

from starknet_agent.domains.ingestion import DOCX_MIME_TYPE
from starknet_agent.services.file_validation import (
    FileValidationService,
    infer_mime_type_from_extension,
    sniff_mime_type,
)

PDF = b"%PDF-1.7\n" + b"0" * 200


def zip_with(*names):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name in names:
            archive.writestr(name, "<x/>")
    return buffer.getvalue()


@pytest.fixture
def validator():
    return FileValidationService()


@pytest.mark.parametrize(
    "name,expected",
    [
        ("notes.TXT", "text/plain"),
        ("readme.md", "text/markdown"),
        ("report.docx", DOCX_MIME_TYPE),
        ("archive.tar.gz", "application/octet-stream"),
        ("no_extension", "application/octet-stream"),
    ],
)
def test_infer_mime_type_from_extension(name, expected):
    assert infer_mime_type_from_extension(name) == expected


def test_sniff_mime_type():
    assert sniff_mime_type(PDF) == "application/pdf"
    assert sniff_mime_type(zip_with("word/document.xml")) == DOCX_MIME_TYPE
    assert sniff_mime_type(zip_with("data.txt")) == "application/zip"
    assert sniff_mime_type(b"MZ\x90\x00") == "application/x-msdownload"
    assert sniff_mime_type(b"plain text") is None


def test_supported_types(validator):
    assert "application/pdf" in validator.get_supported_mime_types()
    assert validator.is_mime_type_supported("TEXT/PLAIN") is True
    assert validator.is_mime_type_supported("image/png") is False


def test_declared_text_file(validator):
    result = validator.validate_file(b"hello", "a.txt", "text/plain")
    assert result.is_valid is True
    assert result.validated_mime_type == "text/plain"
    assert result.detected_mime_type is None


def test_extension_fallback(validator):
    result = validator.validate_file(b"# Title", "guide.md")
    assert result.validated_mime_type == "text/markdown"


def test_pdf(validator):
    result = validator.validate_file(PDF, "paper.pdf", "application/pdf")
    assert result.is_valid is True
    assert result.validated_mime_type == "application/pdf"


def test_detected_type_wins_over_declared(validator):
    result = validator.validate_file(PDF, "paper.txt", "text/plain")
    assert result.is_valid is False
    assert "MIME type mismatch" in result.error


def test_docx_is_not_treated_as_suspicious_zip(validator):
    result = validator.validate_file(zip_with("word/document.xml"), "a.docx", DOCX_MIME_TYPE)
    assert result.is_valid is True


def test_plain_zip_rejected(validator):
    result = validator.validate_file(zip_with("data.txt"), "a.zip")
    assert result.is_valid is False
    assert "Unsupported file type" in result.error


def test_unsupported_declared_type(validator):
    result = validator.validate_file(b"\x89PNG", "image.png", "image/png")
    assert result.is_valid is False


@pytest.mark.parametrize(
    "data",
    [b"<?php echo 1;", b"<script>alert(1)</script>", b"text\x00with null"],
)
def test_suspicious_text_content(validator, data):
    result = validator.validate_file(data, "a.txt", "text/plain")
    assert result.is_valid is False


def test_executable_declared_as_text(validator):
    result = validator.validate_file(b"MZ\x90\x00", "a.txt", "text/plain")
    assert result.is_valid is False


def test_tiny_pdf_rejected(validator):
    result = validator.validate_file(b"%PDF-1.4", "tiny.pdf", "application/pdf")
    assert result.is_valid is False
    assert "too small" in result.error


def test_csv_variation_accepted(validator):
    result = validator.validate_file(b"a,b\n1,2", "data.csv", "application/csv")
    assert result.is_valid is True
    assert result.validated_mime_type == "application/csv"
