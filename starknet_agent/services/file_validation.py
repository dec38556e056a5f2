"""
File validation service.

Checks an uploaded file's content against its declared MIME type before it
is handed to text extraction. The type sniffed from the content wins over the
declared one, which wins over the extension.
"""
import io
import logging
import zipfile
from typing import List, Optional, Tuple

from starknet_agent.domains.ingestion import (
    DOCX_MIME_TYPE,
    SUPPORTED_MIME_TYPES,
    FileValidationResult,
)

logger = logging.getLogger(__name__)

EXTENSION_MIME_TYPES = {
    "txt": "text/plain",
    "md": "text/markdown",
    "markdown": "text/markdown",
    "csv": "text/csv",
    "json": "application/json",
    "html": "text/html",
    "htm": "text/html",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": DOCX_MIME_TYPE,
}

_ACCEPTABLE_VARIATIONS = {
    "text/csv": ["application/csv"],
    "application/csv": ["text/csv"],
    "application/json": ["text/json"],
    "text/json": ["application/json"],
}

_ZIP_SIGNATURE = b"PK\x03\x04"

_SUSPICIOUS_PREFIXES: List[Tuple[bytes, str]] = [
    (b"MZ", "PE executable"),
    (b"\x7fELF", "ELF executable"),
    (b"<?php", "PHP script"),
    (b"<script", "JavaScript in HTML"),
]

MIN_PDF_SIZE = 100


def _normalize(mime_type: str) -> str:
    return mime_type.lower().strip()


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Detect a binary file type from its leading bytes."""
    if data.startswith(b"%PDF"):
        return "application/pdf"
    if data.startswith(_ZIP_SIGNATURE):
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                if any(name.startswith("word/") for name in archive.namelist()):
                    return DOCX_MIME_TYPE
        except zipfile.BadZipFile:
            pass
        return "application/zip"
    if data.startswith(b"\xd0\xcf\x11\xe0"):
        return "application/x-cfb"
    if data.startswith(b"MZ"):
        return "application/x-msdownload"
    if data.startswith(b"\x7fELF"):
        return "application/x-elf"
    return None


def infer_mime_type_from_extension(file_name: str) -> str:
    extension = file_name.lower().rsplit(".", 1)[-1] if "." in file_name else ""
    return EXTENSION_MIME_TYPES.get(extension, "application/octet-stream")


class FileValidationService:
    """Validates uploaded files before ingestion."""

    def __init__(self, supported_mime_types: Optional[List[str]] = None):
        self.supported_mime_types = list(supported_mime_types or SUPPORTED_MIME_TYPES)

    def get_supported_mime_types(self) -> List[str]:
        return list(self.supported_mime_types)

    def is_mime_type_supported(self, mime_type: str) -> bool:
        try:
            self._validate_whitelist(mime_type)
            return True
        except ValueError:
            return False

    def validate_file(
        self, data: bytes, file_name: str, declared_mime_type: Optional[str] = None
    ) -> FileValidationResult:
        """Validate a file's content, declared type and name.

        Args:
            data: Raw file content
            file_name: Original file name
            declared_mime_type: Type claimed by the uploader

        Returns:
            FileValidationResult; failures are reported, never raised
        """
        detected_mime_type = None
        try:
            detected_mime_type = sniff_mime_type(data)
            logger.debug(
                f"File validation for {file_name}: detected={detected_mime_type or 'none'}, "
                f"declared={declared_mime_type or 'none'}"
            )

            candidate = (
                detected_mime_type
                or declared_mime_type
                or infer_mime_type_from_extension(file_name)
            )
            validated_mime_type = self._validate_whitelist(candidate)

            if detected_mime_type and declared_mime_type:
                error = self._check_consistency(detected_mime_type, declared_mime_type)
                if error:
                    return FileValidationResult(
                        is_valid=False,
                        error=error,
                        detected_mime_type=detected_mime_type,
                        declared_mime_type=declared_mime_type,
                    )

            error = self._security_checks(data, validated_mime_type)
            if error:
                return FileValidationResult(
                    is_valid=False,
                    error=error,
                    detected_mime_type=detected_mime_type,
                    declared_mime_type=declared_mime_type,
                )

            logger.info(
                f"File validation passed for {file_name}: validated type={validated_mime_type}"
            )
            return FileValidationResult(
                is_valid=True,
                validated_mime_type=validated_mime_type,
                detected_mime_type=detected_mime_type,
                declared_mime_type=declared_mime_type,
            )
        except Exception as e:
            logger.error(f"File validation failed for {file_name}: {e}")
            return FileValidationResult(
                is_valid=False,
                error=f"Validation failed: {e}",
                detected_mime_type=detected_mime_type,
                declared_mime_type=declared_mime_type,
            )

    def _validate_whitelist(self, mime_type: str) -> str:
        normalized = _normalize(mime_type)
        for supported in self.supported_mime_types:
            if _normalize(supported) == normalized:
                return supported
        raise ValueError(
            f"Unsupported file type: {mime_type}. "
            f"Supported types: {', '.join(self.supported_mime_types)}"
        )

    def _check_consistency(self, detected: str, declared: str) -> Optional[str]:
        normalized_detected = _normalize(detected)
        normalized_declared = _normalize(declared)

        if normalized_detected == normalized_declared:
            return None
        if normalized_declared in _ACCEPTABLE_VARIATIONS.get(normalized_detected, []):
            logger.info(
                f"MIME type variation accepted: detected={detected}, declared={declared}"
            )
            return None
        if (
            normalized_declared.startswith("text/")
            and normalized_detected == "application/octet-stream"
        ):
            logger.warning(
                f"Text file not detected properly, allowing declared type: {declared}"
            )
            return None

        return (
            f"MIME type mismatch: file content indicates '{detected}' but '{declared}' "
            "was declared. This could indicate a malicious file."
        )

    def _security_checks(self, data: bytes, mime_type: str) -> Optional[str]:
        prefixes = list(_SUSPICIOUS_PREFIXES)
        # docx files are zip archives
        if mime_type != DOCX_MIME_TYPE:
            prefixes.append((_ZIP_SIGNATURE, "ZIP archive"))

        for prefix, description in prefixes:
            if data.startswith(prefix):
                return (
                    f"Suspicious file content detected: {description}. "
                    "This type of content is not allowed."
                )

        if mime_type.startswith("text/") and b"\x00" in data:
            return (
                "Text file contains binary data (null bytes), "
                "which could indicate malicious content."
            )

        if mime_type == "application/pdf" and len(data) < MIN_PDF_SIZE:
            return "PDF file is too small to be valid."

        return None
