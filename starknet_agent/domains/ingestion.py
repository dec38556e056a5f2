"""
Domain models for the file ingestion pipeline.

A file travels through validation, text extraction, chunking, embedding and
storage; these models describe the data handed between those steps.
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

SUPPORTED_MIME_TYPES: List[str] = [
    "text/plain",
    "text/markdown",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/csv",
    "application/csv",
    "application/json",
    "text/html",
    "application/octet-stream",
]

DOCX_MIME_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)

ChunkStrategy = Literal["adaptive", "whitespace", "structured"]


class ChunkMetadata(BaseModel):
    document_id: str
    chunk_index: int
    start_token: int
    end_token: int
    original_name: Optional[str] = None
    mime_type: Optional[str] = None


class Chunk(BaseModel):
    """A slice of a document's text with its token span."""

    id: str = Field(..., description="Chunk id in the form '<document_id>-<index>'")
    text: str = Field(..., description="Chunk content")
    metadata: ChunkMetadata


class FileProcessingOptions(BaseModel):
    """Options overriding the computed chunking parameters."""

    chunk_size: Optional[int] = Field(None, description="Tokens per chunk")
    overlap: Optional[int] = Field(None, description="Tokens shared by neighbours")
    strategy: Optional[ChunkStrategy] = None
    generate_embeddings: bool = True
    store_in_vector_db: bool = True
    content_encoding: Optional[Literal["utf8", "base64"]] = None


class FileIngestionJobData(BaseModel):
    """Payload of a file ingestion job."""

    document_id: str
    agent_id: str
    user_id: str
    original_name: str
    mime_type: str
    content: Union[bytes, str]
    size: int
    options: FileProcessingOptions = Field(default_factory=FileProcessingOptions)

    @field_validator("document_id", "agent_id", "user_id", "original_name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty")
        return v

    @field_validator("size")
    @classmethod
    def size_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("size cannot be negative")
        return v


class FileProcessingResult(BaseModel):
    document_id: str
    original_name: str
    mime_type: str
    size: int
    chunks_count: int
    embeddings_count: int
    success: bool = True
    error: Optional[str] = None
    processing_time: float = Field(0.0, description="Seconds spent processing")
    agent_id: str
    user_id: str


class FileIngestionJobResult(BaseModel):
    """Outcome of a file ingestion job."""

    success: bool
    result: Optional[FileProcessingResult] = None
    error: Optional[str] = None
    retryable: bool = False


class FileValidationResult(BaseModel):
    is_valid: bool
    validated_mime_type: Optional[str] = None
    detected_mime_type: Optional[str] = None
    declared_mime_type: Optional[str] = None
    error: Optional[str] = None


class VectorStoreEntry(BaseModel):
    """An embedded chunk ready to be stored."""

    id: str
    vector: List[float]
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    id: str
    document_id: str
    chunk_index: int
    content: str
    score: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)
