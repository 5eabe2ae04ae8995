"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="Chat model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat API. Leave empty to use "
            "OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.0
    llm_timeout: float = Field(default=60.0, gt=0, description="Seconds before a chat completion request is abandoned")
    llm_max_retries: int = Field(default=2, ge=0)

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = Field(default=64, gt=0)

    # Vector index
    vector_backend: Literal["chroma", "memory"] = "chroma"
    chroma_host: str = "localhost"
    chroma_port: int = 8000

    # Chunking
    chunk_size: int = Field(default=1000, gt=0, description="Maximum characters per chunk")
    chunk_overlap: int = Field(default=200, ge=0, description="Characters shared by consecutive chunks")
    chunk_boundary_window: int = Field(
        default=100,
        ge=0,
        description="How far back from the hard limit a chunk may end to land on a paragraph/sentence boundary",
    )

    # Retrieval
    retrieval_top_k: int = Field(default=4, gt=0)

    # Jobs / upload
    ingestion_workers: int = Field(default=4, gt=0)
    max_upload_bytes: int = 10 * 1024 * 1024

    # Serving
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_chunking(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than CHUNK_SIZE ({self.chunk_size})"
            )
        return self


# Singleton: import `settings` wherever needed.
settings = Settings()
