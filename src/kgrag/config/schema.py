"""Configuration schema using Pydantic.

One model per concern (segmentation, retrieval, ingestion, graph queries,
providers, logging), gathered under AppConfig. Every section has working
defaults, so an empty config file is valid. See kgrag.example.toml.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""

    OLLAMA = "ollama"
    OPENAI = "openai"
    MOCK = "mock"


class LLMProviderType(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    OLLAMA = "ollama"
    MOCK = "mock"


class ChunkingStrategy(str, Enum):
    """Supported segmentation strategies."""

    SMART = "smart"
    LINE = "line"
    BLOCK = "block"


DEFAULT_EXTENSIONS = [
    ".bash", ".bat",
    ".c", ".cpp", ".cs", ".csproj", ".csv",
    ".h", ".html",
    ".ignore",
    ".js", ".json",
    ".log",
    ".md",
    ".py",
    ".sh", ".sln",
    ".ts", ".txt",
    ".xml",
    ".yml",
]


class FileTypeConfig(BaseModel):
    """A supported file type and its line filtering rules.

    Include patterns win over exclude patterns: when any include pattern is
    present only matching lines are kept and excludes are ignored.
    """

    extension: str = Field(..., description="File extension including the leading dot (e.g. .cs)")
    enabled: bool = True
    include: list[str] = Field(default_factory=list, description="Regex patterns; keep lines matching any")
    exclude: list[str] = Field(default_factory=list, description="Regex patterns; drop lines matching any")
    description: Optional[str] = None

    def model_post_init(self, __context: Any) -> None:
        """Normalize the extension to lower case with a leading dot."""
        ext = self.extension.strip().lower()
        if ext and not ext.startswith("."):
            ext = f".{ext}"
        self.extension = ext


def _default_file_types() -> list[FileTypeConfig]:
    file_types = [FileTypeConfig(extension=ext) for ext in DEFAULT_EXTENSIONS]
    for file_type in file_types:
        if file_type.extension == ".log":
            file_type.exclude = ["DetachedActivity_Leaked", "DroppedAggregatedActivity"]
    return file_types


class ChunkingConfig(BaseModel):
    """Document segmentation configuration.

    The meaning of chunk_size depends on the strategy:
    - smart: token budget per chunk (a line costs max(1, len/4) tokens)
    - line: lines per chunk
    - block: characters per chunk

    overlap is counted in lines for smart/line and characters for block.
    """

    strategy: ChunkingStrategy = ChunkingStrategy.SMART
    chunk_size: int = Field(default=100, gt=0, description="Chunk budget (tokens, lines or characters)")
    overlap: int = Field(default=5, ge=0, description="Overlap between consecutive chunks")
    max_line_length: int = Field(default=1600, gt=0, description="Lines longer than this are dropped")
    file_types: list[FileTypeConfig] = Field(default_factory=_default_file_types)

    @model_validator(mode="after")
    def overlap_below_chunk_size(self) -> "ChunkingConfig":
        if self.overlap >= self.chunk_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self

    def file_type_for(self, path: str) -> Optional[FileTypeConfig]:
        """Return the file type entry matching the extension of path, if any."""
        suffix = Path(path).suffix.lower()
        for file_type in self.file_types:
            if file_type.extension == suffix:
                return file_type
        return None

    @property
    def supported_extensions(self) -> list[str]:
        return [ft.extension for ft in self.file_types if ft.enabled]


class RetrievalConfig(BaseModel):
    """Similarity search configuration."""

    top_k: int = Field(default=3, gt=0)
    use_mmr: bool = False
    mmr_lambda: float = Field(default=0.7, ge=0.0, le=1.0)
    mmr_pool_multiplier: int = Field(default=3, ge=1)
    mmr_min_extra: int = Field(default=5, ge=0)


class IngestionConfig(BaseModel):
    """Ingestion fan-out configuration."""

    max_concurrency: int = Field(default=8, gt=0)
    embedding_timeout: float = Field(default=30.0, gt=0)
    extraction_timeout: float = Field(default=120.0, gt=0)
    extract_graph: bool = False


class GraphConfig(BaseModel):
    """Entity graph traversal defaults."""

    max_path_depth: int = Field(default=5, ge=0)
    max_hops: int = Field(default=2, ge=0)


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: EmbeddingProviderType = EmbeddingProviderType.OLLAMA
    model_name: str = "nomic-embed-text"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    extra_params: dict[str, Any] = Field(default_factory=dict)


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: LLMProviderType = LLMProviderType.OLLAMA
    model_name: str = "llama3.2"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = Field(default=4000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    extra_params: dict[str, Any] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    json_logs: bool = False
    enable_file: bool = False
    log_dir: Path = Field(default=Path.home() / ".kgrag" / "logs")
    max_days: int = Field(default=30, gt=0)

    def model_post_init(self, __context: Any) -> None:
        """Expand ~ in paths."""
        self.log_dir = self.log_dir.expanduser()


class AppConfig(BaseSettings):
    """Main application configuration.

    Values come from keyword arguments (the parsed config file) and
    KGRAG_-prefixed environment variables; the environment wins.
    """

    model_config = SettingsConfigDict(
        env_prefix="KGRAG_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    app_name: str = "kgrag"

    # Component configurations
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # KGRAG_* variables win over values read from the config file
        return env_settings, init_settings, dotenv_settings, file_secret_settings
