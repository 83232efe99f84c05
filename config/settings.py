from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os

from dotenv import load_dotenv

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly assistant on a personal portfolio site. "
    "Answer questions about the owner's background and projects concisely."
)


@dataclass(frozen=True)
class Settings:
    project_root: Path
    data_dir: Path
    knowledge_dir: Path
    sqlite_path: Path
    system_prompt_path: Path
    ollama_base_url: str
    ollama_api_key: str
    chat_model: str
    embed_model: str
    model_temperature: float
    session_ttl_seconds: int
    sweep_interval_seconds: int
    max_messages: int
    max_chars: int
    retrieval_top_k: int
    min_similarity: float
    chunk_max_words: int
    chunk_min_words: int
    api_key: str
    cors_origin: str
    host: str
    port: int

    @property
    def session_ttl_ms(self) -> int:
        return self.session_ttl_seconds * 1000


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _env_path(name: str, default: Path, root: Path) -> Path:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    path = Path(value)
    return path if path.is_absolute() else root / path


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    project_root = Path(__file__).resolve().parents[1]
    load_dotenv(project_root / ".env")

    data_dir = project_root / "data"

    settings = Settings(
        project_root=project_root,
        data_dir=data_dir,
        knowledge_dir=_env_path("KNOWLEDGE_BASE_PATH", data_dir / "knowledge_base", project_root),
        sqlite_path=_env_path("DB_PATH", data_dir / "chat-analytics.db", project_root),
        system_prompt_path=_env_path(
            "SYSTEM_PROMPT_PATH", project_root / "prompts" / "system.md", project_root
        ),
        ollama_base_url=_env_str("OLLAMA_BASE_URL", "http://127.0.0.1:11434"),
        ollama_api_key=_env_str("OLLAMA_API_KEY", "ollama"),
        chat_model=_env_str("OLLAMA_MODEL", "gemma3:1b"),
        embed_model=_env_str("OLLAMA_EMBED_MODEL", "nomic-embed-text"),
        model_temperature=_env_float("MODEL_TEMPERATURE", 0.7),
        session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 30 * 60),
        sweep_interval_seconds=_env_int("SESSION_SWEEP_SECONDS", 60),
        max_messages=_env_int("MAX_MESSAGES", 30),
        max_chars=_env_int("MAX_CHARS", 12_000),
        retrieval_top_k=_env_int("RETRIEVAL_TOP_K", 3),
        min_similarity=_env_float("RETRIEVAL_MIN_SIMILARITY", 0.3),
        chunk_max_words=_env_int("CHUNK_MAX_WORDS", 600),
        chunk_min_words=_env_int("CHUNK_MIN_WORDS", 50),
        api_key=_env_str("API_KEY", ""),
        cors_origin=_env_str("CORS_ORIGIN", "http://localhost:3001"),
        host=_env_str("HOST", "0.0.0.0"),
        port=_env_int("PORT", 3000),
    )
    ensure_directories(settings)
    return settings


def ensure_directories(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)


def load_system_prompt(settings: Settings) -> str:
    """Read the base system prompt, falling back to a built-in default."""
    path = settings.system_prompt_path
    if not path.exists():
        return DEFAULT_SYSTEM_PROMPT
    text = path.read_text(encoding="utf-8").strip()
    return text or DEFAULT_SYSTEM_PROMPT
