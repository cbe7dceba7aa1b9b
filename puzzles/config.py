"""
Offline Puzzles - Configuration

Loads settings from environment variables (prefix ``OCP_``) or a ``.env``
file, with Pydantic validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


LICHESS_DB_URL = "https://database.lichess.org/lichess_db_puzzle.csv.zst"


def _default_home() -> Path:
    return Path.home() / ".offline-chess-puzzles"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ─── Storage ───
    home_dir: Path = Field(default_factory=_default_home)
    corpus_path: Path = Path("lichess_db_puzzle.csv")
    corpus_url: str = LICHESS_DB_URL

    # ─── Search ───
    search_results_limit: int = Field(default=200000, ge=1)
    scan_batch_size: int = Field(default=1000, ge=1)

    # ─── Favorites ───
    favorites_url: Optional[str] = None  # SQLAlchemy URL
    # Serve favorites-only searches from the stored snapshots, not the corpus
    favorites_from_store: bool = True

    # ─── Engine ───
    engine_path: Optional[str] = None
    engine_limit: str = "depth 40"

    # ─── Solving ───
    accept_alternative_mates: bool = False

    # ─── App ───
    log_level: str = "INFO"
    service_name: str = "offline-puzzles"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def favorites_database_url(self) -> str:
        """Configured favorites URL, or a SQLite file in the home directory."""
        if self.favorites_url:
            return self.favorites_url
        return f"sqlite:///{self.home_dir / 'favorites.db'}"

    model_config = {
        "env_prefix": "OCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
