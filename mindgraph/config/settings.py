from __future__ import annotations

"""Runtime settings loader for MindGraph.

This module centralizes all configuration resolution so the rest of the codebase
can consume a *single* ``Settings`` object instead of scattering env reads
throughout the code.

Resolution order:
1. Environment variables (a local ``.env`` is loaded first via python-dotenv).
2. Defaults in the ``Settings`` dataclass.
"""

import os
import pathlib
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Settings Dataclass
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class Settings:
    """Resolved runtime configuration."""

    profile: str = "dev"  # semantic runtime profile label
    openai_api_key: Optional[str] = None
    pinecone_api_key: Optional[str] = None
    pinecone_index: str = "mindgraph-index"
    pinecone_cloud: str = "aws"
    pinecone_region: str = "us-east-1"
    collection: str = "mindmaps"       # pinecone namespace for memory points
    db_path: str = "data/mindgraph.db"
    log_dir: str = "logs"
    model: str = "gpt-4o-mini"         # default OpenAI chat model
    embed_model: str = "text-embedding-3-small"
    embed_dim: int = 1536
    temperature: float = 0.2
    request_timeout: float = 30.0      # seconds, per OpenAI call
    chat_top_k: int = 5
    generate_top_k: int = 3
    default_display_name: str = "Me"

    def ensure_dirs(self) -> None:
        """Create directory parents so downstream code never fails on I/O."""
        pathlib.Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        pathlib.Path(self.log_dir).mkdir(parents=True, exist_ok=True)

    def asdict(self) -> Dict[str, Any]:  # convenience for logging/JSON
        data = asdict(self)
        for key in ("openai_api_key", "pinecone_api_key"):
            if data.get(key):
                data[key] = data[key][:5] + "..."
        return data


# ---------------------------------------------------------------------------
# Settings Builders
# ---------------------------------------------------------------------------
def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:  # leave default
        return default


def settings_from_env(profile: str = "dev") -> Settings:
    """Assemble settings from env vars + defaults."""
    s = Settings(profile=profile)

    # API keys --------------------------------------------------------------
    s.openai_api_key = os.getenv("OPENAI_API_KEY", s.openai_api_key)
    s.pinecone_api_key = os.getenv("PINECONE_API_KEY", s.pinecone_api_key)

    # Pinecone index -------------------------------------------------------
    s.pinecone_index = os.getenv("PINECONE_INDEX", s.pinecone_index)
    s.pinecone_cloud = os.getenv("PINECONE_CLOUD", s.pinecone_cloud)
    s.pinecone_region = os.getenv("PINECONE_REGION", s.pinecone_region)
    s.collection = os.getenv("MINDGRAPH_COLLECTION", s.collection)

    # Paths ----------------------------------------------------------------
    s.db_path = os.getenv("MINDGRAPH_DB_PATH", s.db_path)
    s.log_dir = os.getenv("MINDGRAPH_LOG_DIR", s.log_dir)

    # Models ---------------------------------------------------------------
    s.model = os.getenv("MINDGRAPH_MODEL", s.model)
    s.embed_model = os.getenv("MINDGRAPH_EMBED_MODEL", s.embed_model)
    s.embed_dim = _env_number("MINDGRAPH_EMBED_DIM", s.embed_dim, int)
    s.temperature = _env_number("MINDGRAPH_TEMP", s.temperature, float)
    s.request_timeout = _env_number("MINDGRAPH_TIMEOUT", s.request_timeout, float)

    # Retrieval ------------------------------------------------------------
    s.chat_top_k = _env_number("MINDGRAPH_CHAT_TOP_K", s.chat_top_k, int)
    s.generate_top_k = _env_number("MINDGRAPH_GENERATE_TOP_K", s.generate_top_k, int)

    s.default_display_name = os.getenv("MINDGRAPH_DISPLAY_NAME", s.default_display_name)
    return s


def load_settings(profile: str = "dev") -> Settings:
    """Public loader: returns a fully-initialized :class:`Settings` object."""
    settings = settings_from_env(profile=profile)
    settings.ensure_dirs()
    return settings
