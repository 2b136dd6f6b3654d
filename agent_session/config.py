"""
config.py
-----------
Typed configuration loader for environment variables and session constants.
This centralizes settings so other modules can import a single authoritative source.
"""
from __future__ import annotations
import logging
import os
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


class Settings(BaseModel):
    langgraph_api_url: str = Field(default_factory=lambda: os.getenv("LANGGRAPH_API_URL", "http://localhost:2024"))
    langsmith_api_key: str = Field(default_factory=lambda: os.getenv("LANGSMITH_API_KEY", ""))
    assistant_id: str = Field(default_factory=lambda: os.getenv("ASSISTANT_ID", "agent"))
    auth_scheme: str = Field(default_factory=lambda: os.getenv("AUTH_SCHEME", "langsmith"))
    recursion_limit: int = Field(default_factory=lambda: _env_int("RECURSION_LIMIT", 100))
    openai_api_key: str = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    model_name: str = Field(default_factory=lambda: os.getenv("MODEL_NAME", "gpt-4o-mini"))
    transport: str = Field(default_factory=lambda: os.getenv("SESSION_TRANSPORT", "local"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def default_headers(self) -> dict[str, str]:
        """Headers attached to every request against a LangGraph server."""
        return {"x-auth-scheme": self.auth_scheme} if self.auth_scheme else {}


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
