"""
Settings read from the environment (and a local .env file).

MODEL_API_KEY is not validated here; the relay checks it on every request.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL_NAME = "gpt-4o-mini"
DEFAULT_DATABASE_URL = "sqlite:///./data/study_tree.db"
DEFAULT_FASTAPI_URL = "http://127.0.0.1:8000"


@dataclass
class Settings:
    model_api_key: Optional[str] = None
    model_api_url: str = DEFAULT_MODEL_API_URL
    model_name: str = DEFAULT_MODEL_NAME
    generation_timeout: float = 300.0
    database_url: str = DEFAULT_DATABASE_URL
    fastapi_url: str = DEFAULT_FASTAPI_URL
    user_id: str = "local"


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Priority: environment, then .env, then defaults.
    """
    load_dotenv()
    return Settings(
        model_api_key=os.getenv("MODEL_API_KEY") or None,
        model_api_url=os.getenv("MODEL_API_URL", DEFAULT_MODEL_API_URL),
        model_name=os.getenv("MODEL_NAME", DEFAULT_MODEL_NAME),
        generation_timeout=float(os.getenv("GENERATION_TIMEOUT", "300")),
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        fastapi_url=os.getenv("FASTAPI_URL", DEFAULT_FASTAPI_URL).rstrip("/"),
        user_id=os.getenv("STUDY_USER_ID", "local"),
    )
