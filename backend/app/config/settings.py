"""
Configuration settings for the Exam Prep Quiz service
All constants and configurable parameters in one place
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# backend/app/config -> backend
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


def load_environment() -> bool:
    """Load environment variables from backend/.env (existing vars win)"""
    return load_dotenv(ENV_FILE)


@dataclass
class QuizConfig:
    """Configuration for quiz sessions"""

    question_count_options: List[int] = field(default_factory=lambda: [5, 10, 20, 50])
    default_question_count: int = 5

    # Time limit is a flat allowance per question
    seconds_per_question: int = 60

    # Seconds between timer ticks
    tick_interval: float = 1.0

    options_per_question: int = 4

    # Used when the syllabus response cannot be parsed
    fallback_sections: List[str] = field(default_factory=lambda: [
        "General Knowledge",
        "Core Concepts",
        "Advanced Topics",
        "Practice Set",
    ])
    max_sources: int = 3


@dataclass
class AIConfig:
    """Model selection for the OpenAI collaborators"""

    syllabus_model: str = field(
        default_factory=lambda: os.getenv("QUIZ_SYLLABUS_MODEL", "gpt-4o-search-preview")
    )
    question_model: str = field(
        default_factory=lambda: os.getenv("QUIZ_QUESTION_MODEL", "gpt-4o-mini")
    )
    question_temperature: float = 0.7


def cors_origins() -> List[str]:
    raw = os.getenv("QUIZ_CORS_ORIGINS")
    if not raw:
        return ["http://localhost:3000", "http://localhost:5173"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# Global config instance
QUIZ_CONFIG = QuizConfig()
