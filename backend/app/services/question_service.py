import json
import logging
import os
from typing import Any, List, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from app.config.settings import QUIZ_CONFIG, AIConfig
from app.models.quiz_session import Question
from app.utils.errors import GenerationError

logger = logging.getLogger(__name__)

GENERATION_FAILED = "Failed to generate questions. Please try again."


def parse_questions(content: Optional[str], count: int) -> List[Question]:
    """
    Turn a model reply into validated questions.

    Accepts {"questions": [...]} or a bare list. Anything that does not
    yield at least one fully valid question raises GenerationError; there
    is no default quiz.
    """
    try:
        data: Any = json.loads(content or "")
    except json.JSONDecodeError as e:
        raise GenerationError(GENERATION_FAILED) from e

    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list) or not data:
        raise GenerationError(GENERATION_FAILED)

    questions = []
    for index, item in enumerate(data[:count]):
        if not isinstance(item, dict):
            raise GenerationError(GENERATION_FAILED)
        try:
            questions.append(Question.model_validate({**item, "id": f"q-{index}"}))
        except ValidationError as e:
            raise GenerationError(GENERATION_FAILED) from e

    if len(questions) < count:
        logger.warning("Asked for %d questions, got %d", count, len(questions))
    return questions


class QuestionService:
    """Generates multiple-choice questions for one exam section"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, config: Optional[AIConfig] = None):
        self._client = client
        self.config = config or AIConfig()

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        return self._client

    async def generate_quiz(self, exam_name: str, count: int, section: Optional[str] = None) -> List[Question]:
        section_prompt = f'specifically for the section "{section}"' if section else ""
        prompt = f"""Generate {count} multiple-choice questions for the exam: "{exam_name}" {section_prompt}.
Each question must have exactly {QUIZ_CONFIG.options_per_question} options.
Provide the correct answer as a 0-based index.
Include a brief explanation for the correct answer (markdown allowed).

Respond in JSON: {{"questions": [{{"text": "...", "options": ["...", "...", "...", "..."], "correct_answer": 0, "explanation": "..."}}]}}"""

        try:
            response = await self.client.chat.completions.create(
                model=self.config.question_model,
                messages=[
                    {
                        "role": "system",
                        "content": "You write accurate exam practice questions in the style of the official exam.",
                    },
                    {"role": "user", "content": prompt},
                ],
                temperature=self.config.question_temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.exception("Question generation failed for %r / %r", exam_name, section)
            raise GenerationError(GENERATION_FAILED) from e

        if not response.choices:
            raise GenerationError(GENERATION_FAILED)

        try:
            return parse_questions(response.choices[0].message.content, count)
        except GenerationError:
            logger.exception("Failed to parse questions for %r / %r", exam_name, section)
            raise
