import json
import logging
import os
import re
from typing import Any, List, Optional

from openai import AsyncOpenAI, OpenAIError

from app.config.settings import QUIZ_CONFIG, AIConfig
from app.models.quiz_session import Source, Syllabus
from app.utils.errors import SyllabusLookupError

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def extract_json(text: str) -> Any:
    """Parse JSON from a model reply, tolerating code fences and chatter"""
    cleaned = _FENCE.sub("", (text or "").strip()) or "{}"
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(cleaned[start : end + 1])


class SyllabusService:
    """Looks up the official syllabus sections of an exam via web search"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, config: Optional[AIConfig] = None):
        self._client = client
        self.config = config or AIConfig()

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        return self._client

    async def lookup_syllabus(self, exam_name: str) -> Syllabus:
        prompt = f"""Find the official syllabus sections or domains for the exam: "{exam_name}".
You MUST search for information ONLY from official certification bodies (e.g., ISC2, AWS, Microsoft, CompTIA) or primary course providers.
Identify the main domains/sections of the exam.
Return the data as a JSON object with a "sections" key containing an array of 4-6 section names.
Reply with the JSON object only."""

        try:
            response = await self.client.chat.completions.create(
                model=self.config.syllabus_model,
                web_search_options={},
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            logger.exception("Syllabus lookup failed for %r", exam_name)
            raise SyllabusLookupError(
                f"Could not fetch the syllabus for {exam_name}. Please try again."
            ) from e

        if not response.choices:
            raise SyllabusLookupError(f"No syllabus found for {exam_name}.")

        message = response.choices[0].message
        sources = self._citations(message)

        try:
            data = extract_json(message.content)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Failed to parse sections for %r: %s", exam_name, e)
            return Syllabus(sections=list(QUIZ_CONFIG.fallback_sections), sources=[])

        sections = self._sections(data)
        if not sections:
            logger.warning("No sections in syllabus reply for %r, using defaults", exam_name)
            sections = list(QUIZ_CONFIG.fallback_sections)

        return Syllabus(sections=sections, sources=sources)

    def _sections(self, data: Any) -> List[str]:
        if not isinstance(data, dict):
            return []
        raw = data.get("sections")
        if not isinstance(raw, list):
            return []

        sections = []
        for item in raw:
            if not isinstance(item, str):
                continue
            name = item.strip()
            if name and name not in sections:
                sections.append(name)
        return sections

    def _citations(self, message) -> List[Source]:
        """Top web citations attached to the reply, one per uri"""
        sources: List[Source] = []
        seen = set()
        for annotation in getattr(message, "annotations", None) or []:
            if getattr(annotation, "type", None) != "url_citation":
                continue
            citation = annotation.url_citation
            uri = getattr(citation, "url", None)
            if not uri or uri in seen:
                continue
            seen.add(uri)
            sources.append(Source(title=getattr(citation, "title", None) or uri, uri=uri))
        return sources[: QUIZ_CONFIG.max_sources]
