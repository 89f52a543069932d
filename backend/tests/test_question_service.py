import json

import pytest
from openai import OpenAIError

from app.services.question_service import QuestionService, parse_questions
from app.utils.errors import GenerationError
from conftest import FakeCompletions, fake_client


def _payload(count, **overrides):
    item = {
        "text": "Which port does HTTPS use?",
        "options": ["21", "80", "443", "8080"],
        "correct_answer": 2,
        "explanation": "HTTPS defaults to **443**.",
    }
    item.update(overrides)
    return [dict(item) for _ in range(count)]


def test_parse_wrapped_questions_assigns_ids():
    questions = parse_questions(json.dumps({"questions": _payload(3)}), 3)
    assert [q.id for q in questions] == ["q-0", "q-1", "q-2"]
    assert questions[0].correct_answer == 2


def test_parse_bare_list_with_camel_case_answer():
    item = _payload(1)[0]
    item["correctAnswer"] = item.pop("correct_answer")
    questions = parse_questions(json.dumps([item]), 1)
    assert questions[0].correct_answer == 2


def test_parse_drops_extra_questions():
    assert len(parse_questions(json.dumps({"questions": _payload(7)}), 5)) == 5


def test_missing_explanation_defaults_to_empty():
    questions = parse_questions(json.dumps([_payload(1, explanation=None)[0]]), 1)
    assert questions[0].explanation == ""


@pytest.mark.parametrize(
    "content",
    [
        "not json at all",
        "",
        None,
        json.dumps({"questions": []}),
        json.dumps({"items": _payload(2)}),
        json.dumps({"questions": ["just a string"]}),
        json.dumps(_payload(1, options=["a", "b", "c"])),
        json.dumps(_payload(1, correct_answer=4)),
        json.dumps(_payload(1, correct_answer=-1)),
        json.dumps(_payload(1, text="")),
    ],
)
def test_parse_rejects_malformed(content):
    with pytest.raises(GenerationError):
        parse_questions(content, 2)


async def test_generate_quiz_sends_section_and_count():
    completions = FakeCompletions(content=json.dumps({"questions": _payload(5)}))
    service = QuestionService(client=fake_client(completions))

    questions = await service.generate_quiz("ISC2 CC", 5, "Network Security")

    assert len(questions) == 5
    request = completions.requests[0]
    assert request["response_format"] == {"type": "json_object"}
    prompt = request["messages"][-1]["content"]
    assert "Generate 5 multiple-choice" in prompt
    assert '"Network Security"' in prompt


async def test_generate_quiz_malformed_json_raises():
    service = QuestionService(client=fake_client(FakeCompletions(content="{oops")))
    with pytest.raises(GenerationError, match="Failed to generate questions"):
        await service.generate_quiz("ISC2 CC", 5, "Network Security")


async def test_generate_quiz_api_error_raises():
    service = QuestionService(client=fake_client(FakeCompletions(error=OpenAIError("rate limited"))))
    with pytest.raises(GenerationError):
        await service.generate_quiz("ISC2 CC", 5, "Network Security")
