import math
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.config.settings import QUIZ_CONFIG
from app.utils.countdown import CountdownTimer
from app.utils.errors import InvalidChoiceError, InvalidTransitionError
from app.utils.state_machine import QuizStateMachine, QuizStatus


class Source(BaseModel):
    title: str = ""
    uri: str


class Syllabus(BaseModel):
    sections: List[str]
    sources: List[Source] = Field(default_factory=list)


class Question(BaseModel):
    id: str
    text: str
    options: List[str]
    correct_answer: int = Field(
        validation_alias=AliasChoices("correct_answer", "correctAnswer")
    )
    explanation: str = ""

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question text is empty")
        return value

    @field_validator("options")
    @classmethod
    def _four_options(cls, value: List[str]) -> List[str]:
        if len(value) != QUIZ_CONFIG.options_per_question:
            raise ValueError(
                f"expected {QUIZ_CONFIG.options_per_question} options, got {len(value)}"
            )
        return value

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation_default(cls, value):
        return "" if value is None else value

    @model_validator(mode="after")
    def _answer_in_range(self):
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(f"correct_answer {self.correct_answer} out of range")
        return self

    def to_dict(self, reveal: bool) -> Dict:
        data = {"id": self.id, "text": self.text, "options": list(self.options)}
        if reveal:
            data["correct_answer"] = self.correct_answer
            data["explanation"] = self.explanation
        return data


class QuizSession(BaseModel):
    """
    One quiz attempt, from exam-name entry through completion.

    Every mutation goes through the methods below. A method called in the
    wrong status raises InvalidTransitionError; a method whose guard is not
    met (empty exam name, nothing selected, question already answered, ...)
    changes nothing and returns False.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    created_at: datetime = Field(default_factory=datetime.now)

    exam_name: str = ""
    sections: List[str] = Field(default_factory=list)
    sources: List[Source] = Field(default_factory=list)
    selected_section: Optional[str] = None
    question_count: int = QUIZ_CONFIG.default_question_count

    questions: List[Question] = Field(default_factory=list)
    current_question_index: int = 0
    answers: List[Optional[int]] = Field(default_factory=list)
    selected_option: Optional[int] = None
    score: int = 0

    error: Optional[str] = None
    generation_token: int = 0

    state_machine: QuizStateMachine = Field(default_factory=QuizStateMachine)
    timer: CountdownTimer = Field(default_factory=CountdownTimer)

    @property
    def status(self) -> QuizStatus:
        return self.state_machine.get_state()

    # Syllabus lookup

    def begin_fetch(self, exam_name: str) -> Optional[int]:
        """Move to fetching_sections. Returns the token for this attempt."""
        self._require("fetch sections", QuizStatus.IDLE)
        name = (exam_name or "").strip()
        if not name:
            return None
        self.exam_name = name
        self.error = None
        self._move(QuizStatus.FETCHING_SECTIONS)
        self.generation_token += 1
        return self.generation_token

    def complete_fetch(self, token: int, syllabus: Syllabus) -> bool:
        if self._is_stale(token, QuizStatus.FETCHING_SECTIONS):
            return False
        self.sections = list(syllabus.sections)
        self.sources = list(syllabus.sources)
        self._move(QuizStatus.SELECTING_SECTION)
        return True

    def fail_fetch(self, token: int, message: str) -> bool:
        if self._is_stale(token, QuizStatus.FETCHING_SECTIONS):
            return False
        self.error = message
        self._move(QuizStatus.IDLE)
        return True

    # Section selection

    def select_section(self, section: str):
        self._require("select a section", QuizStatus.SELECTING_SECTION)
        if section not in self.sections:
            raise InvalidChoiceError(f"Unknown section: {section}")
        self.selected_section = section

    def set_question_count(self, count: int):
        self._require("change question count", QuizStatus.SELECTING_SECTION)
        if count not in QUIZ_CONFIG.question_count_options:
            raise InvalidChoiceError(
                f"Question count must be one of {QUIZ_CONFIG.question_count_options}"
            )
        self.question_count = count

    def go_back(self):
        self._require("go back", QuizStatus.SELECTING_SECTION)
        self.selected_section = None
        self._move(QuizStatus.IDLE)

    # Quiz generation

    def begin_generation(self) -> Optional[int]:
        self._require("start the test", QuizStatus.SELECTING_SECTION)
        if not self.selected_section:
            return None
        self.error = None
        self._move(QuizStatus.GENERATING)
        self.generation_token += 1
        return self.generation_token

    def complete_generation(self, token: int, questions: List[Question]) -> bool:
        if self._is_stale(token, QuizStatus.GENERATING):
            return False
        if not questions:
            self.fail_generation(token, "No questions were generated. Please try again.")
            return False
        self.questions = list(questions)
        self.current_question_index = 0
        self.score = 0
        self.answers = [None] * len(self.questions)
        self.selected_option = None
        self.timer.start(self.question_count * QUIZ_CONFIG.seconds_per_question)
        self._move(QuizStatus.ACTIVE)
        return True

    def fail_generation(self, token: int, message: str) -> bool:
        if self._is_stale(token, QuizStatus.GENERATING):
            return False
        self.error = message
        self._move(QuizStatus.SELECTING_SECTION)
        return True

    # Taking the quiz

    def select_option(self, option: int) -> bool:
        self._require("select an option", QuizStatus.ACTIVE)
        self._check_option(option)
        if self._current_answered():
            return False
        self.selected_option = option
        return True

    def submit_answer(self, option: Optional[int] = None) -> bool:
        """Record the answer for the current question. First submit wins."""
        self._require("submit an answer", QuizStatus.ACTIVE)
        if self._current_answered():
            return False
        if option is not None:
            self.select_option(option)
        if self.selected_option is None:
            return False

        question = self.questions[self.current_question_index]
        self.answers[self.current_question_index] = self.selected_option
        if self.selected_option == question.correct_answer:
            self.score += 1
        return True

    def next_question(self) -> bool:
        self._require("advance", QuizStatus.ACTIVE)
        if not self._current_answered():
            return False
        if self.current_question_index < len(self.questions) - 1:
            self.current_question_index += 1
            self.selected_option = None
        else:
            self._finish()
        return True

    def toggle_timer(self) -> bool:
        self._require("toggle the timer", QuizStatus.ACTIVE)
        return self.timer.toggle()

    def tick(self) -> bool:
        """Advance the countdown by one second. Returns True if time ran out."""
        if self.status != QuizStatus.ACTIVE:
            return False
        if self.timer.tick():
            self._finish()
            return True
        return False

    def reset(self):
        """Clear every field back to its initial value (any status)"""
        token = self.generation_token
        fresh = QuizSession(session_id=self.session_id, created_at=self.created_at)
        for name in type(self).model_fields:
            setattr(self, name, getattr(fresh, name))
        # Late results from before the reset must not match
        self.generation_token = token + 1

    # Results

    @property
    def percentage(self) -> int:
        if not self.questions:
            return 0
        # Halves round up (12.5 -> 13), not to even
        return math.floor(self.score * 100 / len(self.questions) + 0.5)

    @property
    def progress(self) -> float:
        if not self.questions:
            return 0.0
        return (self.current_question_index + 1) / len(self.questions) * 100

    def review(self) -> List[Dict]:
        return [
            {
                "question": question.to_dict(reveal=True),
                "chosen": chosen,
                "is_correct": chosen == question.correct_answer,
            }
            for question, chosen in zip(self.questions, self.answers)
        ]

    def results(self) -> Dict:
        return {
            "session_id": self.session_id,
            "exam_name": self.exam_name,
            "section": self.selected_section,
            "status": self.status.value,
            "score": self.score,
            "total": len(self.questions),
            "answered": sum(1 for a in self.answers if a is not None),
            "percentage": self.percentage,
            "time_remaining": self.timer.time_remaining,
            "review": self.review() if self.status == QuizStatus.COMPLETED else [],
        }

    def snapshot(self) -> Dict:
        completed = self.status == QuizStatus.COMPLETED
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "exam_name": self.exam_name,
            "sections": list(self.sections),
            "sources": [source.model_dump() for source in self.sources],
            "selected_section": self.selected_section,
            "question_count": self.question_count,
            "time_remaining": self.timer.time_remaining,
            "time_display": self.timer.formatted,
            "is_timer_running": self.timer.is_running,
            "questions": [
                question.to_dict(reveal=completed or answer is not None)
                for question, answer in zip(self.questions, self.answers)
            ],
            "current_question_index": self.current_question_index,
            "answers": list(self.answers),
            "selected_option": self.selected_option,
            "score": self.score,
            "progress": self.progress,
            "percentage": self.percentage if completed else None,
            "error": self.error,
        }

    # Internals

    def _require(self, action: str, *statuses: QuizStatus):
        if self.status not in statuses:
            raise InvalidTransitionError(
                f"Cannot {action} while session is {self.status.value}"
            )

    def _move(self, target: QuizStatus):
        if not self.state_machine.transition(target):
            raise InvalidTransitionError(
                f"Cannot move from {self.status.value} to {target.value}"
            )

    def _is_stale(self, token: int, expected: QuizStatus) -> bool:
        return token != self.generation_token or self.status != expected

    def _current_answered(self) -> bool:
        return self.answers[self.current_question_index] is not None

    def _check_option(self, option: int):
        question = self.questions[self.current_question_index]
        if not 0 <= option < len(question.options):
            raise InvalidChoiceError(f"Option {option} out of range")

    def _finish(self):
        self.timer.stop()
        self.selected_option = None
        self._move(QuizStatus.COMPLETED)
