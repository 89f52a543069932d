class QuizError(Exception):
    """Base class for quiz service errors"""


class SyllabusLookupError(QuizError):
    """Syllabus retrieval failed outright (network or API error)"""


class GenerationError(QuizError):
    """Quiz generation failed or returned unusable questions"""


class InvalidTransitionError(QuizError):
    """Action is not allowed in the session's current status"""


class InvalidChoiceError(QuizError, ValueError):
    """Section, question count or option outside the allowed values"""


class SessionNotFoundError(QuizError, KeyError):
    """No session with the given id"""

    def __str__(self):
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""
