"""
Conditional visibility: decides which questions are shown (and therefore which
required questions must be answered) for a given set of answers.

Pure functions of (questions, answers); the same code backs the preview endpoint
and submit validation, so both always agree. An unanswered dependency hides the
question under both operators, including isNot.
"""
from typing import Any, Mapping, Sequence

from form_server.schema import Question, SingleSelectQuestion

Answers = Mapping[str, Any]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


def _valid_dependency(field_id: str, preceding: Sequence[Question]) -> bool:
    return any(q.field_id == field_id and isinstance(q, SingleSelectQuestion) for q in preceding)


def is_visible(question: Question, answers: Answers, preceding: Sequence[Question] | None = None) -> bool:
    """
    preceding: the questions before this one in the form. When given, a dependency that is
    not an earlier singleSelect never matches (question hidden) rather than raising.
    """
    logic = question.conditional_logic
    if logic is None or not logic.enabled or not logic.dependent_field_id:
        return True
    if preceding is not None and not _valid_dependency(logic.dependent_field_id, preceding):
        return False
    value = answers.get(logic.dependent_field_id)
    if is_empty(value):
        return False
    if logic.operator == "is":
        return value == logic.value
    return value != logic.value


def visible_questions(questions: Sequence[Question], answers: Answers) -> list[Question]:
    return [q for i, q in enumerate(questions) if is_visible(q, answers, questions[:i])]


def missing_required(questions: Sequence[Question], answers: Answers) -> list[Question]:
    """Visible required questions with no answer. Hidden questions never block submission."""
    return [q for q in visible_questions(questions, answers) if q.is_required and is_empty(answers.get(q.field_id))]


def visible_answers(questions: Sequence[Question], answers: Answers) -> dict[str, Any]:
    """Answers worth forwarding: only visible questions of this form, non-empty values."""
    return {
        q.field_id: answers[q.field_id]
        for q in visible_questions(questions, answers)
        if not is_empty(answers.get(q.field_id))
    }
