"""
subjects.py
-----------
Topical grouping of pending questions for display ordering.

Reads the queue's output only; never mutates questions.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..models import Question, QuestionGroup
from .questions import urgency_key

GENERAL = "General"

# (substrings, subject) checked in order against the lower-cased file path.
FILE_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("api", "client"), "API Design"),
    (("test",), "Testing Strategy"),
    (("perf", "cache"), "Performance"),
    (("auth", "login"), "Authentication"),
    (("component", "ui"), "UI Components"),
    (("model", "schema"), "Data Model"),
]

# Same, against the lower-cased question text.
TEXT_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("api", "endpoint", "rest", "graphql"), "API Design"),
    (("test", "mock", "coverage"), "Testing Strategy"),
    (("performance", "optimize", "cache"), "Performance"),
]


def _match(haystack: str, rules: List[Tuple[Tuple[str, ...], str]]) -> Optional[str]:
    for needles, subject in rules:
        if any(n in haystack for n in needles):
            return subject
    return None


def _title(label: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in label.split("_"))


def detect_subject(question: Question) -> str:
    """
    Subject bucket for a question: the agent-supplied subject, else a match on
    the originating file path, else on the question text, else the first skill
    label, else "General".
    """
    if question.subject:
        return question.subject

    subject = _match((question.context.file or "").lower(), FILE_RULES)
    if subject:
        return subject

    subject = _match(question.text.lower(), TEXT_RULES)
    if subject:
        return subject

    labels = question.context.skill_labels
    if labels:
        return _title(labels[0])

    return GENERAL


def group_questions(questions: List[Question]) -> List[QuestionGroup]:
    """Groups with a blocking question come first, then larger groups."""
    groups: Dict[str, List[Question]] = {}
    for q in questions:
        groups.setdefault(detect_subject(q), []).append(q)

    out = [QuestionGroup(subject=s, questions=qs, count=len(qs)) for s, qs in groups.items()]
    out.sort(key=lambda g: (not any(q.priority == "blocking" for q in g.questions), -g.count))
    return out


def panel_view(questions: List[Question]) -> Tuple[Optional[Question], List[QuestionGroup]]:
    """
    The most urgent pending question, plus the remaining pending questions
    grouped by subject.
    """
    pending = [q for q in questions if q.status == "pending"]
    current = min(pending, key=urgency_key) if pending else None
    rest = [q for q in pending if current is None or q.id != current.id]
    return current, group_questions(rest)
