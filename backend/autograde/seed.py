"""Default subjects and demo history used on first start and after a data reset."""

from __future__ import annotations

from datetime import timedelta

from autograde.models import ModelAnswerType, utcnow
from autograde.schemas import AssessmentResult, MlScoreDetails, SubjectConfig, Submission


SEED_MODEL_ANSWERS: dict[str, str] = {
    "Physics": (
        "Newton's second law of motion pertains to the behavior of objects for which all existing forces are not "
        "balanced. The second law states that the acceleration of an object is dependent upon two variables - the net "
        "force acting upon the object and the mass of the object."
    ),
    "History": (
        "The Industrial Revolution was a period of major industrialization and innovation that took place during the "
        "late 1700s and early 1800s. It began in Great Britain and quickly spread throughout the world."
    ),
    "Mathematics": (
        "To solve a quadratic equation ax^2 + bx + c = 0, you can use the quadratic formula: "
        "x = (-b ± √(b^2 - 4ac)) / 2a."
    ),
    "Computer Science": (
        "Object-oriented programming (OOP) is a computer programming model that organizes software design around data, "
        "or objects, rather than functions and logic."
    ),
}


def empty_result(score: float = 0.0) -> AssessmentResult:
    return AssessmentResult(
        extracted_text="",
        similarity_score=0.0,
        ml_score=score,
        ml_score_details=MlScoreDetails(correctness=0.0, completeness=0.0, clarity=0.0),
        question_grades=[],
        feedback="",
        key_concepts_found=[],
        missed_concepts=[],
    )


def seed_configs() -> dict[str, SubjectConfig]:
    return {
        subject: SubjectConfig(model_answer_type=ModelAnswerType.TEXT, model_answer_text=text)
        for subject, text in SEED_MODEL_ANSWERS.items()
    }


def seed_submissions() -> list[Submission]:
    now = utcnow()
    return [
        Submission(
            id="1",
            student_name="Alice Johnson",
            subject="Physics",
            score=85,
            timestamp=now - timedelta(days=1),
            result=empty_result(85),
        ),
        Submission(
            id="2",
            student_name="Bob Smith",
            subject="Physics",
            score=62,
            timestamp=now - timedelta(seconds=40_000),
            result=empty_result(62),
        ),
    ]
