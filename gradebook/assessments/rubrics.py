"""
Rubric Evaluator

Turns a grader's per-criterion selections into points. Only human graders
use rubrics; the automatic grading path never touches them.
"""

from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from gradebook.common.errors import NotFoundError, ValidationError
from gradebook.common.logger import app_logger
from gradebook.assessments.models import Rubric, RubricCriterion
from gradebook.assessments.repositories import RubricRepository

logger = app_logger.getChild("assessments.rubrics")

Selection = Union[float, int, str]


@dataclass(frozen=True)
class RubricScore:
    """
    Result of evaluating a rubric.

    Attributes:
        criterion_scores: Points awarded per criterion name
        total: Sum of the awarded points, capped at ``max_score``
        max_score: The rubric's total points
    """

    criterion_scores: Dict[str, float]
    total: float
    max_score: float

    @property
    def percentage(self) -> float:
        return self.total / self.max_score * 100 if self.max_score > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "criterion_scores": dict(self.criterion_scores),
            "total": self.total,
            "max_score": self.max_score,
            "percentage": self.percentage,
        }


def _selection_points(criterion: RubricCriterion, selection: Selection) -> float:
    if isinstance(selection, str):
        level = criterion.level(selection)
        if level is None:
            raise ValidationError(
                f"Criterion {criterion.name} has no level named {selection}",
                errors={criterion.name: selection}
            )
        return float(level.points)

    if isinstance(selection, bool) or not isinstance(selection, Real):
        raise ValidationError(
            f"Selection for criterion {criterion.name} must be points or a level name",
            errors={criterion.name: selection}
        )
    if selection < 0:
        raise ValidationError(
            f"Points for criterion {criterion.name} cannot be negative",
            errors={criterion.name: selection}
        )
    return min(float(selection), float(criterion.max_points))


def evaluate(rubric: Rubric, selections: Mapping[str, Selection]) -> RubricScore:
    """
    Score ``selections`` against ``rubric``.

    Selections are keyed by criterion id or name and hold either points or
    a level name. Points above a criterion's maximum are clamped; criteria
    without a selection earn nothing.

    Raises:
        ValidationError: For unknown criteria, unknown levels or negative points
    """
    scores: Dict[str, float] = {criterion.name: 0.0 for criterion in rubric.criteria}
    for key, selection in selections.items():
        criterion = rubric.criterion(key)
        if criterion is None:
            raise ValidationError(
                f"Rubric {rubric.id} has no criterion {key}",
                errors={"criterion": key}
            )
        scores[criterion.name] = _selection_points(criterion, selection)

    max_score = float(rubric.total_points)
    return RubricScore(
        criterion_scores=scores,
        total=min(sum(scores.values()), max_score),
        max_score=max_score
    )


def scale_to_points(score: RubricScore, question_points: float) -> float:
    """Scale a rubric score onto a question worth ``question_points``."""
    if score.max_score <= 0:
        return 0.0
    return question_points * score.total / score.max_score


class RubricEvaluator:
    """
    Rubric storage and evaluation used by human graders.
    """

    def __init__(self, repository: RubricRepository):
        self.repository = repository

    async def create_rubric(
        self,
        title: str,
        criteria: Sequence[Union[RubricCriterion, Mapping[str, Any]]],
        assessment_id: Optional[str] = None,
        description: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> Rubric:
        rubric = Rubric(
            title=title,
            criteria=list(criteria),
            assessment_id=assessment_id,
            description=description,
            created_by=created_by
        )
        await self.repository.save_rubric(rubric)
        logger.info(f"Created rubric {rubric.id} with {len(rubric.criteria)} criteria worth {rubric.total_points}")
        return rubric

    async def get_rubric(self, rubric_id: str) -> Rubric:
        rubric = await self.repository.get_rubric(rubric_id)
        if rubric is None:
            raise NotFoundError("Rubric", rubric_id)
        return rubric

    async def list_rubrics(self, assessment_id: Optional[str] = None) -> List[Rubric]:
        return await self.repository.list_rubrics(assessment_id)

    async def evaluate(self, rubric_id: str, selections: Mapping[str, Selection]) -> Tuple[Rubric, RubricScore]:
        rubric = await self.get_rubric(rubric_id)
        return rubric, evaluate(rubric, selections)

