from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from notebook_tracker.tracker.history import HistorySummary
from notebook_tracker.tracker.models import SubmissionStatus


DEFAULT_THRESHOLD = 2
HIGH_RISK_CUTOFF = 0.7

MODE_ALL = "all"
MODE_HIGH = "high"

WEIGHT_MISSING_SHARE = 0.4
WEIGHT_CONSECUTIVE = 0.3
WEIGHT_ACCUMULATED = 0.2
WEIGHT_CURRENT_MISSING = 0.1
ACCUMULATED_CAP = 5


@dataclass(frozen=True)
class RiskAssessment:
    default_probability: float
    band: str
    missing_count: int
    history_pattern: str
    reasoning: list[str]


@dataclass(frozen=True)
class StudentHistory:
    """Scoring input for one student: identity, current status and aggregated history."""

    student_id: str
    student_name: str
    scholar_number: str
    current_status: SubmissionStatus
    summary: HistorySummary


@dataclass(frozen=True)
class DefaulterPrediction:
    student_id: str
    student_name: str
    scholar_number: str
    default_probability: float
    band: str
    missing_count: int
    history_pattern: str
    reasoning: list[str]

    def as_dict(self) -> dict[str, object]:
        return {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "scholar_number": self.scholar_number,
            "default_probability": self.default_probability,
            "band": self.band,
            "missing_count": self.missing_count,
            "history_pattern": self.history_pattern,
            "reasoning": list(self.reasoning),
        }


def validate_threshold(threshold: object) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
        raise ValueError(f"threshold must be an integer >= 1, got {threshold!r}")
    return threshold


def risk_band(probability: float) -> str:
    if probability >= 0.8:
        return "high"
    if probability >= 0.6:
        return "elevated"
    if probability >= 0.4:
        return "moderate"
    return "low"


def is_candidate(history: HistorySummary, threshold: int = DEFAULT_THRESHOLD) -> bool:
    return history.missing_count >= validate_threshold(threshold)


def _consecutive_reason(history: HistorySummary) -> str | None:
    if history.max_consecutive_missing >= 2:
        return f"Found a pattern of {history.max_consecutive_missing} consecutive missing submissions."
    if history.recent_missing_count >= 2:
        recent = min(history.total, 3)
        return f"{history.recent_missing_count} out of the last {recent} submissions are missing."
    return None


def _is_missing(status: SubmissionStatus) -> bool:
    if status is SubmissionStatus.MISSING:
        return True
    if status in (SubmissionStatus.SUBMITTED, SubmissionStatus.RETURNED):
        return False
    raise ValueError(f"Unhandled submission status: {status!r}")


def score_defaulter_risk(
    status: SubmissionStatus,
    history: HistorySummary,
    threshold: int = DEFAULT_THRESHOLD,
) -> RiskAssessment:
    """Compute an explainable defaulter risk (rule-based, no ML).

    Factors:
      - share of missing submissions       x 0.4
      - consecutive missing pattern        + 0.3
      - accumulated misses, capped at 5    x 0.2
      - current cycle still missing        + 0.1

    Reasoning lists one line per triggered rule, most severe first.
    """

    threshold = validate_threshold(threshold)
    status = SubmissionStatus.parse(status)

    if history.total == 0:
        return RiskAssessment(
            default_probability=0.0,
            band=risk_band(0.0),
            missing_count=0,
            history_pattern=history.pattern_label,
            reasoning=[],
        )

    currently_missing = _is_missing(status)
    consecutive = _consecutive_reason(history)

    probability = WEIGHT_MISSING_SHARE * history.missing_count / history.total
    if consecutive is not None:
        probability += WEIGHT_CONSECUTIVE
    probability += WEIGHT_ACCUMULATED * min(history.missing_count / ACCUMULATED_CAP, 1.0)
    if currently_missing:
        probability += WEIGHT_CURRENT_MISSING
    probability = round(max(0.0, min(1.0, probability)), 4)

    reasoning: list[str] = []
    if consecutive is not None:
        reasoning.append(consecutive)
    if history.missing_count >= threshold:
        reasoning.append(
            f"Student has {history.missing_count} missing submissions, "
            f"which is at or above the threshold of {threshold}."
        )
    if currently_missing:
        reasoning.append("The notebook for the current cycle has not been submitted.")
    if history.submission_rate < 50:
        reasoning.append(f"Overall submission rate is {history.submission_rate}%, below 50%.")
    if history.late_submission_count > 0:
        reasoning.append(f"{history.late_submission_count} of {history.total} submissions were handed in late.")
    problem = history.most_problematic_subject
    if problem is not None:
        reasoning.append(
            f"Most missed subject is {problem.name} "
            f"({problem.missing} of {problem.total} missing, {problem.percentage}%)."
        )

    return RiskAssessment(
        default_probability=probability,
        band=risk_band(probability),
        missing_count=history.missing_count,
        history_pattern=history.pattern_label,
        reasoning=reasoning,
    )


def predict_defaulters(
    students: Iterable[StudentHistory],
    threshold: int = DEFAULT_THRESHOLD,
) -> list[DefaulterPrediction]:
    """Score every student at or above the missing-count threshold, riskiest first."""

    threshold = validate_threshold(threshold)
    predictions: list[DefaulterPrediction] = []
    for student in students:
        if not is_candidate(student.summary, threshold):
            continue
        risk = score_defaulter_risk(student.current_status, student.summary, threshold)
        predictions.append(
            DefaulterPrediction(
                student_id=student.student_id,
                student_name=student.student_name,
                scholar_number=student.scholar_number,
                default_probability=risk.default_probability,
                band=risk.band,
                missing_count=risk.missing_count,
                history_pattern=risk.history_pattern,
                reasoning=risk.reasoning,
            )
        )
    return sorted(predictions, key=lambda p: -p.default_probability)


def filter_predictions(predictions: Sequence[DefaulterPrediction], mode: str = MODE_ALL) -> list[DefaulterPrediction]:
    if mode == MODE_ALL:
        return list(predictions)
    if mode == MODE_HIGH:
        return [p for p in predictions if p.default_probability >= HIGH_RISK_CUTOFF]
    raise ValueError(f"Unknown filter mode: {mode!r}")
