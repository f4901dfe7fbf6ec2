from __future__ import annotations

from typing import Sequence

from domain.dom import DomNode
from domain.models import FormIndicators, FormScore
from domain.services.control_checks import count_controls

APPLICATION_KEYWORDS: Sequence[str] = (
    "apply",
    "application",
    "resume",
    "cv",
    "cover letter",
    "experience",
    "education",
    "qualification",
    "employment",
    "career",
    "job application",
    "submit application",
)
WORK_HISTORY_KEYWORDS: Sequence[str] = ("company", "employer", "job title", "position")

FILE_UPLOAD_WEIGHT = 0.3
TEXTAREA_WEIGHT = 0.2
KEYWORD_WEIGHT = 0.1
KEYWORD_CAP = 0.3
WORK_HISTORY_WEIGHT = 0.15
FIELD_COUNT_WEIGHT = 0.1
CANDIDATE_THRESHOLD = 0.3


class ContainerScorer:
    """
    Scores how likely a subtree is a job-application form.

    The score is a sum of capped, independent signals. The same heuristic
    applies to native ``<form>`` elements and to generic containers.
    """

    def score(self, container: DomNode) -> FormScore:
        total = 0.0
        reasons: list[str] = []
        markup = container.markup_text()

        has_upload = container.find(lambda n: n.tag == "input" and n.input_type == "file") is not None
        if has_upload:
            total += FILE_UPLOAD_WEIGHT
            reasons.append("Has file upload field")

        has_textarea = container.find(lambda n: n.tag == "textarea") is not None
        if has_textarea:
            total += TEXTAREA_WEIGHT
            reasons.append("Has textarea fields")

        keywords = tuple(k for k in APPLICATION_KEYWORDS if k in markup)
        if keywords:
            total += min(len(keywords) * KEYWORD_WEIGHT, KEYWORD_CAP)
            reasons.append(f"Contains keywords: {', '.join(keywords)}")

        has_work_history = any(k in markup for k in WORK_HISTORY_KEYWORDS)
        if has_work_history:
            total += WORK_HISTORY_WEIGHT
            reasons.append("Contains work history fields")

        field_count = count_controls(container)
        if field_count >= 5:
            total += FIELD_COUNT_WEIGHT
            reasons.append(f"Has {field_count} form fields")
        if field_count >= 10:
            total += FIELD_COUNT_WEIGHT
            reasons.append("Has many form fields")

        return FormScore(
            score=round(min(total, 1.0), 4),
            reasons=tuple(reasons),
            indicators=FormIndicators(
                has_resume_upload=has_upload,
                has_text_area=has_textarea,
                has_work_history=has_work_history,
                keywords=keywords,
                field_count=field_count,
            ),
        )


__all__ = ["ContainerScorer", "APPLICATION_KEYWORDS", "WORK_HISTORY_KEYWORDS", "CANDIDATE_THRESHOLD"]
