from __future__ import annotations

from typing import Sequence
from urllib.parse import urljoin

from domain.dom import DomNode, NodePredicate, PageSnapshot
from domain.models import DetectedForm, DetectionResult, FormOrigin
from domain.ports import ClockPort, LoggerPort
from domain.services.container_scorer import CANDIDATE_THRESHOLD, ContainerScorer
from domain.services.control_checks import count_controls
from domain.services.field_extractor import FieldExtractor

MIN_VIRTUAL_TEXT_LENGTH = 20
MIN_VIRTUAL_CONTROLS = 2

_VIRTUAL_SELECTORS: Sequence[NodePredicate] = (
    lambda n: n.tag == "main",
    lambda n: n.role == "main",
    lambda n: n.role == "form",
    lambda n: n.tag == "section",
    lambda n: n.tag == "article",
    lambda n: n.tag == "div",
)
_COMPANY_SELECTORS: Sequence[NodePredicate] = (
    lambda n: n.has("data-company"),
    lambda n: "company-name" in n.class_list,
    lambda n: "employer-name" in n.class_list,
    lambda n: "company" in n.attr_lower("class"),
    lambda n: "employer" in n.attr_lower("class"),
)
_SUBMIT_WORDS = ("submit", "apply", "send")


class FormDetector:
    """
    Finds the application forms of a page snapshot.

    Native ``<form>`` elements win; only when none qualifies is the best
    generic container promoted to a virtual form.
    """

    def __init__(
        self,
        *,
        clock: ClockPort,
        logger: LoggerPort,
        scorer: ContainerScorer | None = None,
        extractor: FieldExtractor | None = None,
    ) -> None:
        self._clock = clock
        self._logger = logger
        self._scorer = scorer or ContainerScorer()
        self._extractor = extractor or FieldExtractor()

    def detect(self, snapshot: PageSnapshot) -> DetectionResult | None:
        forms = self._native_forms(snapshot)
        if not forms:
            virtual = self._virtual_form(snapshot)
            if virtual is not None:
                forms = [virtual]

        if not forms:
            self._logger.info("no_application_form_detected", url=snapshot.url)
            return None

        result = DetectionResult(
            url=snapshot.url,
            domain=snapshot.domain,
            title=snapshot.title,
            company=self.extract_company(snapshot),
            detected_at=self._clock.now(),
            forms=forms,
        )
        self._logger.info(
            "forms_detected",
            url=snapshot.url,
            form_count=len(forms),
            origin=forms[0].origin.value,
            field_count=len(forms[0].fields),
            score=forms[0].score,
        )
        return result

    def build_form(
        self,
        snapshot: PageSnapshot,
        container: DomNode,
        origin: FormOrigin,
    ) -> DetectedForm:
        """Score and extract one container as-is, without qualification checks."""
        form_score = self._scorer.score(container)
        fields = self._extractor.extract(container, snapshot)
        submit = self.find_submit_control(container)
        if origin is FormOrigin.NATIVE:
            action = urljoin(snapshot.url, container.get("action") or "")
            method = container.attr_lower("method") or "get"
        else:
            action = snapshot.url
            method = "post"
        return DetectedForm(
            element_handle=container.handle,
            origin=origin,
            fields=fields,
            form_score=form_score,
            submit_handle=submit.handle if submit is not None else None,
            action=action,
            method=method,
        )

    # -- native ---------------------------------------------------------------

    def _native_forms(self, snapshot: PageSnapshot) -> list[DetectedForm]:
        detected = []
        for element in snapshot.find_all(lambda n: n.tag == "form"):
            form = self.build_form(snapshot, element, FormOrigin.NATIVE)
            if form.fields or form.score >= CANDIDATE_THRESHOLD:
                detected.append(form)
        # sorted() is stable: equal scores keep document order
        return sorted(detected, key=lambda form: form.score, reverse=True)

    # -- virtual --------------------------------------------------------------

    def _virtual_form(self, snapshot: PageSnapshot) -> DetectedForm | None:
        best: DomNode | None = None
        best_count = 0
        for selector in _VIRTUAL_SELECTORS:
            for container in snapshot.find_all(selector):
                if len(container.text_content().strip()) < MIN_VIRTUAL_TEXT_LENGTH:
                    continue
                controls = count_controls(container)
                if controls > best_count:
                    best, best_count = container, controls

        if best is None or best_count < MIN_VIRTUAL_CONTROLS:
            return None
        form = self.build_form(snapshot, best, FormOrigin.VIRTUAL)
        if not form.fields:
            return None
        return form

    # -- page metadata --------------------------------------------------------

    @staticmethod
    def find_submit_control(container: DomNode) -> DomNode | None:
        submit = container.find(lambda n: n.tag == "button" and n.attr_lower("type") == "submit")
        if submit is not None:
            return submit
        submit = container.find(lambda n: n.tag == "input" and n.input_type == "submit")
        if submit is not None:
            return submit
        for button in container.find_all(lambda n: n.tag == "button"):
            text = button.text_content().lower()
            if any(word in text for word in _SUBMIT_WORDS):
                return button
        return None

    @staticmethod
    def extract_company(snapshot: PageSnapshot) -> str | None:
        meta = snapshot.find(lambda n: n.tag == "meta" and n.get("property") == "og:site_name")
        if meta is not None:
            return meta.get("content") or None
        for selector in _COMPANY_SELECTORS:
            element = snapshot.find(selector)
            if element is not None and element.clean_text():
                return element.clean_text()
        return None


__all__ = ["FormDetector", "MIN_VIRTUAL_TEXT_LENGTH", "MIN_VIRTUAL_CONTROLS"]
