"""
Domain services.

Detection, injection and the validation-retry loop. They depend only on
domain models, the element tree and ports so that the browser, network and
storage adapters stay thin.
"""

from .autofill_orchestrator import AutofillOrchestrator, SessionOptions
from .container_scorer import ContainerScorer
from .field_extractor import FieldExtractor, dedupe_fields
from .field_injector import FieldInjector, match_option, match_radio
from .form_detector import FormDetector
from .form_signature import form_signature
from .preferences import PreferenceService
from .rescan_scheduler import RescanScheduler
from .step_advancer import AdvanceVocabularyMatcher, StepAdvancer, step_signature
from .validation_inspector import ValidationInspector

__all__ = [
    "ContainerScorer",
    "FieldExtractor",
    "dedupe_fields",
    "FormDetector",
    "FieldInjector",
    "match_option",
    "match_radio",
    "ValidationInspector",
    "StepAdvancer",
    "AdvanceVocabularyMatcher",
    "step_signature",
    "form_signature",
    "AutofillOrchestrator",
    "SessionOptions",
    "RescanScheduler",
    "PreferenceService",
]
