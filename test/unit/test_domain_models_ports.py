from datetime import datetime, timezone
from io import StringIO
import json

import pytest

from domain import (
    AnswerBatch,
    AnswerServicePort,
    AutofillTimings,
    ClockPort,
    FillSummary,
    GeneratedAnswer,
    IdGeneratorPort,
    InjectionResult,
    InjectionStatus,
    KeyValueStorePort,
    LoggerPort,
    MutationSourcePort,
    PagePort,
)
from domain.models import CommandResponse, FieldType, FormField, SelectOption
from domain.utils import humanize_name, split_csv, to_plain_data
from infra import (
    HttpAnswerService,
    SQLiteKeyValueStore,
    StaticHtmlPage,
    StructuredLogger,
    SystemClock,
    UuidIdGenerator,
)
from infra.browser import PlaywrightPage


def test_answer_map_drops_blank_and_low_confidence_answers() -> None:
    answers = AnswerBatch(
        answers=(
            GeneratedAnswer("a", "yes", 0.9),
            GeneratedAnswer("b", "", 1.0),
            GeneratedAnswer("c", "maybe", 0.3),
        ),
        overall_confidence=0.7,
    )
    assert answers.answer_map() == {"a": "yes", "c": "maybe"}
    assert answers.answer_map(0.5) == {"a": "yes"}


def test_fill_summary_counts_and_merge() -> None:
    first = FillSummary.from_results(
        [
            InjectionResult(field_id="a", status=InjectionStatus.FILLED),
            InjectionResult(field_id="b", status=InjectionStatus.SKIPPED),
        ]
    )
    second = FillSummary.from_results([InjectionResult(field_id="c", status=InjectionStatus.FAILED)], total=3)
    merged = first.merge(second)
    assert (merged.total, merged.filled, merged.failed, merged.skipped) == (5, 1, 1, 1)
    assert FillSummary.empty().merge(first) == first


def test_form_field_selected_option_and_label_flag() -> None:
    field = FormField(
        id="size",
        name="size",
        label="Team size",
        type=FieldType.SINGLE_SELECT,
        element_handle=4,
        options=[SelectOption("s", "Small"), SelectOption("l", "Large", selected=True)],
    )
    assert field.selected_option.label == "Large"
    assert field.has_label


def test_timings_override_from_milliseconds() -> None:
    timings = AutofillTimings().with_milliseconds({"focus_delay": 250, "advance_poll_attempts": 4, "bogus": 1})
    assert timings.focus_delay == 0.25
    assert timings.advance_poll_attempts == 4
    assert AutofillTimings.immediate().rescan_debounce == 0.0


def test_to_plain_data_serializes_enums_dates_and_properties() -> None:
    response = CommandResponse.ok(
        {"when": datetime(2025, 1, 2, tzinfo=timezone.utc), "status": InjectionStatus.FILLED, "ids": ("a",)}
    )
    plain = to_plain_data(response)
    assert plain == {
        "success": True,
        "data": {"when": "2025-01-02T00:00:00+00:00", "status": "filled", "ids": ["a"]},
        "error": None,
    }
    assert json.dumps(plain)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("first_name", "First Name"), ("firstName", "First Name"), ("job[title]", "Job Title")],
)
def test_humanize_name(raw: str, expected: str) -> None:
    assert humanize_name(raw) == expected


def test_split_csv_drops_blanks() -> None:
    assert split_csv(" next, ,continue ") == ("next", "continue")


def test_adapters_satisfy_ports(tmp_path) -> None:
    page = StaticHtmlPage("<p>x</p>", url="https://example.com")
    assert isinstance(page, PagePort)
    assert isinstance(page, MutationSourcePort)
    assert isinstance(PlaywrightPage(), PagePort)
    assert isinstance(
        HttpAnswerService(base_url="https://a.example.com", logger=StructuredLogger()),
        AnswerServicePort,
    )
    with SQLiteKeyValueStore(str(tmp_path / "kv.db")) as store:
        assert isinstance(store, KeyValueStorePort)
    assert isinstance(SystemClock(), ClockPort)
    assert isinstance(UuidIdGenerator(), IdGeneratorPort)
    assert isinstance(StructuredLogger(), LoggerPort)


def test_structured_logger_writes_json_lines() -> None:
    stream = StringIO()
    StructuredLogger(stream=stream, component="autofill").warning("field_injection_failed", field_id="email")
    record = json.loads(stream.getvalue())
    assert record["level"] == "warning"
    assert record["message"] == "field_injection_failed"
    assert record["fields"] == {"field_id": "email"}
    assert record["component"] == "autofill"
