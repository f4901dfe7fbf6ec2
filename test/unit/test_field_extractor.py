from __future__ import annotations

from domain.models import UNNAMED_FIELD_LABEL, FieldType, FormField, SelectOption
from domain.services import FieldExtractor, dedupe_fields
from infra.dom import parse_html
from test.fixtures import load_page

URL = "https://jobs.example.com/apply"


def _extract(body: str) -> list[FormField]:
    snapshot = parse_html(f"<html><body><form id='f'>{body}</form></body></html>", url=URL)
    return FieldExtractor().extract(snapshot.get_element_by_id("f"), snapshot)


def _by_id(fields: list[FormField]) -> dict[str, FormField]:
    return {f.id: f for f in fields}


def test_fixture_form_fields_are_classified() -> None:
    snapshot = parse_html(load_page("application_form.html"), url=URL)
    fields = _by_id(FieldExtractor().extract(snapshot.get_element_by_id("application"), snapshot))

    assert list(fields) == [
        "first_name",
        "last_name",
        "email",
        "phone",
        "resume",
        "cover_letter",
        "experience",
        "work_auth",
        "consent",
        "current_company",
    ]
    assert fields["first_name"].label == "First Name"
    assert fields["first_name"].required
    assert fields["email"].type is FieldType.EMAIL
    assert fields["phone"].type is FieldType.PHONE
    assert fields["resume"].type is FieldType.FILE
    assert fields["cover_letter"].type is FieldType.LONG_TEXT
    assert fields["cover_letter"].validation.max_length == 5000
    assert fields["experience"].type is FieldType.SINGLE_SELECT
    assert [o.value for o in fields["experience"].options] == ["", "0-2", "3-5", "6+"]
    assert fields["consent"].type is FieldType.CHECKBOX
    assert fields["consent"].label == "I agree to the privacy policy"


def test_hidden_and_token_inputs_are_skipped() -> None:
    fields = _extract(
        """
        <input type="hidden" name="job_id" value="1">
        <input type="text" name="csrf_token">
        <input type="submit" value="Go">
        <label for="n">Name</label><input type="text" id="n" name="name">
        """
    )
    assert [f.id for f in fields] == ["n"]


def test_radio_group_becomes_one_field_with_member_handles() -> None:
    fields = _extract(
        """
        <fieldset>
          <legend>Are you legally authorized to work?</legend>
          <label><input type="radio" name="auth" value="yes"> Yes, I am authorized to work</label>
          <label><input type="radio" name="auth" value="no" checked> No</label>
        </fieldset>
        """
    )
    assert len(fields) == 1
    group = fields[0]
    assert group.type is FieldType.RADIO_GROUP
    assert group.id == "auth"
    assert group.label == "Are you legally authorized to work?"
    assert [o.label for o in group.options] == ["Yes, I am authorized to work", "No"]
    assert all(o.element_handle is not None for o in group.options)
    assert group.value == "no"


def test_label_chain_prefers_labelledby_then_for_then_enclosing() -> None:
    fields = _by_id(
        _extract(
            """
            <span id="lbl">Preferred name</span>
            <label for="a">Ignored label</label>
            <div><input type="text" id="a" aria-labelledby="lbl"></div>
            <label for="b">City *</label>
            <div><input type="text" id="b"></div>
            <label>Pronouns <input type="text" id="p"></label>
            <div class="question"><p>Notice period</p><input type="text" id="g"></div>
            <div><input type="text" id="c" aria-label="Portfolio"></div>
            <div><input type="text" id="d" placeholder="Your website"></div>
            <div><input type="text" id="e" name="github_profile"></div>
            """
        )
    )
    assert fields["a"].label == "Preferred name"
    assert fields["b"].label == "City"
    assert fields["p"].label == "Pronouns"
    assert fields["g"].label == "Notice period"
    assert fields["c"].label == "Portfolio"
    assert fields["d"].label == "Your website"
    assert fields["e"].label == "Github Profile"


def test_unlabeled_control_gets_sentinel_label() -> None:
    fields = _extract('<div><input type="text" id="x"></div>')
    assert fields[0].label == UNNAMED_FIELD_LABEL
    assert not fields[0].has_label


def test_custom_dropdown_reads_options_from_controlled_listbox() -> None:
    fields = _extract(
        """
        <label id="src-label">How did you hear about us?</label>
        <input type="text" id="src" role="combobox" aria-controls="src-list" aria-labelledby="src-label"
               aria-required="true">
        <ul id="src-list" role="listbox">
          <li role="option">LinkedIn</li>
          <li role="option" aria-selected="true">Referral</li>
        </ul>
        """
    )
    assert len(fields) == 1
    dropdown = fields[0]
    assert dropdown.type is FieldType.SINGLE_SELECT
    assert dropdown.required
    assert [o.label for o in dropdown.options] == ["LinkedIn", "Referral"]
    assert dropdown.options[1].selected


def test_automation_id_marks_custom_dropdown() -> None:
    fields = _extract('<label for="deg">Degree</label><input type="text" id="deg" data-automation-id="selectWidget">')
    assert fields[0].type is FieldType.SINGLE_SELECT
    assert fields[0].name == "selectWidget"


def test_email_input_with_combobox_class_stays_email() -> None:
    fields = _extract('<label for="m">Mail</label><input type="email" id="m" class="combobox">')
    assert fields[0].type is FieldType.EMAIL


def test_duplicate_ids_are_made_unique() -> None:
    fields = _extract(
        """
        <div><input type="text" name="q" aria-label="Question one"></div>
        <div><input type="text" name="q" aria-label="Question two"></div>
        """
    )
    assert [f.id for f in fields] == ["q", "q-2"]


def _field(field_id: str, label: str, field_type: FieldType, **kwargs) -> FormField:
    return FormField(id=field_id, name=kwargs.pop("name", ""), label=label, type=field_type, element_handle=1, **kwargs)


def test_dedupe_keeps_richer_duplicate_in_first_position() -> None:
    text = _field("loc-text", "Location", FieldType.SHORT_TEXT)
    other = _field("email", "Email", FieldType.EMAIL)
    dropdown = _field(
        "loc-select",
        "Location",
        FieldType.SINGLE_SELECT,
        required=True,
        options=[SelectOption("a", "Berlin"), SelectOption("b", "Paris"), SelectOption("c", "Remote")],
    )
    result = dedupe_fields([text, other, dropdown])
    assert [f.id for f in result] == ["loc-select", "email"]


def test_dedupe_ties_keep_the_first_seen() -> None:
    first = _field("a", "Phone", FieldType.PHONE)
    second = _field("b", "phone", FieldType.PHONE)
    assert [f.id for f in dedupe_fields([first, second])] == ["a"]


def test_dedupe_is_idempotent_across_repeated_extraction() -> None:
    snapshot = parse_html(load_page("wizard_step.html"), url=URL)
    container = snapshot.get_element_by_id("wizard")
    once = FieldExtractor().extract(container, snapshot)
    twice = dedupe_fields(once)
    assert [f.id for f in twice] == [f.id for f in once]
    assert [f.id for f in FieldExtractor().extract(container, snapshot)] == [f.id for f in once]


def test_anonymous_generated_id_control_is_dropped() -> None:
    fields = _extract(
        """
        <div><input type="text" id="1712345678-abc123"></div>
        <div><label for="city">City</label><input type="text" id="city"></div>
        """
    )
    assert [f.id for f in fields] == ["city"]


def test_generated_id_control_with_label_or_name_is_kept() -> None:
    fields = _by_id(
        _extract(
            """
            <div><label for="1712345678-abc123">Portfolio URL</label><input type="text" id="1712345678-abc123"></div>
            <div><input type="text" id="1712345679-xyz789" name="website"></div>
            """
        )
    )
    assert list(fields) == ["1712345678-abc123", "1712345679-xyz789"]
    assert fields["1712345678-abc123"].label == "Portfolio URL"
    assert fields["1712345679-xyz789"].label == "Website"


def test_password_input_is_short_text() -> None:
    fields = _extract('<label for="pw">Account password</label><input type="password" id="pw">')
    assert fields[0].type is FieldType.SHORT_TEXT


def test_custom_dropdown_prompt_text_reads_as_empty() -> None:
    fields = _extract(
        """
        <div>
          <div id="loc" role="combobox" aria-label="Location" aria-controls="loc-list">Select One</div>
          <ul id="loc-list" role="listbox"><li role="option">Berlin</li><li role="option">Remote</li></ul>
        </div>
        <div>
          <div id="team" role="combobox" aria-label="Team" aria-controls="team-list">Team</div>
          <ul id="team-list" role="listbox"><li role="option">Web</li></ul>
        </div>
        """
    )
    assert [(f.id, f.value) for f in fields] == [("loc", ""), ("team", "")]


def test_custom_dropdown_value_comes_from_valuetext_or_selected_option() -> None:
    fields = _by_id(
        _extract(
            """
            <div>
              <div id="loc" role="combobox" aria-label="Location" aria-controls="loc-list"
                   aria-valuetext="Remote">Select One</div>
              <ul id="loc-list" role="listbox"><li role="option">Berlin</li><li role="option">Remote</li></ul>
            </div>
            <div>
              <div id="team" role="combobox" aria-label="Team" aria-controls="team-list">Choose a team</div>
              <ul id="team-list" role="listbox">
                <li role="option">Web</li>
                <li role="option" aria-selected="true">Data</li>
              </ul>
            </div>
            """
        )
    )
    assert fields["loc"].value == "Remote"
    assert fields["team"].value == "Data"


def test_custom_dropdown_without_listbox_falls_back_to_page_options() -> None:
    fields = _extract(
        """
        <div><label for="country">Country</label><input type="text" id="country" role="combobox"></div>
        <datalist id="countries"><option>Germany</option><option>France</option></datalist>
        """
    )
    assert [o.label for o in fields[0].options] == ["Germany", "France"]
