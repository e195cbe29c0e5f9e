from __future__ import annotations

import pytest

from core import ColumnKind, PageSnapshot, TemplateMarkers
from pipeline import build_job, diff, find_template, locate_region, normalize
from render.columns import column_key, parse_column, parse_columns
from render.template import parse_section, parse_sort, split_template_params
from utils.exceptions import MarkersNotFound, TemplateParseError


MARKERS = TemplateMarkers(start="Wikidata list", end="Wikidata list end")

PAGE = """Intro text.

{{Wikidata list
|sparql=SELECT ?item WHERE { ?item wdt:P31 wd:Q5 . OPTIONAL { ?item wdt:P18 ?img }}
|columns=label:Name,description,p569,P69/P582,?img:Image
|sort=P569
|sort_order=desc
|section=17
|links=red_only
|summary=itemnumber
|references= All
}}
old table
{{Wikidata list end}}

Footer."""


def test_parse_columns_classifies_every_kind() -> None:
    columns = parse_columns("number,label,label/de,alias/fr,description/de/en,item,qid,P31,P69/P582,P106/Q36180/P580,?dob,foo")

    assert [c.kind for c in columns] == [
        ColumnKind.NUMBER,
        ColumnKind.LABEL,
        ColumnKind.LABEL_LANG,
        ColumnKind.ALIAS_LANG,
        ColumnKind.DESCRIPTION,
        ColumnKind.ITEM,
        ColumnKind.QID,
        ColumnKind.PROPERTY,
        ColumnKind.PROPERTY_QUALIFIER,
        ColumnKind.PROPERTY_QUALIFIER_VALUE,
        ColumnKind.FIELD,
        ColumnKind.UNKNOWN,
    ]
    assert columns[4].args == ("de", "en")
    assert columns[9].args == ("P106", "Q36180", "P580")


def test_column_label_and_key() -> None:
    column = parse_column("p569:Born")
    assert column.kind == ColumnKind.PROPERTY
    assert column.args == ("P569",)
    assert column.has_label and column.label == "Born"
    assert column_key(column) == "p569"
    assert column_key(parse_column("P69/P582")) == "p69_p582"
    assert column_key(parse_column("?Dob")) == "dob"
    assert [c.kind for c in parse_columns("")] == [ColumnKind.ITEM]


def test_split_template_params_respects_nesting_and_quotes() -> None:
    params = split_template_params('SPARQL=SELECT ?x WHERE { ?x rdfs:label "a|b" }|row_template={{T|x}}|columns=a{{!}}b|junk')

    assert params["sparql"] == 'SELECT ?x WHERE { ?x rdfs:label "a|b" }'
    assert params["row_template"] == "{{T|x}}"
    assert params["columns"] == "a|b"
    assert "junk" not in params


def test_split_template_params_unclosed_quote_fails() -> None:
    with pytest.raises(TemplateParseError):
        split_template_params('sparql=SELECT "open|columns=item')


def test_sort_and_section_normalization() -> None:
    assert parse_sort("Label") == "label"
    assert parse_sort("family_name") == "family_name"
    assert parse_sort("p569") == "P569"
    assert parse_sort("?dob") == "?dob"
    assert parse_sort("nonsense here") is None
    assert parse_section("17") == "P17"
    assert parse_section("p31") == "P31"
    assert parse_section("@country") == "@country"
    assert parse_section("") is None


def test_build_job_reads_template() -> None:
    snapshot = PageSnapshot(title="List of people", text=PAGE, revision=77)

    job = build_job(snapshot, MARKERS, default_language="de")

    assert job.query.endswith("?img }}")
    assert [c.kind for c in job.columns] == [
        ColumnKind.LABEL,
        ColumnKind.DESCRIPTION,
        ColumnKind.PROPERTY,
        ColumnKind.PROPERTY_QUALIFIER,
        ColumnKind.FIELD,
    ]
    assert job.options.language == "de"
    assert job.options.sort == "P569"
    assert job.options.sort_descending is True
    assert job.options.section == "P17"
    assert job.options.links == "all"
    assert job.options.summary_itemnumber is True
    assert job.options.references is True
    assert job.base_revision == 77


def test_build_job_errors() -> None:
    with pytest.raises(MarkersNotFound):
        build_job(PageSnapshot(title="Plain", text="no list here"), MARKERS)
    with pytest.raises(TemplateParseError):
        build_job(PageSnapshot(title="Empty", text="{{Wikidata list|columns=item}}\n{{Wikidata list end}}"), MARKERS)


def test_marker_matching_is_mediawiki_like() -> None:
    text = "{{wikidata_list |sparql=x}} {{Wikidata list end}}"
    start = find_template(text, "Wikidata list")
    assert start is not None and start[0] == 0
    # the end marker never matches as the start marker
    assert find_template("{{Wikidata list end}}", "Wikidata list") is None
    with pytest.raises(MarkersNotFound):
        find_template("{{Wikidata list|sparql={ ?x }", "Wikidata list")


def test_locate_region_spans_between_markers() -> None:
    start, end = locate_region(PAGE, MARKERS.start, MARKERS.end)
    assert PAGE[start:end] == "\nold table\n"


def test_diff_returns_no_change_for_identical_region() -> None:
    decision = diff(PAGE, "old table", MARKERS.start, MARKERS.end)
    assert not decision.changed

    decision = diff(PAGE.replace("old table\n", "old table   \r\n"), "old table\n", MARKERS.start, MARKERS.end)
    assert not decision.changed


def test_diff_replaces_only_managed_region() -> None:
    decision = diff(PAGE, "new table", MARKERS.start, MARKERS.end)

    assert decision.changed
    before, after = PAGE.split("old table")
    assert decision.new_text == before + "new table" + after
    assert decision.new_text.startswith("Intro text.")
    assert decision.new_text.endswith("{{Wikidata list end}}\n\nFooter.")

    # applying the rendered text makes the next diff a no-op
    assert not diff(decision.new_text, "new table", MARKERS.start, MARKERS.end).changed


def test_diff_requires_end_marker() -> None:
    with pytest.raises(MarkersNotFound):
        diff("{{Wikidata list|sparql=x}}\nno end", "table", MARKERS.start, MARKERS.end)


def test_normalize_line_endings_and_trailing_space() -> None:
    assert normalize("\r\na  \r\nb\n\n") == "a\nb"
