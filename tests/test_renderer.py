from __future__ import annotations

import hashlib
from typing import Dict, List, Optional

from config import RenderSettings
from config.settings import LocationRegion
from core import (
    DataValue,
    Entity,
    Job,
    ListOptions,
    QueryResult,
    Rank,
    Snak,
    SparqlValue,
    Statement,
    TemplateMarkers,
    ValueKind,
)
from render import Renderer, render_table
from render.cells import format_time
from render.columns import parse_columns
from render.entities import referenced_entity_ids


MARKERS = TemplateMarkers(start="Wikidata list", end="Wikidata list end")


def _build_job(columns: str, **options) -> Job:
    return Job(
        page="List of things",
        query="SELECT ?item WHERE {}",
        columns=tuple(parse_columns(columns)),
        options=ListOptions(**options),
        markers=MARKERS,
    )


def _result(ids: List[str], extra: Optional[List[Dict[str, SparqlValue]]] = None, variables: Optional[List[str]] = None) -> QueryResult:
    rows = [{"item": SparqlValue(kind=ValueKind.ENTITY, value=i)} for i in ids]
    return QueryResult(variables=variables or ["item"], rows=rows + list(extra or []))


def _statement(prop: str, value: DataValue, *, datatype: str = "", rank: Rank = Rank.NORMAL, qualifiers=None) -> Statement:
    return Statement(
        property=prop,
        rank=rank,
        main=Snak(property=prop, datatype=datatype, value=value),
        qualifiers=qualifiers or {},
    )


def _item(prop: str, target: str, **kwargs) -> Statement:
    return _statement(prop, DataValue(kind="entity", text=target), datatype="wikibase-item", **kwargs)


def _entity(entity_id: str, label: str = "", *statements: Statement, **kwargs) -> Entity:
    grouped: Dict[str, List[Statement]] = {}
    for statement in statements:
        grouped.setdefault(statement.property, []).append(statement)
    labels = {"en": label} if label else {}
    return Entity(id=entity_id, labels=labels, statements=grouped, **kwargs)


def _index(entities: List[Entity]) -> Dict[str, Entity]:
    return {entity.id: entity for entity in entities}


def test_basic_table_layout() -> None:
    entities = _index(
        [
            _entity("Q1", "Alpha", descriptions={"en": "it's <b>"}, sitelinks={"enwiki": "Alpha (band)"}),
            _entity("Q2", "Beta"),
        ]
    )
    table = render_table(_build_job("number,item,label,description"), _result(["Q1", "Q2"]), entities)

    assert table.text == (
        "{| class='wikitable sortable' style='width:100%'\n"
        "! number\n! item\n! label\n! description\n"
        "|-\n"
        "| style='text-align:right'| 1\n| [[:d:Q1|Q1]]\n| [[Alpha (band)|Alpha]]\n| it&#39;s &lt;b>\n"
        "|-\n"
        "| style='text-align:right'| 2\n| [[:d:Q2|Q2]]\n| ''[[:d:Q2|Beta]]''\n| \n"
        "|}"
    )
    assert table.row_count == 2
    assert table.warnings == []


def test_rendering_is_deterministic() -> None:
    entities = [_entity("Q1", "Alpha", _item("P31", "Q5")), _entity("Q2", "Beta"), _entity("Q5", "human")]
    job = _build_job("label,P31,qid", sort="label")
    result = _result(["Q2", "Q1"])

    first = render_table(job, result, _index(entities))
    second = render_table(job, result, _index(list(reversed(entities))))

    assert first.text == second.text


def test_preferred_statements_hide_normal_ones() -> None:
    population = [
        _statement("P1082", DataValue(kind="quantity", text="100"), datatype="quantity"),
        _statement("P1082", DataValue(kind="quantity", text="150"), datatype="quantity"),
        _statement("P1082", DataValue(kind="quantity", text="200"), datatype="quantity", rank=Rank.PREFERRED),
    ]
    entities = _index([_entity("Q1", "Town", *population)])
    job = _build_job("P1082:Population")

    preferred = render_table(job, _result(["Q1"]), entities)
    everything = render_table(job, _result(["Q1"]), entities, settings=RenderSettings(prefer_preferred=False))

    assert "| 200\n" in preferred.text + "\n"
    assert "| 100" not in preferred.text
    assert "150" not in preferred.text
    assert "| 100<br/>150<br/>200" in everything.text
    assert "! Population" in preferred.text


def test_location_uses_first_matching_region() -> None:
    settings = RenderSettings(
        location_templates={
            "default": "{{Coord|$LAT$|$LON$}}",
            "eu": "{{Coord|$LAT$|$LON$|region:$REGION$|$ITEM$}}",
        },
        regions=[
            LocationRegion(name="eu", lat_min=35, lat_max=70, lon_min=-10, lon_max=40),
            LocationRegion(name="world", lat_min=-90, lat_max=90, lon_min=-180, lon_max=180),
        ],
    )

    def _coord(lat: float, lon: float) -> Statement:
        return _statement("P625", DataValue(kind="coordinate", latitude=lat, longitude=lon), datatype="globe-coordinate")

    entities = _index([_entity("Q1", "Berlin", _coord(52.5, 13.4)), _entity("Q2", "Somewhere", _coord(10.0, 100.0))])
    table = render_table(_build_job("P625"), _result(["Q1", "Q2"]), entities, settings=settings)

    assert "{{Coord|52.5|13.4|region:eu|Q1}}" in table.text
    # "world" has no template of its own, so the default applies
    assert "{{Coord|10|100}}" in table.text


def test_shadow_images_are_rendered_as_absent() -> None:
    def _image(name: str) -> Statement:
        return _statement("P18", DataValue(kind="string", text=name), datatype="commonsMedia")

    entities = _index([_entity("Q1", "A", _image("Secret.jpg")), _entity("Q2", "B", _image("Ok photo.jpg"))])
    settings = RenderSettings(shadow_images=["Secret.jpg"])

    table = render_table(_build_job("P18", thumb=96), _result(["Q1", "Q2"]), entities, settings=settings)

    assert "Secret.jpg" not in table.text
    assert "[[File:Ok photo.jpg|center|96px]]" in table.text
    assert any("Secret.jpg" in warning for warning in table.warnings)


def _order(text: str, ids: List[str]) -> List[str]:
    return sorted(ids, key=lambda i: text.index(f"| {i}\n"))


def test_sort_by_label_and_descending() -> None:
    entities = _index([_entity("Q3", "Charlie"), _entity("Q1", "Alpha"), _entity("Q2", "Bravo")])
    ids = ["Q3", "Q1", "Q2"]

    ascending = render_table(_build_job("qid,label", sort="label"), _result(ids), entities)
    descending = render_table(_build_job("qid,label", sort="label", sort_descending=True), _result(ids), entities)

    assert _order(ascending.text, ids) == ["Q1", "Q2", "Q3"]
    assert _order(descending.text, ids) == ["Q3", "Q2", "Q1"]


def test_sort_by_quantity_property_is_numeric() -> None:
    def _pop(value: str) -> Statement:
        return _statement("P1082", DataValue(kind="quantity", text=value), datatype="quantity")

    entities = _index(
        [
            _entity("Q1", "A", _pop("100")),
            _entity("Q2", "B", _pop("9")),
            _entity("Q3", "C", _pop("10")),
            _entity("P1082", "population", datatype="quantity"),
        ]
    )
    table = render_table(_build_job("qid,label", sort="P1082"), _result(["Q1", "Q2", "Q3"]), entities)

    assert _order(table.text, ["Q1", "Q2", "Q3"]) == ["Q2", "Q3", "Q1"]


def test_sort_ties_break_on_numeric_id() -> None:
    entities = _index([_entity("Q10", "Same"), _entity("Q9", "Same")])
    table = render_table(_build_job("qid", sort="label"), _result(["Q10", "Q9"]), entities)
    assert _order(table.text, ["Q10", "Q9"]) == ["Q9", "Q10"]


def test_sections_group_rows_and_collect_misc() -> None:
    entities = _index(
        [
            _entity("Q1", "Ann", _item("P31", "Q5")),
            _entity("Q2", "Bob", _item("P31", "Q5")),
            _entity("Q3", "Tom", _item("P31", "Q6")),
            _entity("Q4", "Rock"),
            _entity("Q5", "human"),
            _entity("Q6", "cat"),
        ]
    )
    table = render_table(_build_job("number,qid", section="P31"), _result(["Q1", "Q3", "Q2", "Q4"]), entities)

    human, misc = table.text.index("== human =="), table.text.index("== Misc ==")
    assert human < misc
    assert "== cat ==" not in table.text
    assert human < table.text.index("| Q1\n") < table.text.index("| Q2\n") < misc
    assert misc < table.text.index("| Q3\n") and misc < table.text.index("| Q4\n")
    # numbering restarts per section
    assert table.text.count("style='text-align:right'| 1") == 2
    assert table.row_count == 4


def test_row_template_output() -> None:
    birth = _statement(
        "P569",
        DataValue(kind="time", text="+1952-03-11T00:00:00Z", precision=11),
        datatype="time",
    )
    entities = _index([_entity("Q1", "Alpha", birth)])

    table = render_table(_build_job("label:name,P569", row_template="Row", skip_table=True), _result(["Q1"]), entities)

    assert table.text == "{{Row\n| label = ''[[:d:Q1|Alpha]]''\n| p569 = 1952-03-11\n}}"


def test_header_template_replaces_table_header() -> None:
    entities = _index([_entity("Q1", "Alpha")])
    table = render_table(_build_job("label", header_template="Head", row_template="Row"), _result(["Q1"]), entities)

    assert table.text.startswith("{{Head}}\n{{Row\n")
    assert table.text.endswith("\n|}")


def test_summary_item_number() -> None:
    entities = _index([_entity("Q1", "A"), _entity("Q2", "B")])
    table = render_table(_build_job("qid", summary_itemnumber=True), _result(["Q1", "Q2"]), entities)
    assert table.text.endswith("\n----\n&sum; 2 items.")


def test_rows_without_item_are_skipped_with_warning() -> None:
    bare = {"item": SparqlValue(kind=ValueKind.LITERAL, value="not an item")}
    table = render_table(_build_job("label"), _result(["Q1"], extra=[bare]), _index([_entity("Q1", "A")]))

    assert table.row_count == 1
    assert any(warning.startswith("MalformedRow") for warning in table.warnings)


def test_one_row_per_item_merges_field_values() -> None:
    rows = [
        {"item": SparqlValue(kind=ValueKind.ENTITY, value="Q1"), "name": SparqlValue(kind=ValueKind.LITERAL, value="a")},
        {"item": SparqlValue(kind=ValueKind.ENTITY, value="Q1"), "name": SparqlValue(kind=ValueKind.LITERAL, value="b")},
    ]
    result = QueryResult(variables=["item", "name"], rows=rows)

    merged = render_table(_build_job("qid,?name"), result, {})
    split = render_table(_build_job("qid,?name", one_row_per_item=False), result, {})

    assert merged.row_count == 1
    assert "| a<br/>b" in merged.text
    assert split.row_count == 2


def test_undeclared_field_column_warns() -> None:
    table = render_table(_build_job("qid,?missing"), _result(["Q1"]), {})
    assert any("?missing" in warning for warning in table.warnings)


def test_property_qualifier_cell() -> None:
    end = Snak(property="P582", datatype="time", value=DataValue(kind="time", text="+1974-00-00T00:00:00Z", precision=9))
    school = _item("P69", "Q100", qualifiers={"P582": [end]})
    entities = _index([_entity("Q1", "Douglas", school), _entity("Q100", "Brentwood School")])

    table = render_table(_build_job("P69/P582"), _result(["Q1"]), entities)

    assert "| ''[[:d:Q100|Brentwood School]]'' — 1974" in table.text


def test_wdedit_adds_cell_classes() -> None:
    entities = _index([_entity("Q1", "Alpha", descriptions={"en": "first"})])
    table = render_table(_build_job("label,description", wdedit=True), _result(["Q1"]), entities)

    assert "|class='wd_label'| ''[[:d:Q1|Alpha]]''" in table.text
    assert "|class='wd_desc'| first" in table.text


def test_links_on_wikidata_are_not_prefixed() -> None:
    renderer = Renderer(RenderSettings(), wiki_id="wikidatawiki")
    table = renderer.render(_build_job("label"), _result(["Q1"]), _index([_entity("Q1", "Alpha")]))
    assert "| [[Q1|Alpha]]" in table.text


def test_empty_result_still_renders_header() -> None:
    table = render_table(_build_job("qid"), _result([]), {})
    assert table.text == "{| class='wikitable sortable' style='width:100%'\n! qid\n\n|}"
    assert table.row_count == 0


def test_format_time_precisions() -> None:
    assert format_time("+1952-03-11T00:00:00Z", 11) == "1952-03-11"
    assert format_time("+1952-03-11T00:00:00Z", 10) == "1952-03"
    assert format_time("+1952-03-11T00:00:00Z", 9) == "1952"
    assert format_time("+1952-00-00T00:00:00Z", 8) == "1950s"
    assert format_time("+1801-00-00T00:00:00Z", 7) == "19th century"
    assert format_time("+1500-00-00T00:00:00Z", 6) == "2nd millennium"
    assert format_time("-0500-00-00T00:00:00Z", 7) == "-5th century"
    assert format_time("garbage", 11) is None


def test_redirected_item_renders_target_label_under_requested_id() -> None:
    # the cache keys a redirected entity by the id the query returned
    entities = {"Q1": Entity(id="Q2", labels={"en": "Target"})}

    table = render_table(_build_job("label"), _result(["Q1"]), entities)

    assert "| ''[[:d:Q1|Target]]''" in table.text
    assert "Q2" not in table.text


def test_label_cell_honors_links_option_with_local_sitelink() -> None:
    entities = _index([_entity("Q1", "Alpha", sitelinks={"enwiki": "Alpha (band)"})])

    as_text = render_table(_build_job("label", links="text"), _result(["Q1"]), entities)
    reasonator = render_table(_build_job("label", links="reasonator"), _result(["Q1"]), entities)

    assert as_text.text.endswith("|-\n| Alpha\n|}")
    assert "[https://reasonator.toolforge.org/?q=Q1 Alpha]" in reasonator.text
    assert "Alpha (band)" not in as_text.text + reasonator.text


def _census_reference() -> List[Snak]:
    return [
        Snak(property="P854", datatype="url", value=DataValue(kind="string", text="https://example.org/census")),
        Snak(property="P1476", datatype="monolingualtext", value=DataValue(kind="monolingual", text="Census 2020", language="en")),
        Snak(property="P813", datatype="time", value=DataValue(kind="time", text="+2020-05-01T00:00:00Z", precision=11)),
        Snak(property="P248", datatype="wikibase-item", value=DataValue(kind="entity", text="Q7")),
    ]


def _referenced_population(entity_id: str, references: List[List[Snak]]) -> Entity:
    statement = Statement(
        property="P1082",
        main=Snak(property="P1082", datatype="quantity", value=DataValue(kind="quantity", text="1234")),
        references=references,
    )
    return Entity(id=entity_id, labels={"en": f"Town {entity_id}"}, statements={"P1082": [statement]})


def test_references_render_as_named_footnotes() -> None:
    url_only = [Snak(property="P854", datatype="url", value=DataValue(kind="string", text="https://example.org/a"))]
    entities = _index(
        [
            _referenced_population("Q1", [_census_reference()]),
            _referenced_population("Q2", [_census_reference(), url_only]),
            _entity("Q7", "Census Bureau"),
        ]
    )

    table = render_table(_build_job("P1082", references=True), _result(["Q1", "Q2"]), entities)

    cite = "{{cite web|url=https://example.org/census|title=Census 2020|website=''[[:d:Q7|Census Bureau]]''|access-date=2020-05-01}}"
    name = "ref_" + hashlib.md5(cite.encode("utf-8")).hexdigest()
    url_name = "ref_" + hashlib.md5(b"https://example.org/a").hexdigest()
    assert f'| 1234<ref name="{name}">{cite}</ref>\n' in table.text
    assert f'| 1234<ref name="{name}" /><ref name="{url_name}">https://example.org/a</ref>\n' in table.text


def test_references_are_omitted_unless_requested() -> None:
    entities = _index([_referenced_population("Q1", [_census_reference()]), _entity("Q7", "Census Bureau")])

    table = render_table(_build_job("P1082"), _result(["Q1"]), entities)

    assert "<ref" not in table.text
    assert "| 1234\n" in table.text


def test_stated_in_sources_join_the_second_resolution_wave() -> None:
    entities = _index([_referenced_population("Q1", [_census_reference()])])

    with_refs = referenced_entity_ids(_build_job("P1082", references=True), ["Q1"], entities)
    without = referenced_entity_ids(_build_job("P1082"), ["Q1"], entities)

    assert with_refs == ["Q7"]
    assert without == []
