import pytest

from app.services.hybrid_field_pipeline import (
    Box,
    DiagnosticKind,
    Direction,
    ExtractedField,
    FieldAssembler,
    FieldStyle,
    InputType,
    Provenance,
    RelativePosition,
    ResolvedField,
    Severity,
)
from app.services.hybrid_field_pipeline.field_assembler import clip_box, dominant_row, output_type, score

from builders import line, ocr_page


def resolved(label, box, provenance=Provenance.PARTITIONED, **kwargs):
    kwargs.setdefault('field_type', FieldStyle.UNDERLINE)
    kwargs.setdefault('input_type', InputType.TEXT)
    return ResolvedField(label=label, box=box, provenance=provenance, page_number=1, **kwargs)


def extracted(name, box):
    return ExtractedField(
        type="text", name=name, label=name, x=box.x, y=box.y, width=box.width, height=box.height,
        page_number=1, direction="ltr", required=False, confidence=0.8
    )


@pytest.fixture
def hebrew_page():
    return ocr_page(lines=[line("פרטי הסוכן", 420, 780, 90)])


def test_confidence_follows_provenance():
    scores = [score(p) for p in (
        Provenance.EXACT_LINE,
        Provenance.PARTITIONED,
        Provenance.SYNTHESIZED,
        Provenance.UNLABELED,
    )]

    assert scores == [1.0, 0.8, 0.6, 0.5]
    assert score(Provenance.FALLBACK_PLACEMENT) == 0.5


def test_penalties_lower_confidence_down_to_floor():
    assert score(Provenance.PARTITIONED, 2) == 0.6
    assert score(Provenance.EXACT_LINE, 3) == 0.7
    assert score(Provenance.UNLABELED, 10) == 0.1


def test_output_type():
    assert output_type(FieldStyle.SELECTION_MARK, InputType.TEXT) == "checkbox"
    assert output_type(FieldStyle.SELECTION_MARK, InputType.RADIO) == "radio"
    assert output_type(FieldStyle.BOX_WITH_TITLE, InputType.SIGNATURE) == "signature"
    assert output_type(FieldStyle.UNDERLINE, InputType.DATE) == "text"
    assert output_type(FieldStyle.DIGIT_BOXES, InputType.NUMBER) == "text"


def test_clip_box():
    assert clip_box(Box(580, 100, 40, 20), 595, 842) == Box(580, 100, 15, 20)
    assert clip_box(Box(600, 100, 40, 20), 595, 842) is None
    assert clip_box(Box(10, 10, 10, 10), 595, 842) == Box(10, 10, 10, 10)


def test_dominant_row_prefers_crowded_band():
    assert dominant_row([700, 701, 660], 8) == 700
    assert dominant_row([660, 700], 8) == 660


def test_names_collide_into_suffixes(settings, hebrew_page):
    fields, _ = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(300, 700, 100, 22)),
        resolved("טלפון:", Box(300, 600, 100, 22)),
        resolved("טלפון", Box(300, 500, 100, 22)),
        resolved("Policy Holder", Box(300, 400, 100, 22)),
    ], hebrew_page)

    assert [f.name for f in fields] == ["phone", "phone_2", "phone_3", "policy_holder"]


def test_hint_named_from_nearby_text(settings, hebrew_page):
    hint_field = resolved(
        "שם הסוכן", Box(447, 700, 120, 20), Provenance.UNLABELED,
        nearby_text="שם הסוכן", relative_position=RelativePosition.RIGHT
    )

    fields, _ = FieldAssembler(settings).assemble([hint_field], hebrew_page)

    assert fields[0].name == "agent_name_right"
    assert fields[0].direction == "rtl"
    assert fields[0].confidence == 0.5
    assert fields[0].source == "unlabeled"


def test_row_group_outlier_moves_onto_dominant_row(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("עיר:", Box(443, 700, 39, 22), row_group="row_3"),
        resolved("מיקוד:", Box(358, 701, 44, 22), row_group="row_3"),
        resolved("רח':", Box(200, 660, 120, 22), row_group="row_3",
                 segments=(Box(200, 660, 60, 22), Box(260, 660, 60, 22))),
    ], hebrew_page)

    by_name = {f.name: f for f in fields}
    assert by_name["street"].y == 700
    assert [s.y for s in by_name["street"].segments] == [700, 700]
    assert by_name["street"].confidence == 0.7
    assert by_name["city"].confidence == 0.8

    realigned = [d for d in diagnostics if d.kind == DiagnosticKind.ROW_GROUP_REALIGNED]
    assert len(realigned) == 1
    assert realigned[0].field_name == "street"

    ys = [f.y for f in fields]
    assert max(ys) - min(ys) <= settings.row_group_y_tolerance


def test_fuzzy_match_costs_confidence(settings, hebrew_page):
    fields, _ = FieldAssembler(settings).assemble(
        [resolved("שם המבטח", Box(300, 700, 100, 22), Provenance.EXACT_LINE, fuzzy=True)],
        hebrew_page
    )

    assert fields[0].confidence == 0.9


def test_boxes_are_clipped_or_dropped(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(580, 100, 40, 20)),
        resolved("פקס:", Box(600, 100, 40, 20)),
    ], hebrew_page)

    assert [f.name for f in fields] == ["phone"]
    assert fields[0].width == 15
    kinds = [(d.kind, d.severity) for d in diagnostics if d.kind == DiagnosticKind.OUT_OF_BOUNDS]
    assert (DiagnosticKind.OUT_OF_BOUNDS, Severity.INFO) in kinds
    assert (DiagnosticKind.OUT_OF_BOUNDS, Severity.WARNING) in kinds


def test_rtl_tab_order(settings, hebrew_page):
    fields, _ = FieldAssembler(settings).assemble([
        resolved("רח':", Box(30, 649, 297, 22)),
        resolved("שם הסוכן:", Box(398, 699, 44, 22)),
        resolved("עיר:", Box(443, 649, 39, 22)),
        resolved("מס' הסוכן:", Box(300, 699, 32, 22)),
        resolved("מיקוד:", Box(358, 651, 44, 22)),
    ], hebrew_page)

    assert [f.name for f in fields] == ["agent_name", "number", "city", "zip_code", "street"]
    assert [f.tab_index for f in fields] == [1, 2, 3, 4, 5]


def test_ltr_tab_order(settings):
    page = ocr_page(lines=[line("Customer details", 50, 780, 200)])

    fields, _ = FieldAssembler(settings).assemble([
        resolved("Phone", Box(300, 700, 100, 22)),
        resolved("Name", Box(100, 700, 100, 22)),
    ], page)

    assert FieldAssembler.page_direction(page) == Direction.LTR
    assert [f.name for f in fields] == ["name", "phone"]
    assert fields[0].direction == "ltr"


def test_weaker_overlapping_field_moves_below(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(300, 700, 100, 22)),
        resolved("פקס:", Box(320, 700, 100, 22), Provenance.FALLBACK_PLACEMENT),
    ], hebrew_page)

    assert [f.name for f in fields] == ["phone", "fax"]
    assert fields[0].y == 700
    assert fields[1].y == 673
    assert fields[1].x == 320

    adjusted = [d for d in diagnostics if d.kind == DiagnosticKind.OVERLAP_ADJUSTED]
    assert [(d.field_name, d.severity) for d in adjusted] == [("fax", Severity.WARNING)]
    assert DiagnosticKind.FIELD_OVERLAP not in [d.kind for d in diagnostics]
    low = [d for d in diagnostics if d.kind == DiagnosticKind.LOW_CONFIDENCE]
    assert [d.field_name for d in low] == ["fax"]


def test_nearly_coincident_weaker_field_is_dropped(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(300, 700, 100, 22)),
        resolved("פקס:", Box(302, 700, 100, 22), Provenance.UNLABELED),
    ], hebrew_page)

    assert [f.name for f in fields] == ["phone"]
    removed = [d for d in diagnostics if d.kind == DiagnosticKind.OVERLAP_REMOVED]
    assert [d.field_name for d in removed] == ["fax"]


def test_required_field_wins_when_confidence_is_similar(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(300, 700, 100, 22), segments=(Box(300, 700, 50, 22), Box(350, 700, 50, 22))),
        resolved("פקס:", Box(320, 700, 100, 22), required=True),
    ], hebrew_page)

    by_name = {f.name: f for f in fields}
    assert by_name["fax"].y == 700
    assert by_name["phone"].y == 673
    assert [s.y for s in by_name["phone"].segments] == [673, 673]
    assert [f.name for f in fields] == ["fax", "phone"]
    adjusted = [d for d in diagnostics if d.kind == DiagnosticKind.OVERLAP_ADJUSTED]
    assert [d.field_name for d in adjusted] == ["phone"]


def test_tied_overlap_is_flagged_on_both_fields(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(300, 700, 100, 22)),
        resolved("פקס:", Box(320, 700, 100, 22)),
    ], hebrew_page)

    assert [(f.name, f.y) for f in fields] == [("fax", 700), ("phone", 700)]
    flagged = [d for d in diagnostics if d.kind == DiagnosticKind.FIELD_OVERLAP]
    assert sorted(d.field_name for d in flagged) == ["fax", "phone"]
    assert all(d.severity == Severity.WARNING for d in flagged)


def test_overlap_at_page_bottom_is_flagged(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("טלפון:", Box(300, 10, 100, 22)),
        resolved("פקס:", Box(320, 10, 100, 22), Provenance.FALLBACK_PLACEMENT),
    ], hebrew_page)

    assert [f.y for f in fields] == [10, 10]
    flagged = [d for d in diagnostics if d.kind == DiagnosticKind.FIELD_OVERLAP]
    assert len(flagged) == 2
    assert "no room below" in flagged[0].message


def test_rows_follow_their_own_line_direction(settings, hebrew_page):
    fields, _ = FieldAssembler(settings).assemble([
        resolved("Name:", Box(100, 500, 100, 22), direction=Direction.LTR),
        resolved("City:", Box(300, 500, 100, 22), direction=Direction.LTR),
        resolved("טלפון:", Box(300, 700, 100, 22), direction=Direction.RTL),
        resolved("פקס:", Box(100, 700, 100, 22), direction=Direction.RTL),
    ], hebrew_page)

    assert FieldAssembler.page_direction(hebrew_page) == Direction.RTL
    assert [f.name for f in fields] == ["phone", "fax", "name", "city"]


def test_row_without_line_directions_uses_page_direction(settings):
    assembler = FieldAssembler(settings)
    left = extracted("left", Box(100, 500, 100, 22))
    right = extracted("right", Box(300, 500, 100, 22))

    rtl = assembler.order_fields([left, right], Direction.RTL)
    tied = assembler.order_fields(
        [left, right], Direction.LTR, {"left": Direction.RTL, "right": Direction.LTR}
    )

    assert [f.name for f in rtl] == ["right", "left"]
    assert [f.name for f in tied] == ["left", "right"]


def test_section_fields_stay_together(settings, hebrew_page):
    fields, diagnostics = FieldAssembler(settings).assemble([
        resolved("שם:", Box(300, 700, 100, 22), section="פרטים אישיים"),
        resolved("רחוב:", Box(300, 650, 100, 22), section="כתובת"),
        resolved("ת.ז:", Box(300, 600, 100, 22), section="פרטים אישיים"),
        resolved("הערות:", Box(300, 550, 100, 22)),
    ], hebrew_page)

    assert [f.name for f in fields] == ["name", "id_number", "street", "notes"]
    assert [f.tab_index for f in fields] == [1, 2, 3, 4]
    regrouped = [d for d in diagnostics if d.kind == DiagnosticKind.SECTION_REGROUPED]
    assert [d.label for d in regrouped] == ["פרטים אישיים"]
    assert regrouped[0].severity == Severity.INFO


def test_adjacent_sections_are_not_reported(settings, hebrew_page):
    _, diagnostics = FieldAssembler(settings).assemble([
        resolved("שם:", Box(300, 700, 100, 22), section="פרטים אישיים"),
        resolved("ת.ז:", Box(300, 650, 100, 22), section="פרטים אישיים"),
        resolved("רחוב:", Box(300, 600, 100, 22), section="כתובת"),
    ], hebrew_page)

    assert diagnostics == []


def test_to_dict_is_snake_case(settings, hebrew_page):
    fields, _ = FieldAssembler(settings).assemble(
        [resolved("שם הסוכן:", Box(398, 699, 44, 22), section="פרטי הסוכן", required=True)],
        hebrew_page
    )

    data = fields[0].to_dict()
    assert data['label'] == "שם הסוכן"
    assert data['section_name'] == "פרטי הסוכן"
    assert data['tab_index'] == 1
    assert data['required'] is True
    assert data['segments'] == []
