"""
Shared fixtures: a one-page Hebrew agent-details form.

    y=780  פרטי הסוכן                          (title)
    y=700  שם הסוכן: ____  מס' הסוכן: ____     (row_1)
    y=650  עיר: ____  מיקוד: ____  רח': ____   (row_3)
    y=400  [ ] אישור תקנון                      (checkbox)
"""
import pytest

from app.services.hybrid_field_pipeline import FusionSettings, HybridFieldPipeline

from builders import mark, raw_page, semantic_field, semantic_page, text


@pytest.fixture
def settings():
    return FusionSettings()


@pytest.fixture
def pipeline(settings):
    return HybridFieldPipeline(settings)


@pytest.fixture
def agent_line_evidence():
    """Lines and words of the agent row."""
    lines = [text("שם הסוכן:     מס' הסוכן:", 300, 700, 210, 20)]
    words = [
        text("שם", 480, 700, 25, 20),
        text("הסוכן:", 445, 700, 30, 20),
        text("מס'", 370, 700, 25, 20),
        text("הסוכן:", 335, 700, 30, 20),
    ]
    return lines, words


@pytest.fixture
def address_line_evidence():
    lines = [text("עיר:    מיקוד:    רח':", 330, 650, 180, 20)]
    words = [
        text("עיר:", 485, 650, 25, 20),
        text("מיקוד:", 405, 650, 35, 20),
        text("רח':", 330, 650, 25, 20),
    ]
    return lines, words


@pytest.fixture
def checkbox_evidence():
    lines = [text("אישור תקנון", 420, 400, 100, 15)]
    words = [
        text("אישור", 470, 400, 50, 15),
        text("תקנון", 420, 400, 45, 15),
    ]
    marks = [mark(395, 400)]
    return lines, words, marks


@pytest.fixture
def sample_ocr_page(agent_line_evidence, address_line_evidence, checkbox_evidence):
    agent_lines, agent_words = agent_line_evidence
    address_lines, address_words = address_line_evidence
    checkbox_lines, checkbox_words, marks = checkbox_evidence
    title = [text("פרטי הסוכן", 420, 780, 90, 24)]
    return raw_page(
        lines=title + agent_lines + address_lines + checkbox_lines,
        words=agent_words + address_words + checkbox_words,
        marks=marks
    )


@pytest.fixture
def agent_fields():
    return [
        semantic_field("שם הסוכן:", "underline", row_group="row_1", section="פרטי הסוכן", required=True),
        semantic_field("מס' הסוכן:", "digit_boxes", "number", row_group="row_1", section="פרטי הסוכן"),
    ]


@pytest.fixture
def address_fields():
    return [
        semantic_field("עיר:", "underline", row_group="row_3", related_fields=("מיקוד", "רח'")),
        semantic_field("מיקוד:", "underline", "number", row_group="row_3", related_fields=("עיר", "רח'")),
        semantic_field("רח':", "underline", row_group="row_3", related_fields=("עיר", "מיקוד")),
    ]


@pytest.fixture
def checkbox_field():
    return semantic_field(
        "אישור תקנון", "selection_mark", "checkbox",
        has_visible_boundary=False, required=True
    )


@pytest.fixture
def sample_semantic_page(agent_fields, address_fields, checkbox_field):
    return semantic_page(fields=agent_fields + address_fields + [checkbox_field])
