import pytest

from app.services.hybrid_field_pipeline.evidence import Direction
from app.services.hybrid_field_pipeline.label_text import (
    clean_label,
    detect_direction,
    field_name_for,
    fuzzy_threshold,
    mask_leaders,
    normalize_label,
    slugify,
    text_similarity,
    tokenize,
)


def test_normalize_label_strips_niqqud_and_edge_marks():
    assert normalize_label("שָׁלוֹם:") == "שלום"
    assert normalize_label("מס'") == "מס"
    assert normalize_label("  Full   Name: ") == "full name"


def test_tokenize_drops_punctuation_only_tokens():
    assert tokenize("שם   :  הסוכן") == ["שם", "הסוכן"]
    assert tokenize("") == []


def test_tokenize_reads_fill_in_leaders_as_spaces():
    assert tokenize("Name:__________") == ["name"]
    assert tokenize("תאריך......חתימה") == ["תאריך", "חתימה"]
    assert tokenize("הערות…") == ["הערות"]
    assert tokenize("ת.ז.") == ["ת.ז."]
    assert len(mask_leaders("Name:____")) == len("Name:____")


def test_clean_label_keeps_inner_punctuation():
    assert clean_label("  ת.ז.  מבוטח: ") == "ת.ז. מבוטח"


@pytest.mark.parametrize("text, expected", [
    ("שם הסוכן", Direction.RTL),
    ("Agent name", Direction.LTR),
    ("12/05/2024", Direction.LTR),
    ("שם full", Direction.LTR),
    ("טלפון: 03", Direction.RTL),
])
def test_detect_direction_by_majority_script(text, expected):
    assert detect_direction(text) == expected


def test_text_similarity_levels():
    assert text_similarity("שם הסוכן:", "שם הסוכן") == 1.0
    assert text_similarity("שָׁם", "שם") == 0.95
    assert text_similarity("שם", "שם הסוכן") == 0.9
    assert text_similarity("עיר", "טלפון") == 0.0


def test_fuzzy_threshold_never_below_one():
    assert fuzzy_threshold("ab", 0.25) == 1
    assert fuzzy_threshold("abcdefghij", 0.25) == 2


def test_field_name_prefers_longest_dictionary_entry():
    assert field_name_for("שם הסוכן:", 0) == "agent_name"
    assert field_name_for("שם:", 0) == "name"
    assert field_name_for("מס' הסוכן:", 1) == "number"
    assert field_name_for("רח':", 2) == "street"


def test_field_name_falls_back_to_slug_then_position():
    assert field_name_for("Policy Holder", 0) == "policy_holder"
    assert field_name_for("גובה", 0) == "gvbh"
    assert field_name_for(":::", 4) == "field_5"


def test_slugify_transliterates_hebrew():
    assert slugify("חברה בע\"מ") == "chbrh_ba_m"
