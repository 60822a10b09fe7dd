"""
Label text utilities: normalization, script direction, similarity and
field naming for Hebrew/English form labels.
"""
import logging
import re
import unicodedata
from typing import Dict, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from .evidence import Direction

logger = logging.getLogger(__name__)

# Trailing punctuation that OCR and the semantic service disagree on:
# colon, ASCII quotes, geresh, gershayim, sof pasuq
LABEL_EDGE_MARKS = ':"\'׳״׃’”'

# Hebrew points and cantillation (niqqud), excluding maqaf (U+05BE)
NIQQUD_PATTERN = re.compile(r'[\u0591-\u05BD\u05BF\u05C1\u05C2\u05C4\u05C5\u05C7]')
WHITESPACE_PATTERN = re.compile(r'\s+')

# Fill-in leaders printed after a label: underscores, dot runs, ellipses
LEADER_PATTERN = re.compile(r'_+|\.{2,}|\u2026+')

RTL_RANGES: Tuple[Tuple[int, int], ...] = (
    (0x0590, 0x05FF),  # Hebrew
    (0x0600, 0x06FF),  # Arabic
    (0x0750, 0x077F),  # Arabic Supplement
    (0x08A0, 0x08FF),  # Arabic Extended-A
    (0xFB1D, 0xFDFF),  # Hebrew/Arabic presentation forms
    (0xFE70, 0xFEFF),  # Arabic presentation forms B
)

# Hebrew labels commonly found on Israeli forms, mapped to field names.
# Longest matching key wins, so 'שם הסוכן' beats 'שם'.
HEBREW_FIELD_NAMES: Dict[str, str] = {
    'שם': 'name',
    'שם מלא': 'full_name',
    'שם פרטי': 'first_name',
    'שם משפחה': 'last_name',
    'שם הלקוח': 'customer_name',
    'שם הסוכן': 'agent_name',
    'כתובת': 'address',
    'כתובת העסק': 'business_address',
    'עיר': 'city',
    'מיקוד': 'zip_code',
    'רחוב': 'street',
    "רח'": 'street',
    'טלפון': 'phone',
    'נייד': 'mobile',
    'פקס': 'fax',
    'ת.ז': 'id_number',
    'ת.ז.': 'id_number',
    'תאריך': 'date',
    'חתימה': 'signature',
    'איש קשר': 'contact_person',
    'הערות': 'notes',
    'מספר': 'number',
    "מס'": 'number',
    'חשבון': 'account',
    'בנק': 'bank',
    'סניף': 'branch',
    'פרטי': 'first_name',
    'משפחה': 'last_name',
    'דוא"ל': 'email',
    'E-mail': 'email',
}

HEBREW_TRANSLITERATION: Dict[str, str] = {
    'א': 'a', 'ב': 'b', 'ג': 'g', 'ד': 'd', 'ה': 'h', 'ו': 'v',
    'ז': 'z', 'ח': 'ch', 'ט': 't', 'י': 'y', 'כ': 'k', 'ך': 'k',
    'ל': 'l', 'מ': 'm', 'ם': 'm', 'נ': 'n', 'ן': 'n', 'ס': 's',
    'ע': 'a', 'פ': 'p', 'ף': 'f', 'צ': 'ts', 'ץ': 'ts', 'ק': 'k',
    'ר': 'r', 'ש': 'sh', 'ת': 't',
}


def clean_label(text: str) -> str:
    """Display form of a label: trimmed, single-spaced, trailing colons removed."""
    text = WHITESPACE_PATTERN.sub(' ', unicodedata.normalize('NFC', text or '')).strip()
    return text.rstrip(': ׃').strip()


def normalize_label(text: str) -> str:
    """
    Canonical form used for matching.

    NFC, niqqud removed, whitespace collapsed, trailing colons/quotes/gershayim
    stripped, case folded.
    """
    return ' '.join(tokenize(text))


def normalize_token(token: str) -> str:
    token = unicodedata.normalize('NFC', token)
    token = NIQQUD_PATTERN.sub('', token)
    return token.strip(LABEL_EDGE_MARKS).casefold()


def mask_leaders(text: str) -> str:
    """Replace fill-in leaders with spaces, keeping character offsets."""
    return LEADER_PATTERN.sub(lambda m: ' ' * len(m.group()), text)


def tokenize(text: str) -> List[str]:
    """Split text into normalized, non-empty tokens."""
    text = unicodedata.normalize('NFC', text or '')
    text = mask_leaders(text)
    tokens = (normalize_token(t) for t in WHITESPACE_PATTERN.split(text))
    return [t for t in tokens if t]


def find_token_run(haystack: Sequence[str], needle: Sequence[str], start: int = 0) -> Optional[int]:
    """Index of the first contiguous occurrence of needle in haystack."""
    if not needle:
        return None
    n = len(needle)
    for i in range(start, len(haystack) - n + 1):
        if list(haystack[i:i + n]) == list(needle):
            return i
    return None


def is_rtl_char(ch: str) -> bool:
    code = ord(ch)
    return any(lo <= code <= hi for lo, hi in RTL_RANGES)


def detect_direction(text: str) -> Direction:
    """
    Majority script of the letters in text.

    Hebrew/Arabic majority is rtl; everything else (including text without
    letters) is ltr.
    """
    rtl = 0
    ltr = 0
    for ch in text or '':
        if not ch.isalpha():
            continue
        if is_rtl_char(ch):
            rtl += 1
        else:
            ltr += 1
    return Direction.RTL if rtl > ltr else Direction.LTR


def text_similarity(a: str, b: str) -> float:
    """
    Hebrew-aware similarity score between two label strings (0-1).

    Exact 1.0, niqqud-insensitive 0.95, containment 0.9, niqqud-insensitive
    containment 0.85, otherwise 0.
    """
    clean_a = clean_label(a).rstrip(LABEL_EDGE_MARKS)
    clean_b = clean_label(b).rstrip(LABEL_EDGE_MARKS)

    if clean_a == '' or clean_b == '':
        return 1.0 if clean_a == clean_b else 0.0

    if clean_a == clean_b:
        return 1.0

    norm_a = normalize_label(a)
    norm_b = normalize_label(b)
    if norm_a == norm_b:
        return 0.95
    if clean_a in clean_b or clean_b in clean_a:
        return 0.9
    if norm_a and norm_b and (norm_a in norm_b or norm_b in norm_a):
        return 0.85
    return 0.0


def edit_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def fuzzy_threshold(label: str, ratio: float) -> int:
    """Largest edit distance still accepted for a label of this length."""
    return max(1, int(len(label) * ratio))


def _dictionary_name(tokens: List[str]) -> Optional[str]:
    best: Optional[Tuple[int, int, str]] = None
    for key, name in HEBREW_FIELD_NAMES.items():
        key_tokens = tokenize(key)
        if find_token_run(tokens, key_tokens) is None:
            continue
        rank = (len(key_tokens), len(''.join(key_tokens)))
        if best is None or rank > best[:2]:
            best = (rank[0], rank[1], name)
    return best[2] if best else None


def transliterate(text: str) -> str:
    """ASCII approximation of text (Hebrew letters mapped, Latin accents dropped)."""
    chars = []
    for ch in unicodedata.normalize('NFKD', text):
        if unicodedata.combining(ch):
            continue
        if ch in HEBREW_TRANSLITERATION:
            chars.append(HEBREW_TRANSLITERATION[ch])
        else:
            chars.append(ch)
    return ''.join(chars).encode('ascii', 'ignore').decode('ascii')


def slugify(text: str) -> str:
    slug = re.sub(r'[^a-z0-9]+', '_', transliterate(text).lower())
    return slug.strip('_')


def field_name_for(label: str, index: int) -> str:
    """
    Stable field name for a label.

    Known Hebrew labels map to English names; other labels become an ASCII
    slug; labels with nothing usable become field_<n>.
    """
    tokens = tokenize(label)
    name = _dictionary_name(tokens)
    if name:
        return name

    slug = slugify(clean_label(label))
    if slug:
        return slug

    logger.debug(f"No usable name for label {label!r}, using positional name")
    return f"field_{index + 1}"
