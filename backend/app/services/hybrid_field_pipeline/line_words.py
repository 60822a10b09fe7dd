"""
Line and word helpers shared by the label matcher and the row partitioner.

The layout service reports lines and words separately, without linking them.
Words are attached to a line geometrically; when a line has no word evidence
at all, word boxes are estimated from character positions in the line text.
"""

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

from .evidence import Direction, OcrPage, OcrTextLine, OcrWord
from .geometry import Box, union_boxes
from .label_text import detect_direction, edit_distance, fuzzy_threshold, mask_leaders, tokenize

logger = logging.getLogger(__name__)

# Horizontal slack (points) when deciding whether a word belongs to a line
LINE_MEMBERSHIP_TOLERANCE = 2.0

TOKEN_PATTERN = re.compile(r'\S+')


def line_direction(line: OcrTextLine) -> Direction:
    """Reading direction of a line from the majority script of its text."""
    return detect_direction(line.content)


def order_words(words: Sequence[OcrWord], direction: Direction) -> List[OcrWord]:
    """Sort words into reading order: descending x for rtl, ascending for ltr."""
    if direction == Direction.RTL:
        return sorted(words, key=lambda w: (-w.box.right, -w.box.x))
    return sorted(words, key=lambda w: (w.box.x, w.box.right))


def words_in_line(line: OcrTextLine, words: Sequence[OcrWord]) -> List[OcrWord]:
    """Words whose center falls inside the line box."""
    members = []
    for word in words:
        inside_x = line.box.x - LINE_MEMBERSHIP_TOLERANCE <= word.box.center_x <= line.box.right + LINE_MEMBERSHIP_TOLERANCE
        inside_y = line.box.y <= word.box.center_y <= line.box.top
        if inside_x and inside_y:
            members.append(word)
    return members


def estimate_words(line: OcrTextLine) -> List[OcrWord]:
    """
    Estimate word boxes from character offsets in the line text.

    Each character is assumed to take the same width; runs of spaces and
    fill-in leaders keep their width, so wide gaps between labels survive.
    Estimated words carry confidence 0.
    """
    content = line.content or ''
    n = len(content)
    if n == 0:
        return []

    direction = line_direction(line)
    char_width = line.box.width / n
    words = []
    for m in TOKEN_PATTERN.finditer(mask_leaders(content)):
        if direction == Direction.RTL:
            x_right = line.box.right - m.start() * char_width
            x_left = line.box.right - m.end() * char_width
        else:
            x_left = line.box.x + m.start() * char_width
            x_right = line.box.x + m.end() * char_width
        words.append(OcrWord(
            content=m.group(),
            box=Box(x_left, line.box.y, x_right - x_left, line.box.height),
            confidence=0.0
        ))
    return words


def line_words(line: OcrTextLine, page: OcrPage) -> Tuple[List[OcrWord], bool]:
    """
    Words of a line in reading order.

    Returns:
        Tuple of (ordered words, True when the boxes are estimated)
    """
    direction = line_direction(line)
    members = words_in_line(line, page.words)
    if members:
        return order_words(members, direction), False
    return order_words(estimate_words(line), direction), True


def _flatten_tokens(words: Sequence[OcrWord]) -> List[Tuple[int, str]]:
    flat = []
    for index, word in enumerate(words):
        for token in tokenize(word.content):
            flat.append((index, token))
    return flat


def find_word_run(
    words: Sequence[OcrWord],
    label_tokens: Sequence[str],
    claimed: Optional[Set[int]] = None
) -> Optional[List[int]]:
    """
    Find a contiguous run of words (in the given order) spelling the label.

    Words in `claimed` are never part of a run.

    Returns:
        Sorted word indices, or None
    """
    claimed = claimed or set()
    flat = _flatten_tokens(words)
    n = len(label_tokens)
    if n == 0:
        return None
    for start in range(len(flat) - n + 1):
        window = flat[start:start + n]
        if [token for _, token in window] != list(label_tokens):
            continue
        indices = sorted({index for index, _ in window})
        if claimed.intersection(indices):
            continue
        return indices
    return None


def find_fuzzy_word_run(
    words: Sequence[OcrWord],
    label_tokens: Sequence[str],
    ratio: float,
    claimed: Optional[Set[int]] = None
) -> Optional[Tuple[List[int], int]]:
    """
    Closest run of words to the label within the fuzzy edit-distance threshold.

    Windows of the label's token count and one token either side are tried.

    Returns:
        Tuple of (sorted word indices, edit distance), or None
    """
    claimed = claimed or set()
    flat = _flatten_tokens(words)
    label = ' '.join(label_tokens)
    if not label:
        return None
    threshold = fuzzy_threshold(label, ratio)

    best: Optional[Tuple[List[int], int]] = None
    n = len(label_tokens)
    for size in (n, n - 1, n + 1):
        if size < 1:
            continue
        for start in range(len(flat) - size + 1):
            window = flat[start:start + size]
            indices = sorted({index for index, _ in window})
            if claimed.intersection(indices):
                continue
            distance = edit_distance(' '.join(token for _, token in window), label)
            if distance > threshold:
                continue
            if best is None or distance < best[1]:
                best = (indices, distance)
    return best


def run_box(words: Sequence[OcrWord], indices: Sequence[int]) -> Optional[Box]:
    return union_boxes(words[i].box for i in indices)
