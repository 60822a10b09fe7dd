"""
Label Matcher
=============

Locates the OCR line (and word run) carrying each semantic field's label.

Strategies (tried in order, the first one with any candidate wins):
1. EXACT: the normalized label equals a normalized line, or appears inside it
   on token boundaries
2. TOKEN: a contiguous run of page words, in reading order, spells the label
   (covers labels the layout service split across or outside its lines)
3. FUZZY: edit distance of the label against same-length token windows of
   each line, below a threshold relative to label length

Tie-breaking between candidate lines:
- smaller edit distance
- geometric closeness to already-matched fields of the same rowGroup
  (then the same section)
- fewer earlier matches of the same label on that line
- whole-line equality over containment
- document order (top of page first)

Tradeoffs:
----------
1. Token-boundary containment rejects partial-word hits ("שם" inside "שמות")
   at the cost of missing labels glued to other text by the OCR
   - Mitigation: fill-in leaders ("Name:____", "Date......") are read as
     whitespace, so a label glued to its own input line still matches
2. The fuzzy threshold is relative to label length; very short labels
   (1-3 letters) always get a distance budget of 1
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .evidence import OcrPage, OcrTextLine, OcrWord, SemanticField
from .geometry import Box, union_boxes
from .label_text import (
    detect_direction,
    edit_distance,
    find_token_run,
    fuzzy_threshold,
    normalize_label,
    tokenize,
)
from .line_words import find_fuzzy_word_run, find_word_run, line_words, order_words
from .settings import FusionSettings

logger = logging.getLogger(__name__)


class MatchStrategy(str, Enum):
    EXACT = "exact"
    TOKEN = "token"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class LabelMatch:
    """Where a label was found on the page."""
    line: OcrTextLine
    words: Tuple[OcrWord, ...]
    strategy: MatchStrategy
    distance: int = 0
    estimated_words: bool = False

    @property
    def anchor_box(self) -> Box:
        """Box of the matched word run, or the whole line when no run is known."""
        return union_boxes(w.box for w in self.words) or self.line.box


@dataclass(frozen=True)
class _Candidate:
    line: OcrTextLine
    words: Tuple[OcrWord, ...]
    distance: int
    whole_line: bool
    estimated_words: bool

    @property
    def anchor_box(self) -> Box:
        return union_boxes(w.box for w in self.words) or self.line.box


Strategy = Callable[[Sequence[str], OcrPage], List[_Candidate]]


class LabelMatcher:
    """
    Matches semantic labels to OCR text.

    Stateless apart from its settings; matching context from earlier fields
    on the page is passed in explicitly.
    """

    def __init__(self, settings: Optional[FusionSettings] = None):
        self.settings = settings or FusionSettings()
        self.strategies: List[Tuple[MatchStrategy, Strategy]] = [
            (MatchStrategy.EXACT, self._exact_candidates),
            (MatchStrategy.TOKEN, self._token_candidates),
            (MatchStrategy.FUZZY, self._fuzzy_candidates),
        ]

    def match(
        self,
        field: SemanticField,
        page: OcrPage,
        matched: Sequence[Tuple[SemanticField, LabelMatch]] = ()
    ) -> Optional[LabelMatch]:
        """
        Find the OCR line and words for a field's label.

        Args:
            field: Semantic field to locate
            page: Normalized OCR page
            matched: Fields already matched on this page, in matching order

        Returns:
            LabelMatch, or None when no strategy produced a candidate
        """
        label_tokens = tokenize(field.label_text)
        if not label_tokens:
            logger.warning(f"Page {page.page_number}: empty label for {field.field_type.value} field")
            return None

        for strategy, find_candidates in self.strategies:
            candidates = find_candidates(label_tokens, page)
            if not candidates:
                continue

            best = self._break_tie(field, candidates, matched)
            logger.debug(
                f"Page {page.page_number}: {field.label_text!r} -> {best.line.content!r} "
                f"({strategy.value}, {len(candidates)} candidate(s), distance {best.distance})"
            )
            return LabelMatch(
                line=best.line,
                words=best.words,
                strategy=strategy,
                distance=best.distance,
                estimated_words=best.estimated_words
            )

        logger.debug(f"Page {page.page_number}: no OCR match for {field.label_text!r}")
        return None

    def locate_text(self, text: str, page: OcrPage) -> Optional[LabelMatch]:
        """Locate arbitrary page text (e.g. an unlabeled field's nearby text)."""
        tokens = tokenize(text)
        if not tokens:
            return None
        for strategy, find_candidates in self.strategies:
            candidates = find_candidates(tokens, page)
            if candidates:
                best = min(candidates, key=lambda c: (c.distance, not c.whole_line, -c.line.box.top, c.line.box.x))
                return LabelMatch(best.line, best.words, strategy, best.distance, best.estimated_words)
        return None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _exact_candidates(self, label_tokens: Sequence[str], page: OcrPage) -> List[_Candidate]:
        candidates = []
        for line in page.text_lines:
            line_tokens = tokenize(line.content)
            if find_token_run(line_tokens, label_tokens) is None:
                continue
            words, estimated = line_words(line, page)
            run = find_word_run(words, label_tokens)
            candidates.append(_Candidate(
                line=line,
                words=tuple(words[i] for i in run) if run else (),
                distance=0,
                whole_line=list(line_tokens) == list(label_tokens),
                estimated_words=estimated
            ))
        return candidates

    def _token_candidates(self, label_tokens: Sequence[str], page: OcrPage) -> List[_Candidate]:
        candidates = []
        for row in self._word_rows(page.words):
            direction = detect_direction(' '.join(w.content for w in row))
            ordered = order_words(row, direction)
            run = find_word_run(ordered, label_tokens)
            if not run:
                continue
            run_words = tuple(ordered[i] for i in run)
            line = self._enclosing_line(union_boxes(w.box for w in run_words), page) or OcrTextLine(
                content=' '.join(w.content for w in ordered),
                box=union_boxes(w.box for w in ordered)
            )
            candidates.append(_Candidate(
                line=line,
                words=run_words,
                distance=0,
                whole_line=len(run) == len(ordered),
                estimated_words=False
            ))
        return candidates

    def _fuzzy_candidates(self, label_tokens: Sequence[str], page: OcrPage) -> List[_Candidate]:
        label = ' '.join(label_tokens)
        threshold = fuzzy_threshold(label, self.settings.fuzzy_match_ratio)
        candidates = []
        for line in page.text_lines:
            line_tokens = tokenize(line.content)
            distance = self._best_window_distance(line_tokens, label_tokens)
            if distance is None or distance > threshold:
                continue
            words, estimated = line_words(line, page)
            found = find_fuzzy_word_run(words, label_tokens, self.settings.fuzzy_match_ratio)
            candidates.append(_Candidate(
                line=line,
                words=tuple(words[i] for i in found[0]) if found else (),
                distance=distance,
                whole_line=len(line_tokens) == len(label_tokens),
                estimated_words=estimated
            ))
        return candidates

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _best_window_distance(line_tokens: Sequence[str], label_tokens: Sequence[str]) -> Optional[int]:
        label = ' '.join(label_tokens)
        n = len(label_tokens)
        best = None
        for size in (n, n - 1, n + 1):
            if size < 1:
                continue
            for start in range(len(line_tokens) - size + 1):
                distance = edit_distance(' '.join(line_tokens[start:start + size]), label)
                if best is None or distance < best:
                    best = distance
        return best

    @staticmethod
    def _word_rows(words: Sequence[OcrWord]) -> List[List[OcrWord]]:
        """Group words into rows by vertical center, top of page first."""
        rows: List[List[OcrWord]] = []
        for word in sorted(words, key=lambda w: -w.box.center_y):
            for row in rows:
                if row[0].box.same_row(word.box, tolerance=max(row[0].box.height, word.box.height) / 2):
                    row.append(word)
                    break
            else:
                rows.append([word])
        return rows

    @staticmethod
    def _enclosing_line(box: Optional[Box], page: OcrPage) -> Optional[OcrTextLine]:
        if box is None:
            return None
        for line in page.text_lines:
            if line.box.contains_point(box.center_x, box.center_y):
                return line
        return None

    def _break_tie(
        self,
        field: SemanticField,
        candidates: List[_Candidate],
        matched: Sequence[Tuple[SemanticField, LabelMatch]]
    ) -> _Candidate:
        if len(candidates) == 1:
            return candidates[0]

        neighbors = [m.anchor_box for f, m in matched if field.row_group and f.row_group == field.row_group]
        if not neighbors:
            neighbors = [m.anchor_box for f, m in matched if field.section and f.section == field.section]

        label = normalize_label(field.label_text)
        prior = [m.line for f, m in matched if normalize_label(f.label_text) == label]

        def neighborhood_distance(candidate: _Candidate) -> float:
            if not neighbors:
                return 0.0
            return min(candidate.anchor_box.center_distance(n) for n in neighbors)

        return min(candidates, key=lambda c: (
            c.distance,
            neighborhood_distance(c),
            prior.count(c.line),
            not c.whole_line,
            -c.line.box.top,
            c.line.box.x
        ))
