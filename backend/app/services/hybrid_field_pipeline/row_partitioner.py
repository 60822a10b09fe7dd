"""
Row Partitioner
===============

Splits a line that carries several semantic fields into ordered,
non-overlapping word clusters, one per field.

Dense bilingual/Hebrew forms put two or three labels on one physical line
("שם הסוכן: ____  מס' הסוכן: ____"). The layout service reports that as a
single line, so the line must be cut between the labels before any input
area can be placed.

Algorithm:
----------
1. Order the line's words by reading direction (rtl: descending x)
2. Claim each field's label run, longest labels first, so a short label
   never steals words from a longer one; runs are never shared
3. Every other word joins the nearest preceding anchor in reading order;
   words before the first anchor join the physically nearest cluster
4. Clusters are returned in reading order

Fields whose label cannot be located inside the line get no cluster and are
left to the resolver fallback.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .diagnostics import Diagnostic, DiagnosticKind, Severity
from .evidence import Direction, OcrTextLine, OcrWord, SemanticField
from .geometry import Box, union_boxes
from .label_text import normalize_label, tokenize
from .line_words import find_fuzzy_word_run, find_word_run, line_direction, order_words
from .settings import FusionSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WordCluster:
    """The words of one field on a shared line."""
    position: int                      # index of the field in the partitioned sequence
    anchor: Tuple[OcrWord, ...]        # label words
    words: Tuple[OcrWord, ...]         # label words plus trailing words, reading order

    @property
    def anchor_box(self) -> Box:
        return union_boxes(w.box for w in self.anchor)

    @property
    def box(self) -> Box:
        return union_boxes(w.box for w in self.words)


@dataclass
class LinePartition:
    line: OcrTextLine
    direction: Direction
    clusters: List[WordCluster] = field(default_factory=list)
    unanchored: List[int] = field(default_factory=list)

    def cluster_for(self, position: int) -> Optional[WordCluster]:
        for cluster in self.clusters:
            if cluster.position == position:
                return cluster
        return None

    def next_boundary(self, position: int) -> Optional[float]:
        """
        X coordinate where the next cluster (in reading order) begins.

        For rtl lines that is the next cluster's right edge, for ltr its left
        edge. None for the last cluster.
        """
        for i, cluster in enumerate(self.clusters):
            if cluster.position != position:
                continue
            if i + 1 >= len(self.clusters):
                return None
            following = self.clusters[i + 1].box
            return following.right if self.direction == Direction.RTL else following.x
        return None

    @property
    def order(self) -> List[int]:
        """Field positions in reading order."""
        return [c.position for c in self.clusters]


class RowPartitioner:
    """Partitions multi-field lines into per-field word clusters."""

    def __init__(self, settings: Optional[FusionSettings] = None):
        self.settings = settings or FusionSettings()

    def partition(
        self,
        line: OcrTextLine,
        words: Sequence[OcrWord],
        fields: Sequence[SemanticField]
    ) -> LinePartition:
        """
        Partition a line's words among the fields that matched it.

        Args:
            line: The shared OCR line
            words: The line's words (any order)
            fields: Fields matched to this line

        Returns:
            LinePartition with clusters in reading order
        """
        direction = line_direction(line)
        ordered = order_words(words, direction)

        claimed = set()
        anchors: Dict[int, List[int]] = {}
        unanchored: List[int] = []

        claim_order = sorted(
            range(len(fields)),
            key=lambda i: (-len(tokenize(fields[i].label_text)), i)
        )
        for position in claim_order:
            label_tokens = tokenize(fields[position].label_text)
            run = find_word_run(ordered, label_tokens, claimed)
            if run is None:
                fuzzy = find_fuzzy_word_run(ordered, label_tokens, self.settings.fuzzy_match_ratio, claimed)
                run = fuzzy[0] if fuzzy else None
            if run is None:
                unanchored.append(position)
                logger.debug(f"No word run for {fields[position].label_text!r} on line {line.content!r}")
                continue
            anchors[position] = run
            claimed.update(run)

        anchor_order = sorted(anchors.items(), key=lambda item: min(item[1]))
        members: Dict[int, List[int]] = {position: list(run) for position, run in anchors.items()}

        for index, word in enumerate(ordered):
            if index in claimed or not anchor_order:
                continue
            preceding = [position for position, run in anchor_order if min(run) < index]
            if preceding:
                owner = preceding[-1]
            else:
                owner = min(
                    anchor_order,
                    key=lambda item: word.box.gap_distance(union_boxes(ordered[i].box for i in item[1]))
                )[0]
            members[owner].append(index)

        clusters = [
            WordCluster(
                position=position,
                anchor=tuple(ordered[i] for i in run),
                words=tuple(ordered[i] for i in sorted(members[position]))
            )
            for position, run in anchor_order
        ]

        logger.debug(
            f"Partitioned line {line.content!r} ({direction.value}) into {len(clusters)} clusters, "
            f"{len(unanchored)} unanchored"
        )
        return LinePartition(line=line, direction=direction, clusters=clusters, unanchored=sorted(unanchored))


def validate_related_fields(
    fields: Sequence[SemanticField],
    lines: Sequence[Optional[OcrTextLine]],
    page_number: int
) -> Tuple[Dict[int, int], List[Diagnostic]]:
    """
    Check relatedFields symmetry against where the labels actually landed.

    For every label B listed by field A, B must exist on the page, be
    matched, and sit on the same OCR line as A. Each violation costs A one
    confidence penalty.

    Args:
        fields: All semantic fields of the page
        lines: Matched line per field (None when unmatched), parallel to fields
        page_number: Page number for diagnostics

    Returns:
        Tuple of (penalty count per field index, diagnostics)
    """
    by_label: Dict[str, List[int]] = {}
    for index, f in enumerate(fields):
        by_label.setdefault(normalize_label(f.label_text), []).append(index)

    penalties: Dict[int, int] = {}
    diagnostics: List[Diagnostic] = []

    for index, f in enumerate(fields):
        own_line = lines[index]
        if own_line is None:
            continue
        for related in f.related_fields:
            targets = by_label.get(normalize_label(related), [])
            if not targets:
                reason = "is not among the page's fields"
            elif all(lines[t] is None for t in targets):
                reason = "was not matched on the page"
            elif not any(lines[t] == own_line for t in targets):
                reason = "landed on a different line"
            else:
                continue

            penalties[index] = penalties.get(index, 0) + 1
            message = f"Related field {related!r} of {f.label_text!r} {reason}"
            logger.warning(f"Page {page_number}: {message}")
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.RELATED_FIELD_MISMATCH,
                severity=Severity.WARNING,
                message=message,
                page_number=page_number,
                label=f.label_text
            ))

    return penalties, diagnostics
