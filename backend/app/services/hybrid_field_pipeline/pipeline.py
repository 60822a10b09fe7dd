"""
Hybrid Field Extraction Pipeline
================================

The orchestrator that fuses geometric and semantic evidence into one field
list per page.

Pipeline Stages (per page):
---------------------------
1. CHECK: both evidence sources describe the same page
2. NORMALIZE: inch polygons to point boxes (CoordinateNormalizer)
3. MATCH: locate every semantic label on the page (LabelMatcher)
4. PARTITION: split lines carrying several labels (RowPartitioner)
5. RESOLVE: per-style input box, with placer fallback (box_resolver, UnlabeledFieldPlacer)
6. PLACE: unlabeled hints (UnlabeledFieldPlacer)
7. ASSEMBLE: names, confidence, order, validation (FieldAssembler)

Design Principles:
------------------
- Geometry comes from the layout service only; the semantic service never
  contributes coordinates
- One field's failure never aborts its page; it becomes a diagnostic
- Only an evidence-shape mismatch aborts a page (PageExtractionError)
- Pages are independent; documents fan pages out to a thread pool
- Nothing is cached between pages or calls
"""

import hashlib
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .box_resolver import ClaimedMarks, ResolverContext, resolve
from .diagnostics import Diagnostic, DiagnosticKind, PageExtractionError, Severity
from .evidence import (
    Direction,
    OcrPage,
    OcrTextLine,
    RawOcrPage,
    RelativePosition,
    SemanticField,
    SemanticPage,
    UnlabeledFieldHint,
)
from .field_assembler import ExtractedField, FieldAssembler, Provenance, ResolvedField
from .label_matcher import LabelMatch, LabelMatcher, MatchStrategy
from .label_text import text_similarity
from .line_words import line_direction, line_words
from .normalizer import CoordinateNormalizer
from .row_partitioner import LinePartition, RowPartitioner, validate_related_fields
from .settings import FusionSettings
from .unlabeled_placer import UnlabeledFieldPlacer

logger = logging.getLogger(__name__)

# Largest disagreement (points) between the two sources' page dimensions
PAGE_DIMENSION_TOLERANCE = 1.0


@dataclass
class PageExtraction:
    """Fields and diagnostics for a single page."""
    page_number: int
    fields: List[ExtractedField]
    diagnostics: List[Diagnostic] = field(default_factory=list)
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'page_number': self.page_number,
            'fields': [f.to_dict() for f in self.fields],
            'diagnostics': [d.to_dict() for d in self.diagnostics],
            'processing_time_ms': self.processing_time_ms
        }


@dataclass
class DocumentExtraction:
    """
    Extraction output for a document.

    Pages that failed with PageExtractionError are listed in page_errors;
    the remaining pages are still returned.
    """
    document_id: str
    pages: List[PageExtraction]
    page_errors: List[Dict[str, Any]] = field(default_factory=list)

    total_pages: int = 0
    total_fields: int = 0
    processing_start: str = ""
    processing_end: str = ""
    total_processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document_id': self.document_id,
            'pages': [p.to_dict() for p in self.pages],
            'page_errors': self.page_errors,
            'metadata': {
                'total_pages': self.total_pages,
                'total_fields': self.total_fields,
                'processing_start': self.processing_start,
                'processing_end': self.processing_end,
                'total_processing_time_ms': self.total_processing_time_ms
            }
        }


class HybridFieldPipeline:
    """
    Fusion engine for form field extraction.

    Example usage:

        pipeline = HybridFieldPipeline()

        # One page
        result = pipeline.process_page(raw_ocr_page, semantic_page)
        for f in result.fields:
            print(f.name, f.box, f.confidence)

        # A document, pages in parallel
        output = pipeline.process_document(raw_pages, semantic_pages)
        output.to_dict()
    """

    def __init__(self, settings: Optional[FusionSettings] = None):
        """
        Initialize the pipeline.

        Args:
            settings: Engine tuning; defaults to FusionSettings()
        """
        self.settings = settings or FusionSettings()

        self.normalizer = CoordinateNormalizer()
        self.matcher = LabelMatcher(self.settings)
        self.partitioner = RowPartitioner(self.settings)
        self.placer = UnlabeledFieldPlacer(self.settings, self.matcher)
        self.assembler = FieldAssembler(self.settings)

        logger.info(
            f"Initialized HybridFieldPipeline - fuzzy ratio: {self.settings.fuzzy_match_ratio}, "
            f"default digit count: {self.settings.default_digit_count}, "
            f"page workers: {self.settings.page_workers}"
        )

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def process_document(
        self,
        raw_pages: Sequence[RawOcrPage],
        semantic_pages: Sequence[SemanticPage],
        document_id: Optional[str] = None
    ) -> DocumentExtraction:
        """
        Process every page of a document.

        Args:
            raw_pages: Layout-service pages
            semantic_pages: Semantic-service pages
            document_id: Optional document identifier

        Returns:
            DocumentExtraction with pages in page order

        Raises:
            PageExtractionError: the two sources disagree on page count or numbering
        """
        start_time = time.time()
        processing_start = datetime.now(timezone.utc).isoformat()

        self._check_page_sets(raw_pages, semantic_pages)
        semantic_by_number = {p.page_number: p for p in semantic_pages}

        if not document_id:
            content = '\n'.join(line.content for page in raw_pages for line in page.lines)
            document_id = hashlib.sha256(content.encode('utf-8')).hexdigest()[:12]

        logger.info(f"Processing document {document_id} ({len(raw_pages)} pages)")

        workers = max(1, min(self.settings.page_workers, len(raw_pages) or 1))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                raw.page_number: executor.submit(self.process_page, raw, semantic_by_number[raw.page_number])
                for raw in raw_pages
            }

            pages: List[PageExtraction] = []
            page_errors: List[Dict[str, Any]] = []
            for page_number in sorted(futures):
                try:
                    pages.append(futures[page_number].result())
                except PageExtractionError as e:
                    logger.error(f"Document {document_id}: {e}")
                    page_errors.append({'page_number': e.page_number, 'reason': e.reason})

        total_fields = sum(len(p.fields) for p in pages)
        total_time_ms = int((time.time() - start_time) * 1000)

        output = DocumentExtraction(
            document_id=document_id,
            pages=pages,
            page_errors=page_errors,
            total_pages=len(raw_pages),
            total_fields=total_fields,
            processing_start=processing_start,
            processing_end=datetime.now(timezone.utc).isoformat(),
            total_processing_time_ms=total_time_ms
        )

        logger.info(
            f"Extraction complete for {document_id}: "
            f"{total_fields} fields, {len(page_errors)} failed pages, {total_time_ms}ms total"
        )
        return output

    @staticmethod
    def _check_page_sets(raw_pages: Sequence[RawOcrPage], semantic_pages: Sequence[SemanticPage]) -> None:
        if len(raw_pages) != len(semantic_pages):
            raise PageExtractionError(
                None,
                f"page count mismatch: {len(raw_pages)} layout pages, {len(semantic_pages)} semantic pages"
            )
        raw_numbers = [p.page_number for p in raw_pages]
        semantic_numbers = [p.page_number for p in semantic_pages]
        if len(set(raw_numbers)) != len(raw_numbers) or len(set(semantic_numbers)) != len(semantic_numbers):
            raise PageExtractionError(None, "duplicate page numbers")
        if set(raw_numbers) != set(semantic_numbers):
            raise PageExtractionError(
                None,
                f"page numbers differ: layout {sorted(raw_numbers)}, semantic {sorted(semantic_numbers)}"
            )

    # ------------------------------------------------------------------
    # Page level
    # ------------------------------------------------------------------

    def process_page(self, raw_ocr: RawOcrPage, semantic: SemanticPage) -> PageExtraction:
        """
        Fuse the evidence of one page.

        Args:
            raw_ocr: Layout-service page (inches, top-left origin)
            semantic: Semantic-service page

        Returns:
            PageExtraction with fields in tab order and all diagnostics

        Raises:
            PageExtractionError: the two sources describe different pages
        """
        start_time = time.time()
        self._check_evidence(raw_ocr, semantic)

        page, diagnostics = self.normalizer.normalize_page(raw_ocr)
        fields = list(semantic.fields)
        hints = list(semantic.unlabeled_fields)

        logger.info(
            f"Processing page {page.page_number}: {len(fields)} semantic fields, "
            f"{len(hints)} unlabeled hints"
        )

        # === MATCH ===
        matches = self._match_fields(fields, page)
        lines = [m.line if m else None for m in matches]
        penalties, related_diagnostics = validate_related_fields(fields, lines, page.page_number)
        diagnostics.extend(related_diagnostics)

        # === PARTITION ===
        partitions = self._partition_lines(fields, matches, page)

        # === RESOLVE ===
        claimed = ClaimedMarks()
        consumed_hints: Set[int] = set()
        resolved: List[ResolvedField] = []

        for index, semantic_field in enumerate(fields):
            try:
                self._resolve_field(
                    semantic_field,
                    matches[index],
                    partitions.get(index),
                    penalties.get(index, 0),
                    page,
                    hints,
                    consumed_hints,
                    claimed,
                    resolved,
                    diagnostics
                )
            except Exception as e:
                logger.error(
                    f"Page {page.page_number}: resolving {semantic_field.label_text!r} failed: {e}",
                    exc_info=True
                )
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.UNPLACED_FIELD,
                    severity=Severity.ERROR,
                    message=f"Field could not be resolved: {e}",
                    page_number=page.page_number,
                    label=semantic_field.label_text
                ))

        # === PLACE UNLABELED ===
        for index, hint in enumerate(hints):
            if index in consumed_hints:
                continue
            box = self.placer.place(hint, resolved, page)
            if box is None:
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.UNPLACED_HINT,
                    severity=Severity.WARNING,
                    message=f"No anchor for unlabeled {hint.field_type.value} near {hint.nearby_text!r}",
                    page_number=page.page_number,
                    label=hint.visual_description
                ))
                continue
            resolved.append(ResolvedField(
                label=hint.visual_description,
                box=box,
                provenance=Provenance.UNLABELED,
                page_number=page.page_number,
                field_type=hint.field_type,
                input_type=hint.input_type,
                section=hint.section,
                nearby_text=hint.nearby_text,
                relative_position=hint.relative_position
            ))

        # === ASSEMBLE ===
        extracted, assembly_diagnostics = self.assembler.assemble(resolved, page)
        diagnostics.extend(assembly_diagnostics)

        for index, mark in enumerate(page.selection_marks):
            if index not in claimed:
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.UNCLAIMED_SELECTION_MARK,
                    severity=Severity.INFO,
                    message=f"Selection mark at {mark.box.rounded()} ({mark.state}) matched no field",
                    page_number=page.page_number
                ))

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Page {page.page_number}: {len(extracted)} fields, {len(diagnostics)} diagnostics, "
            f"{processing_time_ms}ms"
        )
        return PageExtraction(
            page_number=page.page_number,
            fields=extracted,
            diagnostics=diagnostics,
            processing_time_ms=processing_time_ms
        )

    @staticmethod
    def _check_evidence(raw_ocr: RawOcrPage, semantic: SemanticPage) -> None:
        if raw_ocr.page_number != semantic.page_number:
            raise PageExtractionError(
                raw_ocr.page_number,
                f"semantic evidence is for page {semantic.page_number}"
            )
        checks = (
            ('width', semantic.page_width, raw_ocr.width_points),
            ('height', semantic.page_height, raw_ocr.height_points),
        )
        for dimension, declared, measured in checks:
            if declared is not None and abs(declared - measured) > PAGE_DIMENSION_TOLERANCE:
                raise PageExtractionError(
                    raw_ocr.page_number,
                    f"page {dimension} differs: semantic {declared:.1f}pt, layout {measured:.1f}pt"
                )

    def _match_fields(self, fields: Sequence[SemanticField], page: OcrPage) -> List[Optional[LabelMatch]]:
        matched: List[Tuple[SemanticField, LabelMatch]] = []
        matches: List[Optional[LabelMatch]] = []
        for semantic_field in fields:
            match = self.matcher.match(semantic_field, page, matched)
            matches.append(match)
            if match is not None:
                matched.append((semantic_field, match))

        logger.info(
            f"Page {page.page_number}: matched {len(matched)}/{len(fields)} labels"
        )
        return matches

    def _partition_lines(
        self,
        fields: Sequence[SemanticField],
        matches: Sequence[Optional[LabelMatch]],
        page: OcrPage
    ) -> Dict[int, Tuple[LinePartition, int]]:
        """Partition every line matched by two or more fields: field index -> (partition, position)."""
        by_line: Dict[OcrTextLine, List[int]] = {}
        for index, match in enumerate(matches):
            if match is not None:
                by_line.setdefault(match.line, []).append(index)

        partitions: Dict[int, Tuple[LinePartition, int]] = {}
        for line, indices in by_line.items():
            if len(indices) < 2:
                continue
            words, _ = line_words(line, page)
            partition = self.partitioner.partition(line, words, [fields[i] for i in indices])
            for position, index in enumerate(indices):
                partitions[index] = (partition, position)
        return partitions

    def _resolve_field(
        self,
        semantic_field: SemanticField,
        match: Optional[LabelMatch],
        partition: Optional[Tuple[LinePartition, int]],
        penalties: int,
        page: OcrPage,
        hints: Sequence[UnlabeledFieldHint],
        consumed_hints: Set[int],
        claimed: ClaimedMarks,
        resolved: List[ResolvedField],
        diagnostics: List[Diagnostic]
    ) -> None:
        """Resolve one semantic field into `resolved`, recording any recovery."""
        label = semantic_field.label_text

        if match is None:
            self._recover_unmatched(semantic_field, penalties, page, hints, consumed_hints, resolved, diagnostics)
            return

        if partition is not None:
            line_partition, position = partition
            cluster = line_partition.cluster_for(position)
            direction = line_partition.direction
            provenance = Provenance.PARTITIONED
            anchor = cluster.anchor_box if cluster else match.anchor_box
            ctx = ResolverContext(
                page=page,
                line=line_partition.line,
                anchor=anchor,
                direction=direction,
                settings=self.settings,
                claimed_marks=claimed,
                next_boundary=line_partition.next_boundary(position)
            )
            resolution = resolve(semantic_field, ctx) if cluster else None
        else:
            direction = line_direction(match.line)
            provenance = Provenance.EXACT_LINE
            anchor = match.anchor_box
            ctx = ResolverContext(
                page=page,
                line=match.line,
                anchor=anchor,
                direction=direction,
                settings=self.settings,
                claimed_marks=claimed
            )
            resolution = resolve(semantic_field, ctx)

        fuzzy = match.strategy == MatchStrategy.FUZZY
        if resolution is not None:
            resolved.append(self._resolved(
                semantic_field,
                resolution.box,
                Provenance.SYNTHESIZED if resolution.synthesized else provenance,
                page.page_number,
                penalties,
                fuzzy,
                resolution.segments,
                direction
            ))
            return

        # Resolver fallback: default box on the reading side of the label
        message = f"No {semantic_field.field_type.value} geometry for {label!r}, placing a default box"
        logger.warning(f"Page {page.page_number}: {message}")
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.RESOLVER_FALLBACK,
            severity=Severity.WARNING,
            message=message,
            page_number=page.page_number,
            label=label
        ))
        side = RelativePosition.LEFT if direction == Direction.RTL else RelativePosition.RIGHT
        box = self.placer.offset_box(anchor, semantic_field.field_type, side)
        resolved.append(self._resolved(
            semantic_field, box, Provenance.FALLBACK_PLACEMENT, page.page_number, penalties, fuzzy,
            direction=direction
        ))

    def _recover_unmatched(
        self,
        semantic_field: SemanticField,
        penalties: int,
        page: OcrPage,
        hints: Sequence[UnlabeledFieldHint],
        consumed_hints: Set[int],
        resolved: List[ResolvedField],
        diagnostics: List[Diagnostic]
    ) -> None:
        """Place an unmatched field through a corresponding hint, or report it."""
        label = semantic_field.label_text
        hint_index = self._recovery_hint(semantic_field, hints, consumed_hints)

        if hint_index is None:
            message = f"Label {label!r} not found on the page"
            logger.warning(f"Page {page.page_number}: {message}")
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.UNMATCHED_FIELD,
                severity=Severity.WARNING,
                message=message,
                page_number=page.page_number,
                label=label
            ))
            return

        consumed_hints.add(hint_index)
        box = self.placer.place(hints[hint_index], resolved, page)
        if box is None:
            message = f"Label {label!r} not found and its hint has no anchor"
            logger.warning(f"Page {page.page_number}: {message}")
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.UNPLACED_FIELD,
                severity=Severity.WARNING,
                message=message,
                page_number=page.page_number,
                label=label
            ))
            return

        logger.info(f"Page {page.page_number}: recovered unmatched {label!r} through an unlabeled hint")
        resolved.append(self._resolved(semantic_field, box, Provenance.UNLABELED, page.page_number, penalties))

    def _recovery_hint(
        self,
        semantic_field: SemanticField,
        hints: Sequence[UnlabeledFieldHint],
        consumed_hints: Set[int]
    ) -> Optional[int]:
        threshold = self.settings.similarity_threshold
        for index, hint in enumerate(hints):
            if index in consumed_hints:
                continue
            if semantic_field.visual_description and \
                    text_similarity(hint.visual_description, semantic_field.visual_description) >= threshold:
                return index
            if text_similarity(hint.nearby_text, semantic_field.label_text) >= threshold:
                return index
        return None

    @staticmethod
    def _resolved(
        semantic_field: SemanticField,
        box,
        provenance: Provenance,
        page_number: int,
        penalties: int = 0,
        fuzzy: bool = False,
        segments=(),
        direction: Optional[Direction] = None
    ) -> ResolvedField:
        return ResolvedField(
            label=semantic_field.label_text,
            box=box,
            provenance=provenance,
            page_number=page_number,
            field_type=semantic_field.field_type,
            input_type=semantic_field.input_type,
            required=semantic_field.required,
            section=semantic_field.section,
            row_group=semantic_field.row_group,
            fuzzy=fuzzy,
            penalties=penalties,
            segments=tuple(segments),
            direction=direction
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_statistics(self, output: DocumentExtraction) -> Dict[str, Any]:
        """
        Generate statistics summary for a document extraction.

        Useful for monitoring extraction quality across forms.
        """
        source_counts: Dict[str, int] = {}
        type_counts: Dict[str, int] = {}
        diagnostic_counts: Dict[str, int] = {}
        confidence_sum = 0.0
        low_confidence = 0

        for page in output.pages:
            for f in page.fields:
                source_counts[f.source] = source_counts.get(f.source, 0) + 1
                type_counts[f.type] = type_counts.get(f.type, 0) + 1
                confidence_sum += f.confidence
                if f.confidence < self.settings.low_confidence_threshold:
                    low_confidence += 1
            for d in page.diagnostics:
                diagnostic_counts[d.kind.value] = diagnostic_counts.get(d.kind.value, 0) + 1

        total = output.total_fields
        return {
            'document_id': output.document_id,
            'total_pages': output.total_pages,
            'failed_pages': len(output.page_errors),
            'total_fields': total,
            'average_confidence': round(confidence_sum / total, 4) if total > 0 else 0.0,
            'low_confidence_count': low_confidence,
            'low_confidence_rate': low_confidence / total if total > 0 else 0.0,
            'source_distribution': source_counts,
            'field_type_distribution': type_counts,
            'diagnostic_distribution': diagnostic_counts,
            'processing_time_ms': output.total_processing_time_ms
        }
