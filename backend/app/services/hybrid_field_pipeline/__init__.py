"""
Hybrid Form Field Extraction
============================

Fuses two independent evidence sources for a scanned or typed form page
into one authoritative list of fillable fields:
- geometric layout evidence (lines, words, tables, selection marks,
  key-value pairs with inch polygons)
- semantic field evidence (labels, styles, input types, grouping, no
  reliable coordinates)

Pipeline Stages:
1. COORDINATE NORMALIZATION: inch/top-left polygons to point/bottom-left boxes
2. LABEL MATCHING: exact, token and fuzzy strategies
3. ROW PARTITIONING: multi-field lines split into per-field word clusters
4. BOX RESOLUTION: per-style input area (underline, digit boxes, ...)
5. UNLABELED PLACEMENT: hints and resolver fallbacks
6. ASSEMBLY: naming, confidence, tab order, validation

Design Principles:
- Pure computation over already-fetched evidence (no I/O, no caching)
- Hebrew/RTL first: reading direction drives ordering and span direction
- Every recovery is reported as a diagnostic, never silently dropped
"""

from .geometry import Box, DegenerateGeometryError, normalize_polygon, box_to_polygon
from .evidence import (
    FieldStyle,
    InputType,
    RelativePosition,
    Direction,
    RawOcrPage,
    RawTextElement,
    RawSelectionMark,
    RawTable,
    RawTableCell,
    RawKeyValuePair,
    OcrPage,
    SemanticField,
    SemanticPage,
    UnlabeledFieldHint,
)
from .diagnostics import Diagnostic, DiagnosticKind, Severity, PageExtractionError
from .settings import FusionSettings
from .normalizer import CoordinateNormalizer
from .label_matcher import LabelMatcher, LabelMatch, MatchStrategy
from .row_partitioner import RowPartitioner, LinePartition, WordCluster
from .box_resolver import ClaimedMarks, ResolverContext, Resolution, RESOLVERS
from .unlabeled_placer import UnlabeledFieldPlacer
from .field_assembler import FieldAssembler, ExtractedField, ResolvedField, Provenance
from .pipeline import HybridFieldPipeline, PageExtraction, DocumentExtraction

__all__ = [
    'HybridFieldPipeline',
    'PageExtraction',
    'DocumentExtraction',
    'FusionSettings',
    # Evidence
    'Box',
    'DegenerateGeometryError',
    'normalize_polygon',
    'box_to_polygon',
    'FieldStyle',
    'InputType',
    'RelativePosition',
    'Direction',
    'RawOcrPage',
    'RawTextElement',
    'RawSelectionMark',
    'RawTable',
    'RawTableCell',
    'RawKeyValuePair',
    'OcrPage',
    'SemanticField',
    'SemanticPage',
    'UnlabeledFieldHint',
    # Diagnostics
    'Diagnostic',
    'DiagnosticKind',
    'Severity',
    'PageExtractionError',
    # Stages
    'CoordinateNormalizer',
    'LabelMatcher',
    'LabelMatch',
    'MatchStrategy',
    'RowPartitioner',
    'LinePartition',
    'WordCluster',
    'ClaimedMarks',
    'ResolverContext',
    'Resolution',
    'RESOLVERS',
    'UnlabeledFieldPlacer',
    'FieldAssembler',
    'ExtractedField',
    'ResolvedField',
    'Provenance',
]
