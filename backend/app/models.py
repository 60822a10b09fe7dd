"""
Pydantic models for API request/response schemas.

Wire format is camelCase (as produced by the layout and semantic services);
models convert to and from the engine's dataclasses.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime

from app.services.hybrid_field_pipeline import (
    Box,
    Diagnostic,
    DocumentExtraction,
    ExtractedField,
    FieldStyle,
    InputType,
    PageExtraction,
    RawKeyValuePair,
    RawOcrPage,
    RawSelectionMark,
    RawTable,
    RawTableCell,
    RawTextElement,
    RelativePosition,
    SemanticField,
    SemanticPage,
    UnlabeledFieldHint,
)


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Layout-service evidence
# ============================================================================

class TextElementModel(CamelModel):
    """A line or word with its polygon (inches, top-left origin)."""
    content: str
    polygon: List[float] = Field(..., description="8 numbers: TL, TR, BR, BL corners")
    confidence: float = Field(1.0, ge=0.0, le=1.0)

    def to_evidence(self) -> RawTextElement:
        return RawTextElement(content=self.content, polygon=tuple(self.polygon), confidence=self.confidence)


class SelectionMarkModel(CamelModel):
    state: str = Field(..., description="selected | unselected")
    polygon: List[float]
    confidence: float = Field(1.0, ge=0.0, le=1.0)

    def to_evidence(self) -> RawSelectionMark:
        return RawSelectionMark(state=self.state, polygon=tuple(self.polygon), confidence=self.confidence)


class TableCellModel(CamelModel):
    row_index: int = Field(..., ge=0)
    column_index: int = Field(..., ge=0)
    content: str = ""
    polygon: List[float]

    def to_evidence(self) -> RawTableCell:
        return RawTableCell(
            row_index=self.row_index,
            column_index=self.column_index,
            content=self.content,
            polygon=tuple(self.polygon)
        )


class TableModel(CamelModel):
    row_count: int = Field(..., ge=0)
    column_count: int = Field(..., ge=0)
    cells: List[TableCellModel] = Field(default_factory=list)

    def to_evidence(self) -> RawTable:
        return RawTable(
            row_count=self.row_count,
            column_count=self.column_count,
            cells=tuple(c.to_evidence() for c in self.cells)
        )


class KeyValuePairModel(CamelModel):
    key: str
    key_polygon: List[float]
    value_polygon: List[float]
    confidence: float = Field(1.0, ge=0.0, le=1.0)

    def to_evidence(self) -> RawKeyValuePair:
        return RawKeyValuePair(
            key=self.key,
            key_polygon=tuple(self.key_polygon),
            value_polygon=tuple(self.value_polygon),
            confidence=self.confidence
        )


class OcrPageModel(CamelModel):
    """One page of layout-service output."""
    page_number: int = Field(..., ge=1)
    width: float = Field(..., description="Page width in inches")
    height: float = Field(..., description="Page height in inches")
    lines: List[TextElementModel] = Field(default_factory=list)
    words: List[TextElementModel] = Field(default_factory=list)
    selection_marks: List[SelectionMarkModel] = Field(default_factory=list)
    tables: List[TableModel] = Field(default_factory=list)
    key_value_pairs: List[KeyValuePairModel] = Field(default_factory=list)

    def to_evidence(self) -> RawOcrPage:
        return RawOcrPage(
            page_number=self.page_number,
            width=self.width,
            height=self.height,
            lines=tuple(line.to_evidence() for line in self.lines),
            words=tuple(w.to_evidence() for w in self.words),
            selection_marks=tuple(m.to_evidence() for m in self.selection_marks),
            tables=tuple(t.to_evidence() for t in self.tables),
            key_value_pairs=tuple(kv.to_evidence() for kv in self.key_value_pairs)
        )


# ============================================================================
# Semantic-service evidence
# ============================================================================

class SemanticFieldModel(CamelModel):
    """A labelled field from the semantic service."""
    label_text: str
    field_type: FieldStyle
    input_type: InputType
    required: bool = False
    section: Optional[str] = None
    row_group: Optional[str] = None
    related_fields: List[str] = Field(default_factory=list)
    has_visible_boundary: Optional[bool] = None
    visual_description: Optional[str] = None
    digit_count: Optional[int] = Field(None, ge=1, description="Explicit digit segment count")

    def to_evidence(self) -> SemanticField:
        return SemanticField(
            label_text=self.label_text,
            field_type=self.field_type,
            input_type=self.input_type,
            required=self.required,
            section=self.section,
            row_group=self.row_group,
            related_fields=tuple(self.related_fields),
            has_visible_boundary=self.has_visible_boundary,
            visual_description=self.visual_description,
            digit_count=self.digit_count
        )


class UnlabeledFieldModel(CamelModel):
    field_type: FieldStyle
    input_type: InputType
    visual_description: str = ""
    nearby_text: str
    relative_position: RelativePosition
    section: Optional[str] = None

    def to_evidence(self) -> UnlabeledFieldHint:
        return UnlabeledFieldHint(
            field_type=self.field_type,
            input_type=self.input_type,
            visual_description=self.visual_description,
            nearby_text=self.nearby_text,
            relative_position=self.relative_position,
            section=self.section
        )


class SemanticPageModel(CamelModel):
    """All semantic evidence for one page."""
    page_number: int = Field(..., ge=1)
    fields: List[SemanticFieldModel] = Field(default_factory=list)
    unlabeled_fields: List[UnlabeledFieldModel] = Field(default_factory=list)
    total_field_count: Optional[int] = None
    page_width: Optional[float] = Field(None, description="Page width in points, if known")
    page_height: Optional[float] = Field(None, description="Page height in points, if known")

    def to_evidence(self) -> SemanticPage:
        return SemanticPage(
            page_number=self.page_number,
            fields=tuple(f.to_evidence() for f in self.fields),
            unlabeled_fields=tuple(u.to_evidence() for u in self.unlabeled_fields),
            total_field_count=self.total_field_count,
            page_width=self.page_width,
            page_height=self.page_height
        )


# ============================================================================
# Requests
# ============================================================================

class ExtractPageRequest(CamelModel):
    """Request for extracting fields from one page."""
    ocr_page: OcrPageModel
    semantic_page: SemanticPageModel


class ExtractDocumentRequest(CamelModel):
    """Request for extracting fields from every page of a document."""
    document_id: Optional[str] = None
    ocr_pages: List[OcrPageModel]
    semantic_pages: List[SemanticPageModel]
    include_statistics: bool = True


# ============================================================================
# Responses
# ============================================================================

class BoxModel(CamelModel):
    """Rectangle in PDF points, bottom-left origin."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_box(cls, box: Box) -> 'BoxModel':
        return cls(x=box.x, y=box.y, width=box.width, height=box.height)


class ExtractedFieldModel(CamelModel):
    """Single field in the extraction output."""
    type: str = Field(..., description="text | checkbox | radio | signature | dropdown")
    name: str
    label: str
    x: float
    y: float
    width: float
    height: float
    page_number: int
    direction: str = Field(..., description="ltr | rtl")
    required: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    section_name: Optional[str] = None
    tab_index: int
    source: str
    segments: List[BoxModel] = Field(default_factory=list)

    @classmethod
    def from_field(cls, field: ExtractedField) -> 'ExtractedFieldModel':
        return cls(
            type=field.type,
            name=field.name,
            label=field.label,
            x=field.x,
            y=field.y,
            width=field.width,
            height=field.height,
            page_number=field.page_number,
            direction=field.direction,
            required=field.required,
            confidence=field.confidence,
            section_name=field.section_name,
            tab_index=field.tab_index,
            source=field.source,
            segments=[BoxModel.from_box(s) for s in field.segments]
        )


class DiagnosticModel(CamelModel):
    kind: str
    severity: str
    message: str
    page_number: int
    label: Optional[str] = None
    field_name: Optional[str] = None

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> 'DiagnosticModel':
        return cls(**diagnostic.to_dict())


class PageExtractionResponse(CamelModel):
    """Fields and diagnostics for one page."""
    page_number: int
    fields: List[ExtractedFieldModel]
    diagnostics: List[DiagnosticModel]
    processing_time_ms: int = 0

    @classmethod
    def from_extraction(cls, extraction: PageExtraction) -> 'PageExtractionResponse':
        return cls(
            page_number=extraction.page_number,
            fields=[ExtractedFieldModel.from_field(f) for f in extraction.fields],
            diagnostics=[DiagnosticModel.from_diagnostic(d) for d in extraction.diagnostics],
            processing_time_ms=extraction.processing_time_ms
        )


class PageErrorModel(CamelModel):
    page_number: Optional[int] = None
    reason: str


class DocumentExtractionResponse(CamelModel):
    """Extraction output for a document."""
    document_id: str
    pages: List[PageExtractionResponse]
    page_errors: List[PageErrorModel] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    statistics: Optional[Dict[str, Any]] = None

    @classmethod
    def from_extraction(
        cls,
        extraction: DocumentExtraction,
        statistics: Optional[Dict[str, Any]] = None
    ) -> 'DocumentExtractionResponse':
        return cls(
            document_id=extraction.document_id,
            pages=[PageExtractionResponse.from_extraction(p) for p in extraction.pages],
            page_errors=[PageErrorModel(**e) for e in extraction.page_errors],
            metadata=extraction.to_dict()['metadata'],
            statistics=statistics
        )


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
