#!/usr/bin/env python3
"""
Hybrid Field Extraction - Example Usage
=======================================

This script runs the field fusion engine over evidence saved as JSON:
one file from the layout service, one from the semantic field-analysis
service.

Usage:
    python examples/hybrid_extraction_example.py ocr.json semantic.json

Input formats:
    Each file holds a single page object, a list of page objects, or
    {"pages": [...]}, in the camelCase wire format of the API.
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.models import DocumentExtractionResponse, OcrPageModel, SemanticPageModel
from app.services.hybrid_field_pipeline import (
    FusionSettings,
    HybridFieldPipeline,
    PageExtractionError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_pages(path: Path) -> list:
    """Read a JSON file holding one page, a list of pages, or {"pages": [...]}."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict) and 'pages' in data:
        return data['pages']
    if isinstance(data, list):
        return data
    return [data]


def extract(ocr_path: str, semantic_path: str, output_path: str = None):
    """
    Run the engine over saved evidence and print the field list.

    Args:
        ocr_path: Layout-service JSON
        semantic_path: Semantic-service JSON
        output_path: Optional path to save JSON output
    """
    ocr_path = Path(ocr_path)
    semantic_path = Path(semantic_path)
    for path in (ocr_path, semantic_path):
        if not path.exists():
            logger.error(f"File not found: {path}")
            return None

    raw_pages = [OcrPageModel.model_validate(p).to_evidence() for p in load_pages(ocr_path)]
    semantic_pages = [SemanticPageModel.model_validate(p).to_evidence() for p in load_pages(semantic_path)]

    logger.info(f"Loaded {len(raw_pages)} layout pages, {len(semantic_pages)} semantic pages")

    pipeline = HybridFieldPipeline(FusionSettings.from_config())
    try:
        result = pipeline.process_document(raw_pages, semantic_pages, document_id=ocr_path.stem)
    except PageExtractionError as e:
        logger.error(f"Evidence mismatch: {e}")
        return None

    stats = pipeline.get_statistics(result)

    # Print summary
    print("\n" + "=" * 60)
    print("HYBRID FIELD EXTRACTION RESULTS")
    print("=" * 60)
    print(f"\nDocument ID: {result.document_id}")
    print(f"Total Pages: {result.total_pages}")
    print(f"Total Fields: {result.total_fields}")
    print(f"Processing Time: {result.total_processing_time_ms}ms")

    for error in result.page_errors:
        print(f"\n✗ Page {error['page_number']} rejected: {error['reason']}")

    print("\n" + "-" * 40)
    print("FIELDS")
    print("-" * 40)

    for page in result.pages:
        print(f"\nPage {page.page_number}: {len(page.fields)} fields")

        for field in page.fields:
            conf_indicator = "✓" if field.confidence >= 0.7 else "?" if field.confidence >= 0.4 else "✗"
            print(f"  {conf_indicator} {field.tab_index:3}. [{field.type:9}] {field.name:24} "
                  f"({field.x:.0f}, {field.y:.0f}, {field.width:.0f}x{field.height:.0f}) "
                  f"{field.direction} conf: {field.confidence:.2f} [{field.source}]")
            if field.label:
                print(f"       └─ Label: \"{field.label[:50]}{'...' if len(field.label) > 50 else ''}\"")

        warnings = [d for d in page.diagnostics if d.severity.value != 'info']
        if warnings:
            print(f"\n  Diagnostics ({len(warnings)}):")
            for d in warnings:
                print(f"    ! [{d.kind.value}] {d.message}")

    print("\n" + "-" * 40)
    print("STATISTICS")
    print("-" * 40)
    print(f"Average Confidence: {stats['average_confidence']:.2%}")
    print(f"Low Confidence Rate: {stats['low_confidence_rate']:.1%}")

    print("\nSource Distribution:")
    for source, count in sorted(stats['source_distribution'].items(), key=lambda x: -x[1]):
        print(f"  {source}: {count}")

    if output_path:
        output_path = Path(output_path)
        response = DocumentExtractionResponse.from_extraction(result, stats)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(response.model_dump(by_alias=True), f, indent=2, ensure_ascii=False)

        logger.info(f"Output saved to: {output_path}")

    return result


def show_settings():
    """Print the engine settings in effect (environment included)."""
    settings = FusionSettings.from_config()

    print("\n" + "=" * 60)
    print("ENGINE SETTINGS")
    print("=" * 60)
    for key, value in settings.to_dict().items():
        print(f"  {key}: {value}")


def main():
    parser = argparse.ArgumentParser(
        description='Hybrid Form Field Extraction',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Fuse saved evidence and print the fields
    python hybrid_extraction_example.py ocr.json semantic.json

    # Save the camelCase API response to JSON
    python hybrid_extraction_example.py ocr.json semantic.json -o fields.json

    # Show the active engine settings
    python hybrid_extraction_example.py --settings
        """
    )

    parser.add_argument(
        'ocr_json',
        nargs='?',
        help='Path to layout-service evidence JSON'
    )

    parser.add_argument(
        'semantic_json',
        nargs='?',
        help='Path to semantic-service evidence JSON'
    )

    parser.add_argument(
        '-o', '--output',
        help='Path to save JSON output'
    )

    parser.add_argument(
        '--settings',
        action='store_true',
        help='Show the engine settings and exit'
    )

    args = parser.parse_args()

    if args.settings:
        show_settings()
        return

    if not args.ocr_json or not args.semantic_json:
        parser.print_help()
        print("\nError: Please provide both evidence files or use --settings")
        sys.exit(1)

    if extract(args.ocr_json, args.semantic_json, args.output) is None:
        sys.exit(1)


if __name__ == '__main__':
    main()
