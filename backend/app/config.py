"""
Configuration management for the Hybrid Field Extraction service.
Loads engine tuning and API settings from environment variables.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Configuration class for fusion engine tuning and API settings."""

    # Label matching
    # Fuzzy match accepts an edit distance up to this share of the label length
    FUZZY_MATCH_RATIO: float = float(os.getenv('FUZZY_MATCH_RATIO', '0.25'))

    # Digit boxes (9 = Israeli ID number)
    DEFAULT_DIGIT_COUNT: int = int(os.getenv('DEFAULT_DIGIT_COUNT', '9'))

    # Row geometry (PDF points)
    ROW_GROUP_Y_TOLERANCE: float = float(os.getenv('ROW_GROUP_Y_TOLERANCE', '8.0'))
    ROW_ORDER_TOLERANCE: float = float(os.getenv('ROW_ORDER_TOLERANCE', '10.0'))
    SELECTION_MARK_MAX_DISTANCE: float = float(os.getenv('SELECTION_MARK_MAX_DISTANCE', '60.0'))

    # Confidence below which a field is flagged for manual review
    LOW_CONFIDENCE_THRESHOLD: float = float(os.getenv('LOW_CONFIDENCE_THRESHOLD', '0.7'))

    # Parallel page workers for multi-page documents
    PAGE_WORKERS: int = int(os.getenv('PAGE_WORKERS', '4'))

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    # API Settings
    API_HOST: str = os.getenv('API_HOST', '0.0.0.0')
    API_PORT: int = int(os.getenv('API_PORT', '8000'))
    CORS_ORIGINS: list = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')

    @classmethod
    def validate(cls) -> bool:
        """
        Validate that configured values are usable.
        """
        if not 0 < cls.FUZZY_MATCH_RATIO < 1:
            raise ValueError("FUZZY_MATCH_RATIO must be between 0 and 1 (exclusive).")

        if cls.DEFAULT_DIGIT_COUNT < 1:
            raise ValueError("DEFAULT_DIGIT_COUNT must be a positive integer.")

        if cls.ROW_GROUP_Y_TOLERANCE <= 0 or cls.ROW_ORDER_TOLERANCE <= 0:
            raise ValueError("Row tolerances must be positive (PDF points).")

        if cls.SELECTION_MARK_MAX_DISTANCE <= 0:
            raise ValueError("SELECTION_MARK_MAX_DISTANCE must be positive (PDF points).")

        if not 0 <= cls.LOW_CONFIDENCE_THRESHOLD <= 1:
            raise ValueError("LOW_CONFIDENCE_THRESHOLD must be within [0, 1].")

        if cls.PAGE_WORKERS < 1:
            raise ValueError("PAGE_WORKERS must be at least 1.")
        return True

    @classmethod
    def get_fusion_config(cls) -> dict:
        """
        Get keyword arguments for FusionSettings.
        """
        return {
            'fuzzy_match_ratio': cls.FUZZY_MATCH_RATIO,
            'default_digit_count': cls.DEFAULT_DIGIT_COUNT,
            'row_group_y_tolerance': cls.ROW_GROUP_Y_TOLERANCE,
            'row_order_tolerance': cls.ROW_ORDER_TOLERANCE,
            'selection_mark_max_distance': cls.SELECTION_MARK_MAX_DISTANCE,
            'low_confidence_threshold': cls.LOW_CONFIDENCE_THRESHOLD,
            'page_workers': cls.PAGE_WORKERS,
        }
