"""
Core engines for filing ingestion
"""

from .date_extractor import DateExtractor, ExtractedDate, DateExtractionResult, parse_date, extract_dates_from_text
from .document_classifier import DocumentClassifier, ClassificationResult, MatterContext, classify_by_file_name
from .text_generation import BedrockTextGenerator, extract_first_json_object
from .deadline_engine import DeadlineRuleEngine, ComputedDeadline
from .sequencing_engine import SequencingEngine, NextAction
from .document_builder import DocumentBuilder, MatterCaption

__all__ = [
    'DateExtractor',
    'ExtractedDate',
    'DateExtractionResult',
    'parse_date',
    'extract_dates_from_text',
    'DocumentClassifier',
    'ClassificationResult',
    'MatterContext',
    'classify_by_file_name',
    'BedrockTextGenerator',
    'extract_first_json_object',
    'DeadlineRuleEngine',
    'ComputedDeadline',
    'SequencingEngine',
    'NextAction',
    'DocumentBuilder',
    'MatterCaption',
]
