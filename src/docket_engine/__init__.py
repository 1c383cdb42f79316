"""
Docket Engine
Legal filing ingestion: classification, date extraction, deadline rules,
action sequencing and first-draft responses
"""

__version__ = "1.0.0"
__description__ = "Filing classification, deadline computation and action sequencing for litigation matters"

from .config import EngineConfig
from .pipeline import IngestionPipeline, IngestionResult

__all__ = [
    'EngineConfig',
    'IngestionPipeline',
    'IngestionResult',
]
