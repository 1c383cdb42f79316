from .main_pipeline import IngestionPipeline, IngestionResult, main

__all__ = ['IngestionPipeline', 'IngestionResult', 'main']
