from .logger import setup_logger, AuditLogger

__all__ = ['setup_logger', 'AuditLogger']
