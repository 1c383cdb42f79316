"""
Relational store for filings, deadlines, actions and drafts
"""

from .models import (
    Base,
    Matter,
    JurisdictionProfile,
    DeadlineRule,
    Filing,
    Deadline,
    Action,
    ActionAuditEvent,
    DraftDocument,
)
from .database import create_engine_from_url, init_db, create_session_factory, session_scope

__all__ = [
    'Base',
    'Matter',
    'JurisdictionProfile',
    'DeadlineRule',
    'Filing',
    'Deadline',
    'Action',
    'ActionAuditEvent',
    'DraftDocument',
    'create_engine_from_url',
    'init_db',
    'create_session_factory',
    'session_scope'
]
