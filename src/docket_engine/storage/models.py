"""
Docket Engine Database Models

Persisted entities shared between the engine and its collaborators:
matters, jurisdiction profiles, deadline rules, filings, deadlines,
actions (with their audit event log) and draft documents.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    Float,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp used for every stored datetime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Deadline statuses
DEADLINE_PENDING = "pending"
DEADLINE_IN_PROGRESS = "in-progress"
DEADLINE_COMPLETED = "completed"


class Matter(Base):
    """Litigation matter; supplies caption data and jurisdiction assignment"""

    __tablename__ = "matters"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    case_number = Column(String(100))
    court_name = Column(String(255))
    jurisdiction_id = Column(String(36), ForeignKey("jurisdiction_profiles.id"))
    created_at = Column(DateTime, default=utcnow)

    jurisdiction = relationship("JurisdictionProfile")
    filings = relationship("Filing", back_populates="matter")


class JurisdictionProfile(Base):
    """Court/venue and the rule set that applies to matters filed there"""

    __tablename__ = "jurisdiction_profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    state = Column(String(50), nullable=False)  # e.g., "utah", "federal"
    court_type = Column(String(50), nullable=False)  # state, federal
    rule_set = Column(String(100), nullable=False)  # URCP, FRCP
    discovery_response_days = Column(Integer, default=30)
    motion_opposition_days = Column(Integer, default=14)
    motion_reply_days = Column(Integer, default=7)
    initial_disclosure_days = Column(Integer, default=14)
    answer_days = Column(Integer, default=21)
    mail_service_extra_days = Column(Integer, default=3)
    electronic_service_extra_days = Column(Integer, default=0)
    weekend_holiday_adjust = Column(Boolean, default=True)
    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    rules = relationship("DeadlineRule", back_populates="jurisdiction")


class DeadlineRule(Base):
    """Jurisdiction-scoped procedural rule: trigger document -> offset -> action"""

    __tablename__ = "deadline_rules"

    id = Column(String(36), primary_key=True, default=_new_id)
    jurisdiction_id = Column(String(36), ForeignKey("jurisdiction_profiles.id"))
    name = Column(String(255), nullable=False)
    trigger_doc_type = Column(String(100), nullable=False)
    trigger_doc_subtype = Column(String(100))
    anchor_date_field = Column(String(50), nullable=False)
    offset_days = Column(Integer, nullable=False)
    result_action = Column(String(255), nullable=False)
    result_doc_type = Column(String(100))
    criticality = Column(String(20), default="hard")  # hard, soft
    rule_source = Column(String(100))  # e.g., "URCP 33(a)"
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    jurisdiction = relationship("JurisdictionProfile", back_populates="rules")

    __table_args__ = (
        Index("ix_deadline_rules_trigger", "trigger_doc_type"),
    )


class Filing(Base):
    """A single filed or served document with its classification"""

    __tablename__ = "filings"

    id = Column(String(36), primary_key=True, default=_new_id)
    matter_id = Column(String(36), ForeignKey("matters.id"), nullable=False)
    original_file_name = Column(String(500), nullable=False)
    text = Column(Text, default="")
    doc_type = Column(String(100), nullable=False)
    doc_subtype = Column(String(100))
    doc_category = Column(String(50))
    classification_confidence = Column(Float, default=0.0)
    filed_date = Column(Date)
    served_date = Column(Date)
    hearing_date = Column(Date)
    response_deadline_anchor = Column(Date)
    date_provenance = Column(JSON, default=dict)  # {filed|served|hearing: {value, confidence, source, raw_match}}
    parties_involved = Column(JSON, default=list)
    extracted_facts = Column(JSON, default=dict)
    related_doc_reference = Column(String(500))
    related_filing_id = Column(String(36))
    classified_by = Column(String(20), default="ai")  # ai, filename, manual
    created_by = Column(String(100), default="system")
    created_at = Column(DateTime, default=utcnow)

    matter = relationship("Matter", back_populates="filings")

    __table_args__ = (
        Index("ix_filings_matter", "matter_id"),
        Index("ix_filings_doc_type", "doc_type"),
    )


class Deadline(Base):
    """Computed, due-dated obligation derived from a filing and a rule"""

    __tablename__ = "deadlines"

    id = Column(String(36), primary_key=True, default=_new_id)
    matter_id = Column(String(36), ForeignKey("matters.id"), nullable=False)
    filing_id = Column(String(36), ForeignKey("filings.id"))
    rule_id = Column(String(36), ForeignKey("deadline_rules.id"))
    title = Column(String(500), nullable=False)
    due_date = Column(Date)
    anchor_event = Column(String(255))
    anchor_date = Column(Date)
    rule_source = Column(String(100))
    criticality = Column(String(20), default="hard")
    status = Column(String(30), default=DEADLINE_PENDING)
    required_action = Column(String(255))
    result_doc_type = Column(String(100))
    assigned_to = Column(String(100))
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    filing = relationship("Filing")
    rule = relationship("DeadlineRule")

    __table_args__ = (
        UniqueConstraint("filing_id", "rule_id", name="uq_deadlines_filing_rule"),
        Index("ix_deadlines_matter", "matter_id"),
        Index("ix_deadlines_status", "status"),
    )


class Action(Base):
    """Trackable unit of work generated for a pending deadline"""

    __tablename__ = "actions"

    id = Column(String(36), primary_key=True, default=_new_id)
    matter_id = Column(String(36), ForeignKey("matters.id"), nullable=False)
    deadline_id = Column(String(36), ForeignKey("deadlines.id"))
    filing_id = Column(String(36), ForeignKey("filings.id"))
    task_id = Column(String(100))  # external task-board item
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    action_type = Column(String(50), nullable=False)  # file, serve, draft, review, prepare, task
    required_doc_type = Column(String(100))
    status = Column(String(30), default="draft")
    priority = Column(String(20), default="medium")
    due_date = Column(Date)
    days_remaining = Column(Integer)
    assigned_to = Column(String(100))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    deadline = relationship("Deadline")
    events = relationship(
        "ActionAuditEvent",
        back_populates="action",
        order_by="ActionAuditEvent.sequence",
    )

    __table_args__ = (
        UniqueConstraint("deadline_id", name="uq_actions_deadline"),
        Index("ix_actions_matter", "matter_id"),
        Index("ix_actions_status", "status"),
    )

    @property
    def audit_trail(self) -> List[Dict]:
        """Ordered, read-only view of the action's audit events"""
        return [event.to_dict() for event in self.events]


class ActionAuditEvent(Base):
    """Append-only audit log entry for an action"""

    __tablename__ = "action_audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action_id = Column(String(36), ForeignKey("actions.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    event = Column(String(50), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    source = Column(String(100), nullable=False)
    details = Column(Text, default="")

    action = relationship("Action", back_populates="events")

    __table_args__ = (
        UniqueConstraint("action_id", "sequence", name="uq_action_audit_sequence"),
    )

    def to_dict(self) -> Dict:
        return {
            "event": self.event,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "source": self.source,
            "details": self.details,
        }


class DraftDocument(Base):
    """Generated first-draft document tied to a filing, deadline and action"""

    __tablename__ = "draft_documents"

    id = Column(String(36), primary_key=True, default=_new_id)
    matter_id = Column(String(36), ForeignKey("matters.id"), nullable=False)
    title = Column(String(500), nullable=False)
    template_type = Column(String(100), nullable=False)  # discovery_response, opposition
    content = Column(Text, nullable=False)
    status = Column(String(50), default="draft")
    linked_filing_id = Column(String(36), ForeignKey("filings.id"))
    linked_deadline_id = Column(String(36), ForeignKey("deadlines.id"))
    linked_action_id = Column(String(36), ForeignKey("actions.id"))
    created_by = Column(String(100))
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_draft_documents_matter", "matter_id"),
    )
