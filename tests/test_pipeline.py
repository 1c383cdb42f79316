"""
End-to-end ingestion tests against an in-memory store
"""

from datetime import datetime

import pytest
from sqlalchemy import select

from docket_engine.config import EngineConfig
from docket_engine.exceptions import FilingNotFoundError, MatterNotFoundError
from docket_engine.integrations import InMemoryCalendar, InMemoryTaskBoard
from docket_engine.integrations.calendar_sync import CalendarClient
from docket_engine.integrations.task_board import TaskBoardClient
from docket_engine.pipeline import IngestionPipeline
from docket_engine.storage import Action, Deadline, DraftDocument, Filing, session_scope
from docket_engine.utils.logger import AuditLogger

from conftest import FakeTextGenerator

NOW = datetime(2024, 3, 29)

INTERROGATORIES_TEXT = """IN THE THIRD JUDICIAL DISTRICT COURT, SALT LAKE COUNTY
ACME CORP, Plaintiff, vs. WIDGET CO., Defendant.
PLAINTIFF'S FIRST SET OF INTERROGATORIES TO DEFENDANT
Filed: February 28, 2024
INTERROGATORY NO. 1: Identify every person with knowledge of the facts alleged.
CERTIFICATE OF SERVICE
Served on: 3/1/2024 via email to counsel of record.
"""


@pytest.fixture
def board():
    return InMemoryTaskBoard()


@pytest.fixture
def calendar():
    return InMemoryCalendar()


@pytest.fixture
def audit_logger(tmp_path):
    return AuditLogger(str(tmp_path))


def build_pipeline(session_factory, generator, board, calendar, audit_logger):
    return IngestionPipeline(
        config=EngineConfig(audit_log_dir=None),
        session_factory=session_factory,
        text_generator=generator,
        task_board=board,
        calendar=calendar,
        audit_logger=audit_logger,
    )


@pytest.mark.asyncio
async def test_ingest_interrogatories_end_to_end(session_factory, matter, interrogatories_reply,
                                                 board, calendar, audit_logger):
    target = board.create_board(matter.id, "Acme - Discovery")
    board.create_board(matter.id, "Acme - Motions")
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, calendar, audit_logger
    )

    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", now=NOW)

    assert result.status == "success"
    assert result.doc_type == "Discovery Request"
    assert result.doc_subtype == "Interrogatories"
    assert result.classified_by == "ai"
    assert result.jurisdiction == "Utah State Courts"
    assert result.dates == {"filed": "2024-02-28", "served": "2024-03-01", "hearing": None}
    assert result.deadlines_created == 1
    assert result.actions_created == 1
    assert result.drafts_created == 1
    assert len(result.task_ids) == 1
    assert result.case_phase == "discovery"
    assert result.warnings == []

    with session_scope(session_factory) as session:
        filing = session.get(Filing, result.filing_id)
        deadline = session.execute(select(Deadline)).scalar_one()
        action = session.execute(select(Action)).scalar_one()
        draft = session.execute(select(DraftDocument)).scalar_one()

    assert filing.date_provenance["served"]["source"] == "ai"
    assert filing.date_provenance["filed"]["source"] == "regex"
    assert filing.extracted_facts["dateExtraction"]["regexDates"]["served"]["value"] == "2024-03-01"
    assert deadline.due_date.isoformat() == "2024-03-31"
    assert action.days_remaining == 2
    assert action.priority == "urgent"
    assert action.task_id in {t.id for t in target.tasks}
    assert draft.linked_action_id == action.id
    assert draft.template_type == "discovery_response"

    assert calendar.get_event("deadline", deadline.id).event_date == deadline.due_date
    assert calendar.get_event("filing", filing.id) is not None
    assert len(calendar.events_for_matter(matter.id)) == 3

    events = [e["event"] for e in audit_logger.read_events()]
    assert events == ["filing_ingested", "deadlines_created", "actions_created", "draft_generated"]


@pytest.mark.asyncio
async def test_caller_dates_override_extracted_dates(session_factory, matter, interrogatories_reply,
                                                     board, calendar, audit_logger):
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, calendar, audit_logger
    )

    result = await pipeline.ingest(
        matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", served_date="2024-03-05", now=NOW
    )

    assert result.dates["served"] == "2024-03-05"
    with session_scope(session_factory) as session:
        deadline = session.execute(select(Deadline)).scalar_one()
    assert deadline.due_date.isoformat() == "2024-04-04"


@pytest.mark.asyncio
async def test_short_text_uses_file_name_fallback(session_factory, matter, board, calendar, audit_logger):
    generator = FakeTextGenerator(reply={"docType": "Answer", "confidence": 0.99})
    pipeline = build_pipeline(session_factory, generator, board, calendar, audit_logger)

    result = await pipeline.ingest(
        matter.id, "scanned image", "Motion to Compel.pdf", filed_date="2024-04-01", now=NOW
    )

    assert generator.calls == []
    assert result.doc_type == "Motion"
    assert result.doc_subtype == "Motion to Compel"
    assert result.classification_confidence == 0.4
    assert result.classified_by == "filename"
    assert result.deadlines_created == 2
    assert result.drafts_created == 2
    assert "Low classification confidence - verify document type" in result.warnings


@pytest.mark.asyncio
async def test_capability_failure_degrades_to_file_name(session_factory, matter, generation_error,
                                                       board, calendar, audit_logger):
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(error=generation_error), board, calendar, audit_logger
    )

    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "First Set of Interrogatories.pdf", now=NOW)

    assert result.status == "success"
    assert result.doc_type == "Discovery Request"
    assert result.doc_subtype == "Interrogatories"
    assert result.classification_confidence == 0.0
    assert result.classified_by == "filename"
    assert any(w.startswith("Classification failed") for w in result.warnings)

    with session_scope(session_factory) as session:
        filing = session.get(Filing, result.filing_id)
    assert filing.extracted_facts["classificationError"] == "Bedrock unavailable"
    # Dates still come from the regex cascade
    assert result.dates["served"] == "2024-03-01"
    assert result.deadlines_created == 1


@pytest.mark.asyncio
async def test_missing_dates_fall_back_to_upload_date(session_factory, matter, board, calendar, audit_logger):
    generator = FakeTextGenerator(reply={"docType": "Complaint/Petition", "confidence": 0.9})
    pipeline = build_pipeline(session_factory, generator, board, calendar, audit_logger)
    text = "COMPLAINT FOR BREACH OF CONTRACT. Plaintiff alleges as follows. " * 5

    result = await pipeline.ingest(
        matter.id, text, "complaint.pdf", upload_date=datetime(2024, 3, 10, 14, 0), now=NOW
    )

    assert result.dates["filed"] == "2024-03-10"
    assert "No filed or served date found - dates may need manual entry" in result.warnings
    assert result.case_phase == "pleadings"
    with session_scope(session_factory) as session:
        filing = session.get(Filing, result.filing_id)
    assert filing.date_provenance["filed"]["source"] == "fallback"
    assert filing.date_provenance["filed"]["confidence"] == 0.2


@pytest.mark.asyncio
async def test_unknown_matter_raises(session_factory, board, calendar, audit_logger):
    pipeline = build_pipeline(session_factory, FakeTextGenerator(reply={}), board, calendar, audit_logger)

    with pytest.raises(MatterNotFoundError):
        await pipeline.ingest("missing", INTERROGATORIES_TEXT, "x.pdf")


@pytest.mark.asyncio
async def test_refresh_filing_is_idempotent(session_factory, matter, interrogatories_reply,
                                            board, calendar, audit_logger):
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, calendar, audit_logger
    )
    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", now=NOW)

    refreshed = await pipeline.refresh_filing(result.filing_id, now=NOW)

    assert refreshed.deadline_ids == []
    assert refreshed.action_ids == []
    assert refreshed.draft_ids == []
    with pytest.raises(FilingNotFoundError):
        await pipeline.refresh_filing("missing")


@pytest.mark.asyncio
async def test_calendar_failure_is_not_fatal(session_factory, matter, interrogatories_reply, board, audit_logger):
    class BrokenCalendar(InMemoryCalendar):
        def sync_event(self, *args, **kwargs):
            raise ConnectionError("calendar offline")

    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, BrokenCalendar(), audit_logger
    )

    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", now=NOW)

    assert result.status == "success"
    assert result.actions_created == 1



@pytest.mark.asyncio
async def test_task_board_failure_is_not_fatal(session_factory, matter, interrogatories_reply, calendar, audit_logger):
    class BrokenBoard(InMemoryTaskBoard):
        def create_task(self, board_id, group_id, **fields):
            raise ConnectionError("board down")

    board = BrokenBoard()
    board.create_board(matter.id, "Acme - Discovery")
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, calendar, audit_logger
    )

    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", now=NOW)

    assert result.status == "success"
    assert result.actions_created == 1
    assert result.task_ids == []
    assert result.drafts_created == 1
    assert result.case_phase == "discovery"
    assert any("board down" in w for w in result.warnings)
    assert len(calendar.events_for_matter(matter.id)) == 3


@pytest.mark.asyncio
async def test_numeric_set_number_still_drafts(session_factory, matter, interrogatories_reply,
                                               board, calendar, audit_logger):
    interrogatories_reply["extractedFacts"] = {"discoverySetNumber": 1}
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, calendar, audit_logger
    )

    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", now=NOW)

    assert result.drafts_created == 1
    with session_scope(session_factory) as session:
        draft = session.get(DraftDocument, result.draft_ids[0])
    assert draft.title == "DRAFT - Responses to Interrogatories (1)"


@pytest.mark.asyncio
async def test_draft_failure_is_skipped(session_factory, matter, interrogatories_reply, board, calendar, audit_logger):
    pipeline = build_pipeline(
        session_factory, FakeTextGenerator(reply=interrogatories_reply), board, calendar, audit_logger
    )

    def broken_draft(*args, **kwargs):
        raise ValueError("template error")

    pipeline.document_builder.generate_draft_for_action = broken_draft

    result = await pipeline.ingest(matter.id, INTERROGATORIES_TEXT, "interrogatories.pdf", now=NOW)

    assert result.status == "success"
    assert result.actions_created == 1
    assert result.drafts_created == 0
    assert len(calendar.events_for_matter(matter.id)) == 3


def test_statistics_start_empty(session_factory, board, calendar, audit_logger):
    pipeline = build_pipeline(session_factory, FakeTextGenerator(reply={}), board, calendar, audit_logger)

    assert pipeline.get_statistics()["filings_ingested"] == 0


@pytest.mark.parametrize("interface", [TaskBoardClient, CalendarClient])
def test_collaborator_interfaces_are_abstract(interface):
    with pytest.raises(TypeError):
        interface()
