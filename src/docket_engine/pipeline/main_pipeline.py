"""
Main Pipeline Orchestrator
Coordinates filing ingestion: dates, classification, deadlines, actions,
task board, drafts and calendar
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..config import EngineConfig
from ..core.date_extractor import DateExtractor, DateExtractionResult, ExtractedDate, parse_date
from ..core.deadline_engine import DeadlineRuleEngine
from ..core.document_builder import DocumentBuilder
from ..core.document_classifier import (
    ClassificationResult,
    DocumentClassifier,
    MatterContext,
    classify_by_file_name,
    OTHER,
    FALLBACK_CATEGORY,
)
from ..core.sequencing_engine import SequencingEngine
from ..core.text_generation import BedrockTextGenerator
from ..exceptions import DocketEngineError, FilingNotFoundError, MatterNotFoundError
from ..integrations.calendar_sync import CalendarClient, InMemoryCalendar
from ..integrations.task_board import TaskBoardClient, InMemoryTaskBoard
from ..storage.database import create_engine_from_url, create_session_factory, init_db, session_scope
from ..storage.models import Action, Deadline, DraftDocument, Filing, Matter
from ..utils.logger import setup_logger, AuditLogger

logger = logging.getLogger(__name__)

FILENAME_FALLBACK_CONFIDENCE = 0.4
LOW_CONFIDENCE_THRESHOLD = 0.5

# Filing category -> name fragment of the board that receives its tasks
BOARD_SUFFIXES = {
    "discovery": "Discovery",
    "motion": "Motions",
}
DEFAULT_BOARD_SUFFIX = "Filings"

DATE_FIELDS = ("filed", "served", "hearing")


@dataclass
class IngestionResult:
    """Result of ingesting one filing"""
    matter_id: str
    file_name: str
    status: str = "processing"  # success, failed
    filing_id: Optional[str] = None
    doc_type: Optional[str] = None
    doc_subtype: Optional[str] = None
    doc_category: Optional[str] = None
    classification_confidence: float = 0.0
    classified_by: Optional[str] = None
    dates: Dict = field(default_factory=dict)
    date_extraction: Dict = field(default_factory=dict)
    jurisdiction: Optional[str] = None
    deadline_ids: List[str] = field(default_factory=list)
    action_ids: List[str] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)
    draft_ids: List[str] = field(default_factory=list)
    case_phase: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    processing_time: float = 0.0
    audit_trail: List[Dict] = field(default_factory=list)

    @property
    def deadlines_created(self) -> int:
        return len(self.deadline_ids)

    @property
    def actions_created(self) -> int:
        return len(self.action_ids)

    @property
    def drafts_created(self) -> int:
        return len(self.draft_ids)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["deadlines_created"] = self.deadlines_created
        data["actions_created"] = self.actions_created
        data["drafts_created"] = self.drafts_created
        return data


class IngestionPipeline:
    """
    Main orchestrator for filing ingestion.

    Classification, drafting and collaborator sync degrade instead of
    failing; store errors propagate to the caller.
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 session_factory: Optional[sessionmaker] = None,
                 text_generator=None,
                 task_board: Optional[TaskBoardClient] = None,
                 calendar: Optional[CalendarClient] = None,
                 audit_logger: Optional[AuditLogger] = None):
        """Initialize pipeline with configuration and collaborators"""

        self.config = config or EngineConfig()

        if session_factory is None:
            engine = create_engine_from_url(self.config.database_url)
            init_db(engine)
            session_factory = create_session_factory(engine)
        self.session_factory = session_factory

        if text_generator is None:
            text_generator = BedrockTextGenerator(
                model_id=self.config.bedrock_model_id,
                region=self.config.bedrock_region,
                timeout=self.config.classification_timeout,
            )

        self.task_board = task_board or InMemoryTaskBoard()
        self.calendar = calendar or InMemoryCalendar()

        if audit_logger is None and self.config.audit_log_dir:
            audit_logger = AuditLogger(self.config.audit_log_dir)
        self.audit_logger = audit_logger

        self._init_components(text_generator)

        self.stats = {
            "filings_ingested": 0,
            "classification_failures": 0,
            "deadlines_created": 0,
            "actions_created": 0,
            "drafts_created": 0,
        }

    def _init_components(self, text_generator):
        self.date_extractor = DateExtractor()
        self.classifier = DocumentClassifier(
            text_generator=text_generator,
            timeout=self.config.classification_timeout,
            max_text_chars=self.config.max_classification_chars,
            max_tokens=self.config.classification_max_tokens,
        )
        self.deadline_engine = DeadlineRuleEngine(
            self.session_factory,
            adjust_for_court_holidays=self.config.adjust_for_court_holidays,
        )
        self.sequencing_engine = SequencingEngine(self.session_factory, task_board=self.task_board)
        self.document_builder = DocumentBuilder(self.session_factory)

        logger.info("Ingestion pipeline components initialized")

    def create_matter(self,
                      name: str,
                      case_number: Optional[str] = None,
                      court_name: Optional[str] = None) -> Matter:
        """Register a matter so filings can be ingested against it"""

        with session_scope(self.session_factory) as session:
            matter = Matter(name=name, case_number=case_number, court_name=court_name)
            session.add(matter)
            session.flush()
        logger.info(f"Created matter {matter.id} ({name})")
        return matter

    async def ingest(self,
                     matter_id: str,
                     text: str,
                     file_name: str,
                     filed_date: Optional[str] = None,
                     served_date: Optional[str] = None,
                     hearing_date: Optional[str] = None,
                     upload_date: Optional[datetime] = None,
                     created_by: str = "system",
                     assigned_to: Optional[str] = None,
                     now: Optional[datetime] = None) -> IngestionResult:
        """
        Ingest a filing through the complete pipeline

        Args:
            matter_id: Owning matter
            text: Already-extracted plain text of the document
            file_name: Original file name
            filed_date, served_date, hearing_date: Caller-supplied dates,
                which override anything extracted
            upload_date: Upload timestamp, used as a last-resort filed date
            created_by: Acting user
            assigned_to: Assignee for generated deadlines and actions
            now: Reference moment for days remaining

        Returns:
            IngestionResult with counts, case phase and warnings

        Raises:
            MatterNotFoundError: unknown matter id
        """

        start_time = datetime.now()
        result = IngestionResult(matter_id=matter_id, file_name=file_name)
        text = text or ""

        matter_context = self._load_matter_context(matter_id)

        # Step 1: Regex date extraction
        self._log_step(result, "Extracting dates with pattern cascade")
        regex_dates = self.date_extractor.extract(text)

        # Step 2: Classification (capability or file-name fallback)
        self._log_step(result, "Classifying document")
        classification, classified_by = await self._classify(text, file_name, matter_context, result)

        # Step 3: Merge dates
        self._log_step(result, "Merging caller, classification and regex dates")
        supplied = {"filed": filed_date, "served": served_date, "hearing": hearing_date}
        merged = self._merge_dates(supplied, classification, regex_dates)

        if not merged["filed"] and not merged["served"]:
            result.warnings.append("No filed or served date found - dates may need manual entry")
            merged["filed"] = self.date_extractor.fallback_date(upload_date)

        # Step 4: Persist filing
        self._log_step(result, f"Persisting filing as {classification.doc_type}")
        filing = self._persist_filing(
            matter_id, text, file_name, classification, classified_by, merged, regex_dates, created_by
        )
        result.filing_id = filing.id
        result.doc_type = filing.doc_type
        result.doc_subtype = filing.doc_subtype
        result.doc_category = filing.doc_category
        result.classification_confidence = filing.classification_confidence
        result.classified_by = classified_by
        result.dates = {k: (v.value if v else None) for k, v in merged.items()}
        result.date_extraction = filing.extracted_facts.get("dateExtraction", {})
        self._audit("filing_ingested", {
            "filing_id": filing.id,
            "matter_id": matter_id,
            "file_name": file_name,
            "doc_type": filing.doc_type,
            "confidence": filing.classification_confidence,
            "classified_by": classified_by,
        })

        # Steps 5-10: deadlines, actions, tasks, drafts, calendar, phase
        await self._sequence(result, filing, assigned_to, now)

        if classification.confidence < LOW_CONFIDENCE_THRESHOLD:
            result.warnings.append("Low classification confidence - verify document type")

        result.status = "success"
        result.processing_time = (datetime.now() - start_time).total_seconds()
        self._update_statistics(result)

        logger.info(
            f"Ingested '{file_name}' as {result.doc_type}: {result.deadlines_created} deadline(s), "
            f"{result.actions_created} action(s), {result.drafts_created} draft(s)"
        )
        return result

    async def refresh_filing(self,
                             filing_id: str,
                             assigned_to: Optional[str] = None,
                             now: Optional[datetime] = None) -> IngestionResult:
        """
        Re-run deadline and action generation for a stored filing.

        Used after reference data or a filing's dates change; only rules and
        deadlines not yet materialized produce new rows.

        Raises:
            FilingNotFoundError: unknown filing id
        """

        with session_scope(self.session_factory) as session:
            filing = session.get(Filing, filing_id)
            if not filing:
                raise FilingNotFoundError(filing_id)

        result = IngestionResult(
            matter_id=filing.matter_id,
            file_name=filing.original_file_name,
            filing_id=filing.id,
            doc_type=filing.doc_type,
            doc_subtype=filing.doc_subtype,
            doc_category=filing.doc_category,
            classification_confidence=filing.classification_confidence,
            classified_by=filing.classified_by,
        )
        await self._sequence(result, filing, assigned_to, now)
        result.status = "success"
        return result

    async def _sequence(self,
                        result: IngestionResult,
                        filing: Filing,
                        assigned_to: Optional[str],
                        now: Optional[datetime]):
        matter_id = filing.matter_id

        # Step 5: Jurisdiction and deadlines
        self._log_step(result, "Computing deadlines from jurisdiction rules")
        jurisdiction = self.deadline_engine.get_jurisdiction_for_matter(matter_id)
        if jurisdiction:
            result.jurisdiction = jurisdiction.name
        else:
            result.warnings.append("Unknown jurisdiction - deadline rules may be incomplete")

        result.deadline_ids = self.deadline_engine.create_deadlines_from_filing(
            filing, jurisdiction.id if jurisdiction else None, assigned_to
        )
        if result.deadline_ids:
            self._audit("deadlines_created", {"filing_id": filing.id, "deadline_ids": result.deadline_ids})

        # Step 6: Actions
        self._log_step(result, "Sequencing actions for open deadlines")
        result.action_ids = self.sequencing_engine.create_actions_from_deadlines(matter_id, assigned_to, now)
        if result.action_ids:
            self._audit("actions_created", {"matter_id": matter_id, "action_ids": result.action_ids})

        # Step 7: Task board
        self._push_to_board(result, matter_id, filing.doc_category)

        # Step 8: Drafts
        self._log_step(result, "Generating draft documents")
        result.draft_ids = self._generate_drafts(matter_id, filing.created_by)

        # Step 9: Calendar (fire-and-forget)
        self._log_step(result, "Syncing calendar")
        self._sync_calendar(filing.id, result.deadline_ids, result.action_ids)

        # Step 10: Case phase
        result.case_phase = self.sequencing_engine.get_case_phase_for_matter(matter_id)

    def _load_matter_context(self, matter_id: str) -> MatterContext:
        with session_scope(self.session_factory) as session:
            matter = session.get(Matter, matter_id)
            if not matter:
                raise MatterNotFoundError(matter_id)
            return MatterContext(case_number=matter.case_number, court_name=matter.court_name)

    async def _classify(self,
                        text: str,
                        file_name: str,
                        matter_context: MatterContext,
                        result: IngestionResult):
        """Classification plus how it was obtained ("ai" or "filename")"""

        hint = classify_by_file_name(file_name)

        if len(text) <= self.config.min_text_length_for_ai:
            return ClassificationResult(
                doc_type=hint.get("doc_type", OTHER),
                doc_subtype=hint.get("doc_subtype"),
                doc_category=hint.get("doc_category", FALLBACK_CATEGORY),
                confidence=FILENAME_FALLBACK_CONFIDENCE,
            ), "filename"

        classification = await self.classifier.classify(text, file_name, matter_context)
        if not classification.failed:
            return classification, "ai"

        self.stats["classification_failures"] += 1
        error = classification.extracted_facts["classificationError"]
        result.warnings.append(f"Classification failed ({error})")

        if hint:
            # Keep zero confidence and the recorded error; only the type comes from the name
            classification.doc_type = hint["doc_type"]
            classification.doc_subtype = hint.get("doc_subtype")
            classification.doc_category = hint["doc_category"]
            return classification, "filename"

        return classification, "ai"

    def _merge_dates(self,
                     supplied: Dict[str, Optional[str]],
                     classification: ClassificationResult,
                     regex_dates: DateExtractionResult) -> Dict[str, Optional[ExtractedDate]]:
        """Caller-supplied dates win, then classification dates, then regex dates"""

        merged = {}
        for name in DATE_FIELDS:
            value = None

            caller_value = parse_date(supplied.get(name)) if supplied.get(name) else None
            ai_value = getattr(classification, f"{name}_date")
            regex_value = getattr(regex_dates, f"{name}_date")

            if caller_value:
                value = ExtractedDate(caller_value, name, 1.0, "manual", supplied[name])
            elif ai_value:
                value = ExtractedDate(ai_value, name, classification.confidence, "ai", ai_value)
            elif regex_value:
                value = regex_value

            merged[name] = value
        return merged

    def _persist_filing(self,
                        matter_id: str,
                        text: str,
                        file_name: str,
                        classification: ClassificationResult,
                        classified_by: str,
                        merged: Dict[str, Optional[ExtractedDate]],
                        regex_dates: DateExtractionResult,
                        created_by: str) -> Filing:

        def as_date(name: str) -> Optional[date]:
            return merged[name].as_date() if merged[name] else None

        served = as_date("served")
        anchor = parse_date(classification.response_deadline_anchor) if classification.response_deadline_anchor else None

        facts = dict(classification.extracted_facts)
        facts["dateExtraction"] = {
            "regexDates": regex_dates.to_dict(),
            "aiDates": {
                "filed": classification.filed_date,
                "served": classification.served_date,
                "hearing": classification.hearing_date,
            },
        }

        with session_scope(self.session_factory) as session:
            filing = Filing(
                matter_id=matter_id,
                original_file_name=file_name,
                text=text,
                doc_type=classification.doc_type,
                doc_subtype=classification.doc_subtype,
                doc_category=classification.doc_category,
                classification_confidence=classification.confidence,
                filed_date=as_date("filed"),
                served_date=served,
                hearing_date=as_date("hearing"),
                response_deadline_anchor=date.fromisoformat(anchor) if anchor else served,
                date_provenance={k: v.to_dict() for k, v in merged.items() if v},
                parties_involved=classification.parties_involved,
                extracted_facts=facts,
                related_doc_reference=classification.related_doc_reference,
                classified_by=classified_by,
                created_by=created_by,
            )
            session.add(filing)
            session.flush()

        return filing

    def _target_board_id(self, matter_id: str, category: Optional[str]) -> Optional[str]:
        """Board whose name carries the category's suffix, else the matter's first board"""

        boards = self.task_board.list_boards(matter_id)
        if not boards:
            return None

        suffix = BOARD_SUFFIXES.get(category or "", DEFAULT_BOARD_SUFFIX)
        for board in boards:
            if suffix in board.name:
                return board.id
        return boards[0].id

    def _push_to_board(self, result: IngestionResult, matter_id: str, category: Optional[str]):
        try:
            board_id = self._target_board_id(matter_id, category)
            if not board_id:
                logger.info(f"No task board for matter {matter_id}; actions not pushed")
                return

            self._log_step(result, "Pushing actions to task board")
            result.task_ids = self.sequencing_engine.create_board_tasks_from_actions(matter_id, board_id)
        except Exception as e:
            logger.error(f"Task board error (non-fatal): {e}")
            result.warnings.append(f"Task board sync failed: {e}")

    def _generate_drafts(self, matter_id: str, created_by: Optional[str]) -> List[str]:
        """Persist a draft for every draft-status action that has none yet"""

        with session_scope(self.session_factory) as session:
            drafted = select(DraftDocument.linked_action_id).where(
                DraftDocument.linked_action_id.is_not(None)
            )
            actions = session.execute(
                select(Action).where(
                    Action.matter_id == matter_id,
                    Action.status == "draft",
                    Action.id.not_in(drafted),
                ).order_by(Action.due_date)
            ).scalars().all()
            pending = [
                (a.id, a.action_type, a.required_doc_type, a.filing_id, a.deadline_id) for a in actions
            ]

        draft_ids = []
        for action_id, action_type, required_doc_type, filing_id, deadline_id in pending:
            try:
                draft = self.document_builder.generate_draft_for_action(
                    matter_id, action_type, required_doc_type, filing_id, deadline_id, action_id
                )
            except Exception as e:
                logger.error(f"Draft generation failed for action {action_id} (non-fatal): {e}")
                continue
            if draft is None:
                continue

            draft.created_by = created_by
            with session_scope(self.session_factory) as session:
                session.add(draft)
                session.flush()
            draft_ids.append(draft.id)
            self._audit("draft_generated", {
                "draft_id": draft.id,
                "action_id": action_id,
                "template_type": draft.template_type,
            })

        return draft_ids

    def _sync_calendar(self, filing_id: str, deadline_ids: List[str], action_ids: List[str]):
        try:
            with session_scope(self.session_factory) as session:
                filing = session.get(Filing, filing_id)
                deadlines = [session.get(Deadline, d) for d in deadline_ids]
                actions = [session.get(Action, a) for a in action_ids]

            self.calendar.sync_filing(filing)
            for deadline in deadlines:
                self.calendar.sync_deadline(deadline)
            for action in actions:
                self.calendar.sync_action(action)
        except Exception as e:
            logger.error(f"Calendar sync error (non-fatal): {e}")

    def _audit(self, event: str, data: Dict):
        if self.audit_logger:
            self.audit_logger.log(event, data)

    def _log_step(self, result: IngestionResult, message: str):
        """Log processing step to audit trail"""

        entry = {
            "timestamp": datetime.now().isoformat(),
            "step": message,
            "file_name": result.file_name,
        }

        result.audit_trail.append(entry)
        logger.info(f"[{result.file_name}] {message}")

    def _update_statistics(self, result: IngestionResult):
        self.stats["filings_ingested"] += 1
        self.stats["deadlines_created"] += result.deadlines_created
        self.stats["actions_created"] += result.actions_created
        self.stats["drafts_created"] += result.drafts_created

    def get_statistics(self) -> Dict:
        """Get pipeline statistics"""
        return self.stats.copy()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docket-engine", description="Legal filing ingestion")
    subparsers = parser.add_subparsers(dest="command", required=True)

    matter_parser = subparsers.add_parser("create-matter", help="Register a matter")
    matter_parser.add_argument("name")
    matter_parser.add_argument("--case-number")
    matter_parser.add_argument("--court")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest an extracted-text filing")
    ingest_parser.add_argument("matter_id")
    ingest_parser.add_argument("text_file")
    ingest_parser.add_argument("--filename", help="Original file name (defaults to the text file name)")
    ingest_parser.add_argument("--filed-date")
    ingest_parser.add_argument("--served-date")
    ingest_parser.add_argument("--hearing-date")
    ingest_parser.add_argument("--assign-to")

    status_parser = subparsers.add_parser("set-status", help="Move an action through its lifecycle")
    status_parser.add_argument("action_id")
    status_parser.add_argument("status")
    status_parser.add_argument("--user")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point"""

    args = _build_parser().parse_args(argv)
    config = EngineConfig.from_env()
    setup_logger("docket_engine", config.log_level, config.audit_log_dir)

    pipeline = IngestionPipeline(config)

    try:
        if args.command == "create-matter":
            matter = pipeline.create_matter(args.name, args.case_number, args.court)
            output = {"matter_id": matter.id, "name": matter.name}

        elif args.command == "ingest":
            text_path = Path(args.text_file)
            text = text_path.read_text(encoding="utf-8", errors="replace")
            result = asyncio.run(pipeline.ingest(
                args.matter_id,
                text,
                args.filename or text_path.name,
                filed_date=args.filed_date,
                served_date=args.served_date,
                hearing_date=args.hearing_date,
                assigned_to=args.assign_to,
            ))
            output = result.to_dict()

        else:
            action = pipeline.sequencing_engine.update_action_status(args.action_id, args.status, args.user)
            output = {"action_id": action.id, "status": action.status, "audit_trail": action.audit_trail}

    except DocketEngineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
