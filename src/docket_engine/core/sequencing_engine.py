"""
Sequencing Engine
Turns open deadlines into prioritized actions and drives the action lifecycle
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import ActionNotFoundError
from ..integrations.task_board import TaskBoardClient
from ..storage.database import session_scope
from ..storage.models import (
    Action,
    ActionAuditEvent,
    Deadline,
    Filing,
    utcnow,
    DEADLINE_PENDING,
    DEADLINE_IN_PROGRESS,
    DEADLINE_COMPLETED,
)

logger = logging.getLogger(__name__)

# Action lifecycle, in order
ACTION_STATUSES = ("draft", "review", "final", "file", "served", "confirmed")
TERMINAL_STATUSES = ("served", "confirmed")
WORKING_STATUSES = ("review", "final", "file")

NO_DUE_DATE_DAYS = 999

# (upper bound on days remaining, priority); first band that fits wins
PRIORITY_BANDS = [
    (0, "critical"),
    (3, "urgent"),
    (7, "high"),
    (14, "medium"),
]

# First keyword hit wins
ACTION_TYPE_KEYWORDS = [
    ("file", ("file",)),
    ("serve", ("serve",)),
    ("draft", ("draft", "respond", "response")),
    ("review", ("review",)),
    ("prepare", ("prepare",)),
]

TASK_STATUS_MAP = {
    "draft": "in-progress",
    "review": "in-progress",
    "final": "in-progress",
    "file": "in-progress",
    "served": "done",
    "confirmed": "done",
}

ACTION_ITEMS_GROUP = "Action Items"
ACTION_ITEMS_COLOR = "#ef4444"
ACTION_ITEMS_ORDER = 100


@dataclass
class NextAction:
    """Candidate action for a deadline that has none yet"""
    title: str
    description: str
    action_type: str
    required_doc_type: Optional[str]
    due_date: Optional[date]
    days_remaining: int
    priority: str
    status: str
    deadline_id: str
    filing_id: Optional[str]


def days_remaining(due_date: Optional[date], now: Optional[datetime] = None) -> int:
    """
    Whole days until a due date, rounded up

    Args:
        due_date: Deadline due date (midnight is the reference point)
        now: Reference moment, defaults to the current time

    Returns:
        ceil((due - now) / 1 day), or 999 when there is no due date
    """

    if not due_date:
        return NO_DUE_DATE_DAYS

    now = now or datetime.now()
    due = datetime(due_date.year, due_date.month, due_date.day)
    return math.ceil((due - now).total_seconds() / 86400)


def priority_for(remaining: int, criticality: Optional[str] = "hard") -> str:
    """Priority band for a days-remaining value"""

    for upper_bound, priority in PRIORITY_BANDS:
        if remaining <= upper_bound:
            return priority
    return "medium" if (criticality or "hard") == "hard" else "low"


def infer_action_type(required_action: Optional[str]) -> str:
    """Keyword-match the deadline's required action text to an action type"""

    text = (required_action or "").lower()
    for action_type, keywords in ACTION_TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return action_type
    return "task"


class SequencingEngine:
    """
    Action sequencing over the shared store.

    Generation is idempotent: at most one Action exists per Deadline, enforced
    by a unique constraint on Action.deadline_id. A constraint violation on
    insert means another writer got there first and the deadline is skipped.
    """

    def __init__(self,
                 session_factory: sessionmaker,
                 task_board: Optional[TaskBoardClient] = None):
        """
        Initialize sequencing engine

        Args:
            session_factory: SQLAlchemy session factory for the shared store
            task_board: Optional task-board collaborator for task sync
        """

        self.session_factory = session_factory
        self.task_board = task_board

        logger.info("Sequencing engine initialized")

    def generate_next_actions(self, matter_id: str, now: Optional[datetime] = None) -> List[NextAction]:
        """
        Candidate actions for open deadlines that have no action yet

        Args:
            matter_id: Matter identifier
            now: Reference moment for days remaining

        Returns:
            NextAction list sorted by days remaining, soonest first
        """

        with session_scope(self.session_factory) as session:
            return self._generate_next_actions(session, matter_id, now or datetime.now())

    def _generate_next_actions(self, session: Session, matter_id: str, now: datetime) -> List[NextAction]:
        deadlines = session.execute(
            select(Deadline)
            .outerjoin(Action, Action.deadline_id == Deadline.id)
            .where(
                Deadline.matter_id == matter_id,
                Deadline.status.in_((DEADLINE_PENDING, DEADLINE_IN_PROGRESS)),
                Action.id.is_(None),
            )
            .order_by(Deadline.due_date)
        ).scalars().all()

        actions = []
        for deadline in deadlines:
            remaining = days_remaining(deadline.due_date, now)
            actions.append(NextAction(
                title=deadline.required_action or deadline.title,
                description=(
                    f"Deadline: {deadline.title}\n"
                    f"Rule: {deadline.rule_source or 'N/A'}\n"
                    f"Anchor: {deadline.anchor_event or 'N/A'} "
                    f"({deadline.anchor_date.isoformat() if deadline.anchor_date else 'N/A'})"
                ),
                action_type=infer_action_type(deadline.required_action),
                required_doc_type=deadline.result_doc_type,
                due_date=deadline.due_date,
                days_remaining=remaining,
                priority=priority_for(remaining, deadline.criticality),
                status="draft",
                deadline_id=deadline.id,
                filing_id=deadline.filing_id,
            ))

        # Stable sort keeps due-date order among equal values
        actions.sort(key=lambda a: a.days_remaining)
        return actions

    def create_actions_from_deadlines(self,
                                      matter_id: str,
                                      assigned_to: Optional[str] = None,
                                      now: Optional[datetime] = None) -> List[str]:
        """
        Persist candidate actions, each with an initial audit entry

        Args:
            matter_id: Matter identifier
            assigned_to: Optional assignee for the new actions
            now: Reference moment for days remaining

        Returns:
            Ids of the actions created by this call, soonest due first
        """

        action_ids = []

        with session_scope(self.session_factory) as session:
            for candidate in self._generate_next_actions(session, matter_id, now or datetime.now()):
                action = Action(
                    matter_id=matter_id,
                    deadline_id=candidate.deadline_id,
                    filing_id=candidate.filing_id,
                    title=candidate.title,
                    description=candidate.description,
                    action_type=candidate.action_type,
                    required_doc_type=candidate.required_doc_type,
                    status=candidate.status,
                    priority=candidate.priority,
                    due_date=candidate.due_date,
                    days_remaining=candidate.days_remaining,
                    assigned_to=assigned_to,
                )

                try:
                    with session.begin_nested():
                        session.add(action)
                        session.flush()
                except IntegrityError:
                    logger.info(f"Action for deadline {candidate.deadline_id} already exists, skipping")
                    continue

                self._append_audit_event(
                    session, action.id, "action_created", "sequencing_engine", "Auto-generated from deadline"
                )
                action_ids.append(action.id)

        logger.info(f"Created {len(action_ids)} action(s) for matter {matter_id}")
        return action_ids

    def update_action_status(self, action_id: str, new_status: str, user_id: Optional[str] = None) -> Action:
        """
        Move an action to a new lifecycle status.

        Transitions are not validated; any status may follow any other. The
        engine reacts to the value: served/confirmed completes the linked
        deadline, review/final/file marks a pending deadline in progress, and
        a linked task-board item gets the mapped task status.

        Args:
            action_id: Action identifier
            new_status: Lifecycle status to set
            user_id: Acting party, recorded as "system" when omitted

        Returns:
            Updated Action

        Raises:
            ActionNotFoundError: unknown action id
        """

        if new_status not in ACTION_STATUSES:
            logger.warning(f"Action {action_id} set to non-lifecycle status '{new_status}'")

        with session_scope(self.session_factory) as session:
            action = session.get(Action, action_id)
            if not action:
                raise ActionNotFoundError(action_id)

            old_status = action.status
            action.status = new_status
            action.updated_at = utcnow()

            self._append_audit_event(
                session, action.id, "status_change", user_id or "system",
                f"Status changed from {old_status} to {new_status}",
            )

            if action.deadline_id:
                deadline = session.get(Deadline, action.deadline_id)
                if deadline:
                    self._apply_deadline_side_effect(deadline, new_status)

            task_id = action.task_id
            session.flush()
            session.refresh(action)
            # Load the trail before the session closes
            _ = action.events

        if task_id and self.task_board:
            task_status = TASK_STATUS_MAP.get(new_status, "not-started")
            self.task_board.update_task_status(task_id, task_status)
            logger.debug(f"Task {task_id} set to {task_status}")

        logger.info(f"Action {action_id}: {old_status} -> {new_status}")
        return action

    def _apply_deadline_side_effect(self, deadline: Deadline, new_status: str) -> None:
        if new_status in TERMINAL_STATUSES:
            if deadline.status != DEADLINE_COMPLETED:
                deadline.status = DEADLINE_COMPLETED
                deadline.completed_at = utcnow()
                logger.info(f"Deadline {deadline.id} completed")
        elif new_status in WORKING_STATUSES and deadline.status == DEADLINE_PENDING:
            deadline.status = DEADLINE_IN_PROGRESS

    def _append_audit_event(self,
                            session: Session,
                            action_id: str,
                            event: str,
                            source: str,
                            details: str,
                            attempts: int = 3) -> ActionAuditEvent:
        """Append an event at the next sequence number, retrying on a sequence clash"""

        for attempt in range(attempts):
            next_sequence = session.execute(
                select(func.coalesce(func.max(ActionAuditEvent.sequence), 0))
                .where(ActionAuditEvent.action_id == action_id)
            ).scalar_one() + 1

            entry = ActionAuditEvent(
                action_id=action_id,
                sequence=next_sequence,
                event=event,
                timestamp=utcnow(),
                source=source,
                details=details,
            )
            try:
                with session.begin_nested():
                    session.add(entry)
                    session.flush()
                return entry
            except IntegrityError:
                if attempt == attempts - 1:
                    raise
                logger.warning(f"Audit sequence {next_sequence} taken for action {action_id}, retrying")

    def create_board_tasks_from_actions(self, matter_id: str, board_id: str) -> List[str]:
        """
        Create one board task per action that has none, under "Action Items"

        Args:
            matter_id: Matter identifier
            board_id: Target board

        Returns:
            Ids of the tasks created by this call
        """

        if not self.task_board:
            logger.warning("No task board configured; skipping task creation")
            return []

        with session_scope(self.session_factory) as session:
            actions = session.execute(
                select(Action)
                .where(Action.matter_id == matter_id, Action.task_id.is_(None))
                .order_by(Action.due_date, Action.created_at)
            ).scalars().all()

        if not actions:
            return []

        group = self.task_board.find_group(board_id, ACTION_ITEMS_GROUP)
        if not group:
            group = self.task_board.create_group(
                board_id, ACTION_ITEMS_GROUP, ACTION_ITEMS_COLOR, ACTION_ITEMS_ORDER
            )

        task_ids = []
        for action in actions:
            task = self.task_board.create_task(
                board_id,
                group.id,
                title=action.title,
                description=action.description or "",
                status="not-started",
                priority=action.priority or "medium",
                due_date=action.due_date.isoformat() if action.due_date else None,
                assigned_to=action.assigned_to,
            )

            # Link is committed per task so a later board failure keeps it
            with session_scope(self.session_factory) as session:
                session.get(Action, action.id).task_id = task.id
            task_ids.append(task.id)

        logger.info(f"Created {len(task_ids)} board task(s) on board {board_id}")
        return task_ids

    @staticmethod
    def get_case_phase(filings: Iterable) -> str:
        """
        Procedural phase implied by the filing types seen so far.

        Checks run in a fixed order and the first hit returns: settlement,
        then scheduling order plus any discovery filing, then motions, then
        discovery, then post-answer, then pleadings.

        Args:
            filings: Filings, or bare document type strings
        """

        types: Sequence[str] = [
            f if isinstance(f, str) else (f.doc_type or "") for f in filings
        ]

        if "Settlement/Stipulation" in types:
            return "settlement"
        if "Scheduling Order" in types and any("Discovery" in t for t in types):
            return "discovery"
        if "Motion" in types:
            return "motions"
        if "Discovery Request" in types or "Discovery Response" in types:
            return "discovery"
        if "Answer" in types:
            return "post-answer"
        if "Complaint/Petition" in types:
            return "pleadings"
        return "initial"

    def get_case_phase_for_matter(self, matter_id: str) -> str:
        with session_scope(self.session_factory) as session:
            doc_types = session.execute(
                select(Filing.doc_type).where(Filing.matter_id == matter_id)
            ).scalars().all()
        return self.get_case_phase(doc_types)
