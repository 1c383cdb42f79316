"""
Tests for action generation, lifecycle side effects and task-board sync
"""

from datetime import date, datetime

import pytest
from sqlalchemy import select

from docket_engine.core.deadline_engine import DeadlineRuleEngine
from docket_engine.core.sequencing_engine import (
    SequencingEngine,
    days_remaining,
    infer_action_type,
    priority_for,
)
from docket_engine.exceptions import ActionNotFoundError
from docket_engine.integrations import InMemoryTaskBoard
from docket_engine.storage import Action, Deadline, Filing, session_scope

NOW = datetime(2024, 3, 29)

PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3, "critical": 4}


def ingest_filing(session_factory, matter_id, **fields):
    """Store a filing and materialize its deadlines"""
    fields.setdefault("original_file_name", "filing.pdf")
    with session_scope(session_factory) as session:
        filing = Filing(matter_id=matter_id, **fields)
        session.add(filing)
        session.flush()

    engine = DeadlineRuleEngine(session_factory)
    jurisdiction = engine.get_jurisdiction_for_matter(matter_id)
    engine.create_deadlines_from_filing(filing, jurisdiction.id)
    return filing


@pytest.fixture
def interrogatories(session_factory, matter):
    return ingest_filing(
        session_factory, matter.id,
        doc_type="Discovery Request",
        doc_subtype="Interrogatories",
        served_date=date(2024, 3, 1),
    )


@pytest.fixture
def motion(session_factory, matter):
    return ingest_filing(
        session_factory, matter.id,
        doc_type="Motion",
        filed_date=date(2024, 4, 1),
    )


def test_days_remaining_and_priority_for_end_to_end_scenario():
    remaining = days_remaining(date(2024, 3, 31), NOW)

    assert remaining == 2
    assert priority_for(remaining, "hard") == "urgent"


def test_days_remaining_rounds_up_partial_days():
    assert days_remaining(date(2024, 3, 31), datetime(2024, 3, 29, 18, 0)) == 2
    assert days_remaining(date(2024, 3, 29), datetime(2024, 3, 29, 9, 0)) == 0
    assert days_remaining(date(2024, 3, 20), NOW) == -9


def test_missing_due_date_is_never_urgent():
    assert days_remaining(None, NOW) == 999
    assert priority_for(999, "soft") == "low"
    assert priority_for(999, "hard") == "medium"


@pytest.mark.parametrize("remaining, criticality, expected", [
    (-3, "soft", "critical"),
    (0, "hard", "critical"),
    (3, "soft", "urgent"),
    (7, "soft", "high"),
    (14, "soft", "medium"),
    (15, "hard", "medium"),
    (15, "soft", "low"),
])
def test_priority_bands(remaining, criticality, expected):
    assert priority_for(remaining, criticality) == expected


@pytest.mark.parametrize("criticality", ["hard", "soft"])
def test_priority_never_drops_as_deadline_approaches(criticality):
    ranks = [PRIORITY_RANK[priority_for(d, criticality)] for d in range(30, -5, -1)]

    assert ranks == sorted(ranks)


@pytest.mark.parametrize("required_action, expected", [
    ("File Answer to Complaint", "file"),
    ("Serve Discovery Responses (RFP)", "serve"),
    ("Draft settlement letter", "draft"),
    ("Respond to opposing counsel", "draft"),
    ("Review and Calendar Scheduling Order Dates", "review"),
    ("Prepare for Hearing", "prepare"),
    ("Call client", "task"),
    (None, "task"),
])
def test_infer_action_type(required_action, expected):
    assert infer_action_type(required_action) == expected


def test_generate_next_actions_sorted_soonest_first(session_factory, matter, interrogatories, motion):
    actions = SequencingEngine(session_factory).generate_next_actions(matter.id, now=NOW)

    assert [a.days_remaining for a in actions] == [2, 17, 24]
    assert [a.priority for a in actions] == ["urgent", "medium", "low"]
    assert [a.action_type for a in actions] == ["serve", "file", "file"]
    assert actions[0].required_doc_type == "Discovery Response"
    assert actions[0].filing_id == interrogatories.id
    assert "Rule: URCP 33(a)" in actions[0].description
    assert all(a.status == "draft" for a in actions)


def test_create_actions_is_idempotent(session_factory, matter, interrogatories, motion):
    engine = SequencingEngine(session_factory)

    first = engine.create_actions_from_deadlines(matter.id, assigned_to="paralegal@firm.test", now=NOW)
    second = engine.create_actions_from_deadlines(matter.id, now=NOW)

    assert len(first) == 3
    assert second == []
    assert engine.generate_next_actions(matter.id, now=NOW) == []

    with session_scope(session_factory) as session:
        action = session.get(Action, first[0])
        assert action.days_remaining == 2
        assert action.priority == "urgent"
        assert action.assigned_to == "paralegal@firm.test"
        trail = action.audit_trail
    assert len(trail) == 1
    assert trail[0]["event"] == "action_created"
    assert trail[0]["source"] == "sequencing_engine"


def test_served_completes_deadline_and_appends_one_entry(session_factory, matter, interrogatories):
    engine = SequencingEngine(session_factory)
    action_id = engine.create_actions_from_deadlines(matter.id, now=NOW)[0]

    action = engine.update_action_status(action_id, "served", user_id="attorney@firm.test")

    assert action.status == "served"
    assert len(action.audit_trail) == 2
    entry = action.audit_trail[-1]
    assert entry["event"] == "status_change"
    assert entry["source"] == "attorney@firm.test"
    assert entry["details"] == "Status changed from draft to served"

    with session_scope(session_factory) as session:
        deadline = session.get(Deadline, action.deadline_id)
        assert deadline.status == "completed"
        assert deadline.completed_at is not None


def test_working_status_marks_deadline_in_progress(session_factory, matter, interrogatories):
    engine = SequencingEngine(session_factory)
    action_id = engine.create_actions_from_deadlines(matter.id, now=NOW)[0]

    action = engine.update_action_status(action_id, "review")

    assert action.audit_trail[-1]["source"] == "system"
    with session_scope(session_factory) as session:
        deadline = session.get(Deadline, action.deadline_id)
        assert deadline.status == "in-progress"
        assert deadline.completed_at is None


def test_transitions_are_not_validated(session_factory, matter, interrogatories):
    engine = SequencingEngine(session_factory)
    action_id = engine.create_actions_from_deadlines(matter.id, now=NOW)[0]

    engine.update_action_status(action_id, "confirmed")
    action = engine.update_action_status(action_id, "draft")

    assert action.status == "draft"
    assert [e["details"] for e in action.audit_trail[1:]] == [
        "Status changed from draft to confirmed",
        "Status changed from confirmed to draft",
    ]


def test_unknown_action_raises(session_factory):
    with pytest.raises(ActionNotFoundError):
        SequencingEngine(session_factory).update_action_status("missing", "review")


def test_board_tasks_created_once_and_follow_status(session_factory, matter, interrogatories, motion):
    board = InMemoryTaskBoard()
    target = board.create_board(matter.id, "Acme - Discovery")
    engine = SequencingEngine(session_factory, task_board=board)
    action_ids = engine.create_actions_from_deadlines(matter.id, now=NOW)

    task_ids = engine.create_board_tasks_from_actions(matter.id, target.id)

    assert len(task_ids) == 3
    assert engine.create_board_tasks_from_actions(matter.id, target.id) == []
    group = board.find_group(target.id, "Action Items")
    assert group.color == "#ef4444"
    assert group.order == 100
    assert all(board.tasks[t].status == "not-started" for t in task_ids)

    with session_scope(session_factory) as session:
        task_id = session.get(Action, action_ids[0]).task_id
    assert task_id in task_ids

    engine.update_action_status(action_ids[0], "final")
    assert board.tasks[task_id].status == "in-progress"
    engine.update_action_status(action_ids[0], "confirmed")
    assert board.tasks[task_id].status == "done"
    engine.update_action_status(action_ids[0], "withdrawn")
    assert board.tasks[task_id].status == "not-started"



def test_task_links_survive_a_later_board_failure(session_factory, matter, interrogatories, motion):
    class FlakyBoard(InMemoryTaskBoard):
        def __init__(self, fail_on):
            super().__init__()
            self.fail_on = fail_on
            self.calls = 0

        def create_task(self, board_id, group_id, **fields):
            self.calls += 1
            if self.calls == self.fail_on:
                raise ConnectionError("board down")
            return super().create_task(board_id, group_id, **fields)

    board = FlakyBoard(fail_on=3)
    target = board.create_board(matter.id, "Acme - Discovery")
    engine = SequencingEngine(session_factory, task_board=board)
    engine.create_actions_from_deadlines(matter.id, now=NOW)

    with pytest.raises(ConnectionError):
        engine.create_board_tasks_from_actions(matter.id, target.id)

    with session_scope(session_factory) as session:
        linked = session.execute(select(Action.task_id).where(Action.task_id.is_not(None))).scalars().all()
    assert sorted(linked) == sorted(board.tasks)
    assert len(linked) == 2

    board.fail_on = None
    retried = engine.create_board_tasks_from_actions(matter.id, target.id)
    assert len(retried) == 1
    assert len(board.tasks) == 3


@pytest.mark.parametrize("doc_types, phase", [
    ([], "initial"),
    (["Complaint/Petition"], "pleadings"),
    (["Complaint/Petition", "Answer"], "post-answer"),
    (["Answer", "Discovery Request"], "discovery"),
    (["Discovery Request", "Motion"], "motions"),
    (["Motion", "Scheduling Order", "Discovery Response"], "discovery"),
    (["Motion", "Scheduling Order"], "motions"),
    (["Motion", "Settlement/Stipulation"], "settlement"),
])
def test_get_case_phase(doc_types, phase):
    assert SequencingEngine.get_case_phase(doc_types) == phase


def test_case_phase_for_stored_filings(session_factory, matter, interrogatories):
    assert SequencingEngine(session_factory).get_case_phase_for_matter(matter.id) == "discovery"
