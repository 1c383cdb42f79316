"""
Deadline Rule Engine
Materializes jurisdiction rules into due-dated deadlines for classified filings
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional

import holidays
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import MatterNotFoundError
from ..storage.database import session_scope
from ..storage.models import (
    Deadline,
    DeadlineRule,
    Filing,
    JurisdictionProfile,
    Matter,
    DEADLINE_PENDING,
)

logger = logging.getLogger(__name__)

ANCHOR_FIELDS = ("filed_date", "served_date", "hearing_date", "response_deadline_anchor")

# Holiday subdivision codes for state profiles
STATE_SUBDIVISIONS = {
    "utah": "UT",
    "california": "CA",
    "new_york": "NY",
    "texas": "TX",
}

DEFAULT_PROFILES = [
    {
        "name": "Utah State Courts",
        "state": "utah",
        "court_type": "state",
        "rule_set": "URCP",
        "is_default": True,
    },
    {
        "name": "Federal District Courts",
        "state": "federal",
        "court_type": "federal",
        "rule_set": "FRCP",
        "is_default": False,
    },
]

# Keyed by the profile state each rule belongs to
DEFAULT_RULES = [
    {
        "state": "utah",
        "name": "Answer to Complaint (Utah)",
        "trigger_doc_type": "Complaint/Petition",
        "anchor_date_field": "served_date",
        "offset_days": 21,
        "result_action": "File Answer to Complaint",
        "result_doc_type": "Answer",
        "criticality": "hard",
        "rule_source": "URCP 12(a)",
    },
    {
        "state": "federal",
        "name": "Answer to Complaint (Federal)",
        "trigger_doc_type": "Complaint/Petition",
        "anchor_date_field": "served_date",
        "offset_days": 21,
        "result_action": "File Answer to Complaint",
        "result_doc_type": "Answer",
        "criticality": "hard",
        "rule_source": "FRCP 12(a)(1)(A)",
    },
    {
        "state": "utah",
        "name": "Discovery Response - Interrogatories",
        "trigger_doc_type": "Discovery Request",
        "trigger_doc_subtype": "Interrogatories",
        "anchor_date_field": "served_date",
        "offset_days": 30,
        "result_action": "Serve Discovery Responses (Interrogatories)",
        "result_doc_type": "Discovery Response",
        "criticality": "hard",
        "rule_source": "URCP 33(a)",
    },
    {
        "state": "utah",
        "name": "Discovery Response - RFP",
        "trigger_doc_type": "Discovery Request",
        "trigger_doc_subtype": "Requests for Production (RFP)",
        "anchor_date_field": "served_date",
        "offset_days": 30,
        "result_action": "Serve Discovery Responses (RFP)",
        "result_doc_type": "Discovery Response",
        "criticality": "hard",
        "rule_source": "URCP 34(b)",
    },
    {
        "state": "utah",
        "name": "Discovery Response - RFA",
        "trigger_doc_type": "Discovery Request",
        "trigger_doc_subtype": "Requests for Admission (RFA)",
        "anchor_date_field": "served_date",
        "offset_days": 30,
        "result_action": "Serve Responses to Requests for Admission",
        "result_doc_type": "Discovery Response",
        "criticality": "hard",
        "rule_source": "URCP 36(a)",
    },
    {
        "state": "utah",
        "name": "Opposition to Motion",
        "trigger_doc_type": "Motion",
        "anchor_date_field": "filed_date",
        "offset_days": 14,
        "result_action": "File Opposition/Response to Motion",
        "result_doc_type": "Motion",
        "criticality": "hard",
        "rule_source": "URCP 7(d)",
    },
    {
        "state": "utah",
        "name": "Reply Memorandum",
        "trigger_doc_type": "Motion",
        "anchor_date_field": "filed_date",
        "offset_days": 21,
        "result_action": "File Reply Memorandum",
        "result_doc_type": "Motion",
        "criticality": "soft",
        "rule_source": "URCP 7(e)",
    },
    {
        "state": "utah",
        "name": "Initial Disclosures",
        "trigger_doc_type": "Answer",
        "anchor_date_field": "filed_date",
        "offset_days": 14,
        "result_action": "Serve Initial Disclosures",
        "result_doc_type": "Disclosure/Initial Disclosures",
        "criticality": "hard",
        "rule_source": "URCP 26(a)(1)",
    },
    {
        "state": None,
        "name": "Respond to Scheduling Order",
        "trigger_doc_type": "Scheduling Order",
        "anchor_date_field": "filed_date",
        "offset_days": 14,
        "result_action": "Review and Calendar Scheduling Order Dates",
        "result_doc_type": None,
        "criticality": "hard",
        "rule_source": "Court Order",
    },
    {
        "state": None,
        "name": "Prepare for Hearing",
        "trigger_doc_type": "Notice",
        "anchor_date_field": "hearing_date",
        "offset_days": -3,
        "result_action": "Prepare for Hearing",
        "result_doc_type": None,
        "criticality": "soft",
        "rule_source": "Best Practice",
    },
]


def normalize_subtype(subtype: str) -> str:
    """'Requests for Production (RFP)' and 'requests for production' compare equal"""
    return re.sub(r"\s*\(.*?\)", "", subtype).strip().lower()


@dataclass
class ComputedDeadline:
    """A deadline computed from a rule, before it is persisted"""
    title: str
    due_date: date
    anchor_event: str
    anchor_date: date
    rule_source: str
    criticality: str
    required_action: str
    result_doc_type: Optional[str]
    rule_id: str


class DeadlineRuleEngine:
    """
    Selects the deadline rules triggered by a filing and turns each into a
    Deadline row dated anchor + offset.

    Materialization is idempotent per filing: a rule already materialized
    for a filing is skipped, guarded by the (filing_id, rule_id) unique
    constraint rather than by the preceding read alone.
    """

    def __init__(self, session_factory: sessionmaker, adjust_for_court_holidays: bool = False):
        """
        Initialize deadline rule engine

        Args:
            session_factory: SQLAlchemy session factory for the shared store
            adjust_for_court_holidays: Roll due dates off weekends and court
                holidays for profiles that ask for it
        """

        self.session_factory = session_factory
        self.adjust_for_court_holidays = adjust_for_court_holidays
        self._holiday_calendars: Dict[str, holidays.HolidayBase] = {}

        logger.info(
            f"Deadline rule engine initialized (holiday adjustment "
            f"{'on' if adjust_for_court_holidays else 'off'})"
        )

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def seed_default_rules(self) -> bool:
        """
        Install the default jurisdiction profiles and rules once.

        Returns:
            True when the defaults were installed, False if rules already existed
        """

        with session_scope(self.session_factory) as session:
            return self._seed_default_rules(session)

    def _seed_default_rules(self, session: Session) -> bool:
        if session.execute(select(DeadlineRule.id).limit(1)).first():
            return False

        profiles_by_state = {
            p.state: p for p in session.execute(select(JurisdictionProfile)).scalars()
        }
        for profile_data in DEFAULT_PROFILES:
            if profile_data["state"] not in profiles_by_state:
                profile = JurisdictionProfile(**profile_data)
                session.add(profile)
                profiles_by_state[profile.state] = profile
        session.flush()

        for rule_data in DEFAULT_RULES:
            rule_data = dict(rule_data)
            state = rule_data.pop("state")
            profile = profiles_by_state.get(state) if state else None
            session.add(DeadlineRule(
                jurisdiction_id=profile.id if profile else None,
                **rule_data
            ))

        logger.info(f"Seeded {len(DEFAULT_RULES)} default deadline rules")
        return True

    def get_jurisdiction_for_matter(self, matter_id: str) -> Optional[JurisdictionProfile]:
        """
        Resolve the jurisdiction profile for a matter.

        An explicit assignment on the matter wins. Otherwise the court name
        decides between the federal profile and the state profile, and the
        default profile is used when neither exists. Default rules are
        seeded the first time a jurisdiction is looked up.

        Args:
            matter_id: Matter identifier

        Returns:
            JurisdictionProfile, or None when no profile can be resolved

        Raises:
            MatterNotFoundError: unknown matter id
        """

        with session_scope(self.session_factory) as session:
            matter = session.get(Matter, matter_id)
            if not matter:
                raise MatterNotFoundError(matter_id)

            self._seed_default_rules(session)

            if matter.jurisdiction_id:
                assigned = session.get(JurisdictionProfile, matter.jurisdiction_id)
                if assigned:
                    return assigned

            state = self._state_for_court(matter.court_name or "")
            profile = session.execute(
                select(JurisdictionProfile).where(JurisdictionProfile.state == state).limit(1)
            ).scalar_one_or_none()
            if profile:
                return profile

            return session.execute(
                select(JurisdictionProfile).where(JurisdictionProfile.is_default.is_(True)).limit(1)
            ).scalar_one_or_none()

    def _state_for_court(self, court_name: str) -> str:
        if re.search(r"federal|u\.s\.\s*district", court_name, re.IGNORECASE):
            return "federal"
        return "utah"

    # ------------------------------------------------------------------
    # Deadline computation
    # ------------------------------------------------------------------

    def compute_deadlines_for_filing(self,
                                     filing: Filing,
                                     jurisdiction_id: Optional[str] = None) -> List[ComputedDeadline]:
        """
        Compute (without persisting) the deadlines a filing triggers

        Args:
            filing: Classified filing
            jurisdiction_id: Optional jurisdiction profile to scope rules to

        Returns:
            One ComputedDeadline per applicable rule that has an anchor date
        """

        with session_scope(self.session_factory) as session:
            return self._compute(session, filing, jurisdiction_id)

    def _compute(self,
                 session: Session,
                 filing: Filing,
                 jurisdiction_id: Optional[str]) -> List[ComputedDeadline]:
        rules = self._select_rules(session, filing, jurisdiction_id)
        profile = session.get(JurisdictionProfile, jurisdiction_id) if jurisdiction_id else None

        results = []
        for rule in rules:
            anchor_date = self._anchor_for_rule(filing, rule.anchor_date_field)
            if not anchor_date:
                logger.info(f"Rule '{rule.name}' skipped for filing {filing.id}: no anchor date")
                continue

            due_date = self.add_offset(anchor_date, rule.offset_days, profile)

            results.append(ComputedDeadline(
                title=rule.result_action,
                due_date=due_date,
                anchor_event=f"{rule.trigger_doc_type} - {rule.anchor_date_field}",
                anchor_date=anchor_date,
                rule_source=rule.rule_source or rule.name,
                criticality=rule.criticality or "hard",
                required_action=rule.result_action,
                result_doc_type=rule.result_doc_type,
                rule_id=rule.id,
            ))

        return results

    def _select_rules(self,
                      session: Session,
                      filing: Filing,
                      jurisdiction_id: Optional[str]) -> List[DeadlineRule]:
        """Active rules for the filing's type, scoped to the jurisdiction when given"""

        base = select(DeadlineRule).where(
            DeadlineRule.trigger_doc_type == filing.doc_type,
            DeadlineRule.is_active.is_(True),
        ).order_by(DeadlineRule.name)

        rules: List[DeadlineRule] = []
        if jurisdiction_id:
            rules = list(session.execute(
                base.where(or_(
                    DeadlineRule.jurisdiction_id == jurisdiction_id,
                    DeadlineRule.jurisdiction_id.is_(None),
                ))
            ).scalars())

        # No jurisdiction-specific rules: fall back to every active rule for the type
        if not rules:
            rules = list(session.execute(base).scalars())

        selected = [r for r in rules if self._subtype_applies(r, filing)]

        # Subtype named no scoped rule: every rule for the type applies
        scoped = [r for r in rules if r.trigger_doc_subtype]
        if scoped and not any(r.trigger_doc_subtype for r in selected):
            logger.info(
                f"Subtype '{filing.doc_subtype}' matches no scoped {filing.doc_type} rule; applying all"
            )
            selected = rules

        if not selected and filing.doc_type:
            logger.warning(f"No deadline rules apply to {filing.doc_type} filing {filing.id}")

        return selected

    def _subtype_applies(self, rule: DeadlineRule, filing: Filing) -> bool:
        if not rule.trigger_doc_subtype or not filing.doc_subtype:
            return True
        return normalize_subtype(rule.trigger_doc_subtype) == normalize_subtype(filing.doc_subtype)

    def _anchor_for_rule(self, filing: Filing, anchor_field: str) -> Optional[date]:
        """
        Anchor date for a rule.

        The rule's own anchor field wins; otherwise the response-deadline
        anchor, then the served date, then the filed date. Hearing-anchored
        rules never fall back, since a prep deadline without a hearing is
        meaningless.
        """

        if anchor_field in ANCHOR_FIELDS:
            value = getattr(filing, anchor_field)
            if value:
                return value

        if anchor_field == "hearing_date":
            return None

        return filing.response_deadline_anchor or filing.served_date or filing.filed_date

    def add_offset(self,
                   anchor_date: date,
                   offset_days: int,
                   profile: Optional[JurisdictionProfile] = None) -> date:
        """
        Add a rule offset to an anchor date

        Args:
            anchor_date: Date the rule runs from
            offset_days: Calendar days; negative counts backwards
            profile: Jurisdiction profile, consulted for weekend/holiday adjustment

        Returns:
            anchor_date + offset_days, moved to the next court day only when
            holiday adjustment is enabled and the profile requests it
        """

        due_date = anchor_date + timedelta(days=offset_days)

        if self.adjust_for_court_holidays and profile is not None and profile.weekend_holiday_adjust:
            due_date = self._next_court_day(due_date, profile.state)

        return due_date

    def _next_court_day(self, day: date, state: str) -> date:
        """Move a date past weekends and holidays"""

        calendar = self._holiday_calendar(state)
        while day.weekday() >= 5 or day in calendar:  # Saturday = 5, Sunday = 6
            day += timedelta(days=1)
        return day

    def _holiday_calendar(self, state: str) -> holidays.HolidayBase:
        if state not in self._holiday_calendars:
            subdiv = STATE_SUBDIVISIONS.get(state)
            self._holiday_calendars[state] = (
                holidays.US(subdiv=subdiv) if subdiv else holidays.US()
            )
        return self._holiday_calendars[state]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def create_deadlines_from_filing(self,
                                     filing: Filing,
                                     jurisdiction_id: Optional[str] = None,
                                     assigned_to: Optional[str] = None) -> List[str]:
        """
        Persist one Deadline per applicable rule not yet materialized for the filing

        Args:
            filing: Classified filing
            jurisdiction_id: Optional jurisdiction profile to scope rules to
            assigned_to: Optional assignee for the new deadlines

        Returns:
            Ids of the deadlines created by this call
        """

        deadline_ids = []

        with session_scope(self.session_factory) as session:
            computed = self._compute(session, filing, jurisdiction_id)

            existing_rule_ids = set(session.execute(
                select(Deadline.rule_id).where(Deadline.filing_id == filing.id)
            ).scalars())

            for item in computed:
                if item.rule_id in existing_rule_ids:
                    continue

                deadline = Deadline(
                    matter_id=filing.matter_id,
                    filing_id=filing.id,
                    rule_id=item.rule_id,
                    title=item.title,
                    due_date=item.due_date,
                    anchor_event=item.anchor_event,
                    anchor_date=item.anchor_date,
                    rule_source=item.rule_source,
                    criticality=item.criticality,
                    required_action=item.required_action,
                    result_doc_type=item.result_doc_type,
                    assigned_to=assigned_to,
                    status=DEADLINE_PENDING,
                )

                try:
                    with session.begin_nested():
                        session.add(deadline)
                except IntegrityError:
                    logger.info(f"Deadline for rule {item.rule_id} on filing {filing.id} already exists, skipping")
                    continue

                deadline_ids.append(deadline.id)

        logger.info(f"Created {len(deadline_ids)} deadline(s) for filing {filing.id} ({filing.doc_type})")
        return deadline_ids
