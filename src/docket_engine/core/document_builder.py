"""
Document Builder
Renders first-draft discovery responses and opposition memoranda from
static templates and matter caption data
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ..storage.database import session_scope
from ..storage.models import DraftDocument, Filing, Matter

logger = logging.getLogger(__name__)

DISCOVERY_RESPONSE = "discovery_response"
OPPOSITION = "opposition"

CAPTION_TEMPLATE = """IN THE {court_name}
__________________________________________

{plaintiff},
    Plaintiff,

vs.                                          Case No. {case_number}
                                             Judge: {judge}
{defendant},
    Defendant.

__________________________________________"""

SIGNATURE_BLOCK = """DATED this _____ day of _____________, 20__.

                                    Respectfully submitted,

                                    _________________________
                                    [ATTORNEY NAME]
                                    [FIRM NAME]
                                    [ADDRESS]
                                    [PHONE]
                                    [EMAIL]
                                    Attorney for Defendant

CERTIFICATE OF SERVICE

I hereby certify that on the _____ day of _____________, 20__, a true and
correct copy of the foregoing was served upon:

    [OPPOSING COUNSEL NAME]
    [FIRM NAME]
    [ADDRESS]
    [EMAIL]

via [electronic filing / email / hand delivery / U.S. Mail].

                                    _________________________"""

RESPONSE_ITEM_TEMPLATE = """REQUEST NO. {number}:
[Copy the text of Request No. {number}]

RESPONSE TO REQUEST NO. {number}:
Subject to and without waiving the General Objections, Defendant responds:
[Draft response here.]"""

DISCOVERY_RESPONSE_TEMPLATE = """{caption}

DEFENDANT'S RESPONSES AND OBJECTIONS TO
PLAINTIFF'S {set_number_upper} OF {discovery_type_upper}

__________________________________________

Defendant {defendant}, through undersigned counsel, responds and objects to
Plaintiff's {set_number} of {discovery_type} as follows:

PRELIMINARY STATEMENT

[Note any preliminary matters, standing objections or privilege log references.]

GENERAL OBJECTIONS

1. Defendant objects to each request to the extent it seeks information
protected by the attorney-client privilege, the work product doctrine or any
other privilege or immunity.

2. Defendant objects to each request to the extent it is overly broad, unduly
burdensome, vague or ambiguous, or seeks information that is not relevant to
any party's claim or defense or proportional to the needs of the case.

3. Defendant objects to each request to the extent it seeks confidential or
proprietary information absent an adequate protective order.

4. Defendant objects to each request to the extent it seeks information
equally available to Plaintiff.

5. [Additional general objections.]

SPECIFIC RESPONSES

{responses}

[Continue for all remaining requests.]

VERIFICATION

[Verification language, if required by rule.]

{signature}

{source_reference}
"""

OPPOSITION_TEMPLATE = """{caption}

DEFENDANT'S MEMORANDUM IN OPPOSITION TO
PLAINTIFF'S {motion_title_upper}

__________________________________________

Defendant {defendant}, through undersigned counsel, submits this Memorandum in
Opposition to Plaintiff's {motion_title} and states as follows:

I. INTRODUCTION

[Summarize the motion and the principal reasons it should be denied.]

II. STATEMENT OF RELEVANT FACTS

[Material facts with citations to the record.]

1. [Fact 1.]

2. [Fact 2.]

3. [Fact 3.]

III. LEGAL STANDARD

[Standard governing this type of motion.]

IV. ARGUMENT

A. [First Argument Heading]

[First argument, with supporting authority.]

B. [Second Argument Heading]

[Second argument, applying the standard to the facts.]

C. [Third Argument Heading]

[Further arguments as applicable.]

V. CONCLUSION

WHEREFORE, Defendant requests that the Court deny Plaintiff's {motion_title}
in its entirety and grant such further relief as the Court deems just.

{signature}

{source_reference}
"""

DISCOVERY_RESPONSE_ITEMS = 3


def _text(value, default: Optional[str]) -> Optional[str]:
    """Model-supplied values may be numbers or empty; render them as text"""
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


@dataclass
class MatterCaption:
    """
    Caption data for a draft.

    Party names and the judge are never hydrated from matter data, so they
    always render as bracketed placeholders for the attorney to fill in.
    """
    court_name: str = "[COURT NAME]"
    case_number: str = "[CASE NUMBER]"
    plaintiff: str = "[PLAINTIFF NAME]"
    defendant: str = "[DEFENDANT NAME]"
    judge: str = "[JUDGE NAME]"

    def render(self) -> str:
        return CAPTION_TEMPLATE.format(
            court_name=self.court_name.upper(),
            case_number=self.case_number,
            plaintiff=self.plaintiff,
            defendant=self.defendant,
            judge=self.judge,
        )


class DocumentBuilder:
    """
    Template-driven draft generator.

    Drafting is only attempted where the governing document type is
    unambiguous: discovery responses, and oppositions to a filing that is
    itself a motion. Everything else yields None.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def generate_draft_for_action(self,
                                  matter_id: str,
                                  action_type: str,
                                  required_doc_type: Optional[str],
                                  filing_id: Optional[str],
                                  deadline_id: Optional[str],
                                  action_id: Optional[str] = None) -> Optional[DraftDocument]:
        """
        Build a draft for an action if a template applies

        Args:
            matter_id: Matter identifier
            action_type: Action type (file, serve, draft, ...)
            required_doc_type: Document type the deadline requires
            filing_id: Triggering filing
            deadline_id: Deadline that requested the draft
            action_id: Action that requested the draft

        Returns:
            Unsaved DraftDocument, or None when no template applies
        """

        if not filing_id:
            return None

        doc_type = required_doc_type or ""

        if doc_type == "Discovery Response" or action_type == "respond":
            return self.generate_discovery_response_draft(matter_id, filing_id, deadline_id, action_id)

        if doc_type == "Motion" or action_type == "file":
            with session_scope(self.session_factory) as session:
                filing = session.get(Filing, filing_id)
                is_motion = filing is not None and filing.doc_type == "Motion"
            if is_motion:
                return self.generate_opposition_draft(matter_id, filing_id, deadline_id, action_id)

        return None

    def get_matter_caption(self, matter_id: str) -> MatterCaption:
        with session_scope(self.session_factory) as session:
            matter = session.get(Matter, matter_id)
            caption = MatterCaption()
            if matter:
                caption.court_name = matter.court_name or caption.court_name
                caption.case_number = matter.case_number or caption.case_number
        return caption

    def _load_filing(self, filing_id: str) -> Optional[Filing]:
        with session_scope(self.session_factory) as session:
            return session.get(Filing, filing_id)

    def generate_discovery_response_draft(self,
                                          matter_id: str,
                                          filing_id: str,
                                          deadline_id: Optional[str],
                                          action_id: Optional[str] = None) -> DraftDocument:
        """Responses and objections to the triggering discovery requests"""

        caption = self.get_matter_caption(matter_id)
        filing = self._load_filing(filing_id)

        discovery_type = _text(filing.doc_subtype if filing else None, "Discovery Requests")
        facts = (filing.extracted_facts if filing else None) or {}
        set_number = _text(facts.get("discoverySetNumber"), "First Set")

        anchor = None
        if filing:
            anchor = filing.served_date or filing.filed_date
        source_reference = (
            "SOURCE DOCUMENT REFERENCE:\n"
            f"- Triggering Document: {filing.original_file_name if filing else '[SOURCE DOCUMENT]'}\n"
            f"- Filed/Served Date: {anchor.isoformat() if anchor else '[DATE]'}\n"
            f"- Discovery Set: {set_number}"
        )

        responses = "\n\n".join(
            RESPONSE_ITEM_TEMPLATE.format(number=n) for n in range(1, DISCOVERY_RESPONSE_ITEMS + 1)
        )

        content = DISCOVERY_RESPONSE_TEMPLATE.format(
            caption=caption.render(),
            set_number=set_number,
            set_number_upper=set_number.upper(),
            discovery_type=discovery_type,
            discovery_type_upper=discovery_type.upper(),
            defendant=caption.defendant,
            responses=responses,
            signature=SIGNATURE_BLOCK,
            source_reference=source_reference,
        )

        logger.info(f"Built discovery response draft for filing {filing_id}")

        return DraftDocument(
            matter_id=matter_id,
            title=f"DRAFT - Responses to {discovery_type} ({set_number})",
            template_type=DISCOVERY_RESPONSE,
            content=content,
            status="draft",
            linked_filing_id=filing_id,
            linked_deadline_id=deadline_id,
            linked_action_id=action_id,
        )

    def generate_opposition_draft(self,
                                  matter_id: str,
                                  filing_id: str,
                                  deadline_id: Optional[str],
                                  action_id: Optional[str] = None) -> DraftDocument:
        """Memorandum in opposition to the triggering motion"""

        caption = self.get_matter_caption(matter_id)
        filing = self._load_filing(filing_id)

        facts = (filing.extracted_facts if filing else None) or {}
        motion_title = (
            _text(facts.get("motionTitle"), None)
            or _text(filing.doc_subtype if filing else None, "Motion")
        )

        filed_date = filing.filed_date if filing else None
        source_reference = (
            "SOURCE DOCUMENT REFERENCE:\n"
            f"- Opposing Motion: {filing.original_file_name if filing else '[SOURCE DOCUMENT]'}\n"
            f"- Filed Date: {filed_date.isoformat() if filed_date else '[DATE]'}\n"
            f"- Motion Type: {motion_title}"
        )

        content = OPPOSITION_TEMPLATE.format(
            caption=caption.render(),
            motion_title=motion_title,
            motion_title_upper=motion_title.upper(),
            defendant=caption.defendant,
            signature=SIGNATURE_BLOCK,
            source_reference=source_reference,
        )

        logger.info(f"Built opposition draft for filing {filing_id}")

        return DraftDocument(
            matter_id=matter_id,
            title=f"DRAFT - Opposition to {motion_title}",
            template_type=OPPOSITION,
            content=content,
            status="draft",
            linked_filing_id=filing_id,
            linked_deadline_id=deadline_id,
            linked_action_id=action_id,
        )
