"""
Tests for template selection and draft rendering
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from docket_engine.core.document_builder import DocumentBuilder
from docket_engine.storage import DraftDocument, Filing, Matter, session_scope


def store(session_factory, obj):
    with session_scope(session_factory) as session:
        session.add(obj)
        session.flush()
    return obj


@pytest.fixture
def interrogatories(session_factory, matter):
    return store(session_factory, Filing(
        matter_id=matter.id,
        original_file_name="Pltf Second Set of Interrogatories.pdf",
        doc_type="Discovery Request",
        doc_subtype="Interrogatories",
        served_date=date(2024, 3, 1),
        extracted_facts={"discoverySetNumber": "Second Set"},
    ))


@pytest.fixture
def motion(session_factory, matter):
    return store(session_factory, Filing(
        matter_id=matter.id,
        original_file_name="Motion to Compel.pdf",
        doc_type="Motion",
        doc_subtype="Motion to Compel",
        filed_date=date(2024, 4, 1),
        extracted_facts={"motionTitle": "Motion to Compel Discovery"},
    ))


@pytest.fixture
def complaint(session_factory, matter):
    return store(session_factory, Filing(
        matter_id=matter.id,
        original_file_name="Complaint.pdf",
        doc_type="Complaint/Petition",
        served_date=date(2024, 2, 1),
    ))


def test_discovery_response_draft(session_factory, matter, interrogatories):
    builder = DocumentBuilder(session_factory)

    draft = builder.generate_draft_for_action(
        matter.id, "serve", "Discovery Response", interrogatories.id, "deadline-1", "action-1"
    )

    assert draft.template_type == "discovery_response"
    assert draft.title == "DRAFT - Responses to Interrogatories (Second Set)"
    assert draft.linked_filing_id == interrogatories.id
    assert draft.linked_deadline_id == "deadline-1"
    assert draft.linked_action_id == "action-1"
    assert draft.status == "draft"

    content = draft.content
    assert content.startswith("IN THE THIRD JUDICIAL DISTRICT COURT, SALT LAKE COUNTY")
    assert "Case No. 240901234" in content
    assert "[PLAINTIFF NAME]" in content
    assert "[DEFENDANT NAME]" in content
    assert "Judge: [JUDGE NAME]" in content
    assert "PLAINTIFF'S SECOND SET OF INTERROGATORIES" in content
    assert "GENERAL OBJECTIONS" in content
    assert "RESPONSE TO REQUEST NO. 3:" in content
    assert "SOURCE DOCUMENT REFERENCE:" in content
    assert "- Triggering Document: Pltf Second Set of Interrogatories.pdf" in content
    assert "- Filed/Served Date: 2024-03-01" in content


def test_drafts_are_not_persisted_by_the_builder(session_factory, matter, interrogatories):
    DocumentBuilder(session_factory).generate_draft_for_action(
        matter.id, "serve", "Discovery Response", interrogatories.id, None
    )

    with session_scope(session_factory) as session:
        assert session.execute(select(func.count(DraftDocument.id))).scalar_one() == 0


def test_respond_action_type_selects_discovery_template(session_factory, matter, interrogatories):
    draft = DocumentBuilder(session_factory).generate_draft_for_action(
        matter.id, "respond", None, interrogatories.id, None
    )

    assert draft.template_type == "discovery_response"


def test_opposition_draft_for_motion(session_factory, matter, motion):
    draft = DocumentBuilder(session_factory).generate_draft_for_action(
        matter.id, "file", "Motion", motion.id, "deadline-2"
    )

    assert draft.template_type == "opposition"
    assert draft.title == "DRAFT - Opposition to Motion to Compel Discovery"
    assert "MEMORANDUM IN OPPOSITION TO\nPLAINTIFF'S MOTION TO COMPEL DISCOVERY" in draft.content
    assert "IV. ARGUMENT" in draft.content
    assert "- Opposing Motion: Motion to Compel.pdf" in draft.content
    assert "- Filed Date: 2024-04-01" in draft.content


def test_no_draft_without_filing(session_factory, matter):
    assert DocumentBuilder(session_factory).generate_draft_for_action(
        matter.id, "respond", "Discovery Response", None, None
    ) is None


@pytest.mark.parametrize("action_type, required_doc_type", [
    ("task", "Answer"),
    ("serve", "Disclosure/Initial Disclosures"),
    ("review", None),
])
def test_no_template_for_other_document_types(session_factory, matter, complaint, action_type, required_doc_type):
    assert DocumentBuilder(session_factory).generate_draft_for_action(
        matter.id, action_type, required_doc_type, complaint.id, None
    ) is None


def test_motion_request_against_non_motion_filing(session_factory, matter, complaint):
    builder = DocumentBuilder(session_factory)

    assert builder.generate_draft_for_action(matter.id, "file", "Motion", complaint.id, None) is None
    assert builder.generate_draft_for_action(matter.id, "file", "Answer", complaint.id, None) is None


def test_caption_placeholders_when_matter_has_no_court_data(session_factory):
    bare = store(session_factory, Matter(name="Unfiled matter"))
    filing = store(session_factory, Filing(
        matter_id=bare.id,
        original_file_name="rfa.pdf",
        doc_type="Discovery Request",
    ))

    draft = DocumentBuilder(session_factory).generate_draft_for_action(
        bare.id, "serve", "Discovery Response", filing.id, None
    )

    assert draft.content.startswith("IN THE [COURT NAME]")
    assert "Case No. [CASE NUMBER]" in draft.content
    assert draft.title == "DRAFT - Responses to Discovery Requests (First Set)"
    assert "- Filed/Served Date: [DATE]" in draft.content


def test_non_string_facts_are_rendered_as_text(session_factory, matter):
    interrogatories = store(session_factory, Filing(
        matter_id=matter.id,
        original_file_name="Interrogatories.pdf",
        doc_type="Discovery Request",
        doc_subtype="Interrogatories",
        served_date=date(2024, 3, 1),
        extracted_facts={"discoverySetNumber": 1},
    ))
    motion = store(session_factory, Filing(
        matter_id=matter.id,
        original_file_name="Motion.pdf",
        doc_type="Motion",
        filed_date=date(2024, 4, 1),
        extracted_facts={"motionTitle": 7},
    ))
    builder = DocumentBuilder(session_factory)

    response = builder.generate_draft_for_action(
        matter.id, "serve", "Discovery Response", interrogatories.id, None
    )
    opposition = builder.generate_draft_for_action(matter.id, "file", "Motion", motion.id, None)

    assert response.title == "DRAFT - Responses to Interrogatories (1)"
    assert "- Discovery Set: 1" in response.content
    assert opposition.title == "DRAFT - Opposition to 7"
