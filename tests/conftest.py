"""
Shared fixtures: in-memory store, fake text generator, seeded matter
"""

import json
import time

import pytest

from docket_engine.exceptions import TextGenerationError
from docket_engine.storage import (
    Matter,
    create_engine_from_url,
    create_session_factory,
    init_db,
    session_scope,
)


class FakeTextGenerator:
    """Stands in for Bedrock; returns a canned reply or raises"""

    def __init__(self, reply=None, error=None, delay=0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    def generate(self, system, prompt, max_tokens=1024):
        self.calls.append({"system": system, "prompt": prompt, "max_tokens": max_tokens})
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        if isinstance(self.reply, dict):
            return f"Here is the classification:\n{json.dumps(self.reply)}\nLet me know if you need more."
        return self.reply


@pytest.fixture
def session_factory():
    engine = create_engine_from_url("sqlite://")
    init_db(engine)
    factory = create_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def matter(session_factory):
    with session_scope(session_factory) as session:
        matter = Matter(
            name="Acme v. Widget Co.",
            case_number="240901234",
            court_name="Third Judicial District Court, Salt Lake County",
        )
        session.add(matter)
        session.flush()
    return matter


@pytest.fixture
def federal_matter(session_factory):
    with session_scope(session_factory) as session:
        matter = Matter(
            name="Jones v. Smith",
            case_number="2:24-cv-00123",
            court_name="U.S. District Court for the District of Utah",
        )
        session.add(matter)
        session.flush()
    return matter


@pytest.fixture
def interrogatories_reply():
    return {
        "docType": "Discovery Request",
        "docSubtype": "Interrogatories",
        "confidence": 0.92,
        "filedDate": None,
        "servedDate": "March 1, 2024",
        "hearingDate": None,
        "responseDeadlineAnchor": None,
        "partiesInvolved": ["Acme Corp", "Widget Co."],
        "extractedFacts": {"discoverySetNumber": "First Set", "attorney": "J. Doe"},
        "relatedDocReference": None,
    }


@pytest.fixture
def text_generator_factory():
    return FakeTextGenerator


@pytest.fixture
def generation_error():
    return TextGenerationError("Bedrock unavailable")
