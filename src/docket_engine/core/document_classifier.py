"""
Document Classification using Claude
Determines filing type, subtype and category and extracts structured facts
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple

from .date_extractor import parse_date
from .text_generation import extract_first_json_object

logger = logging.getLogger(__name__)

OTHER = "Other"
FALLBACK_CATEGORY = "admin-operations"

DOCUMENT_TYPES = [
    "Complaint/Petition",
    "Summons",
    "Proof/Certificate of Service",
    "Answer",
    "Motion",
    "Notice",
    "Order",
    "Discovery Request",
    "Discovery Response",
    "Disclosure/Initial Disclosures",
    "Subpoena",
    "Settlement/Stipulation",
    "Scheduling Order",
    "Filing Confirmation",
    OTHER,
]

MOTION_SUBTYPES = [
    "MSJ (Motion for Summary Judgment)",
    "MTD (Motion to Dismiss)",
    "Motion to Compel",
    "Motion for Protective Order",
    "Motion in Limine",
    "Motion to Continue",
    "Motion to Withdraw",
    "Other Motion",
]

DISCOVERY_SUBTYPES = [
    "Interrogatories",
    "Requests for Production (RFP)",
    "Requests for Admission (RFA)",
    "Notice of Service",
    "Deposition Notice",
    "Subpoena Duces Tecum",
]

NOTICE_SUBTYPES = [
    "Notice of Hearing",
    "Notice of Deposition",
    "Notice of Appearance",
    "Notice of Withdrawal",
    "Other Notice",
]

DOC_CATEGORY_MAP = {
    "Complaint/Petition": "pleading",
    "Summons": "pleading",
    "Answer": "pleading",
    "Motion": "motion",
    "Order": "order-ruling",
    "Scheduling Order": "order-ruling",
    "Notice": "correspondence",
    "Discovery Request": "discovery",
    "Discovery Response": "discovery",
    "Disclosure/Initial Disclosures": "discovery",
    "Proof/Certificate of Service": "admin-operations",
    "Subpoena": "discovery",
    "Settlement/Stipulation": "pleading",
    "Filing Confirmation": "admin-operations",
    OTHER: "admin-operations",
}

# Ordered: first matching file-name pattern wins
FILENAME_RULES: List[Tuple[str, str, Optional[str]]] = [
    (r"complaint|petition", "Complaint/Petition", None),
    (r"summons", "Summons", None),
    (r"answer", "Answer", None),
    (r"certificate.?of.?service|proof.?of.?service", "Proof/Certificate of Service", None),
    (r"motion.?to.?compel", "Motion", "Motion to Compel"),
    (r"motion.?for.?summary", "Motion", "MSJ (Motion for Summary Judgment)"),
    (r"motion.?to.?dismiss", "Motion", "MTD (Motion to Dismiss)"),
    (r"motion", "Motion", None),
    (r"interrogator", "Discovery Request", "Interrogatories"),
    (r"request.?for.?production|rfp", "Discovery Request", "Requests for Production (RFP)"),
    (r"request.?for.?admission|rfa", "Discovery Request", "Requests for Admission (RFA)"),
    (r"responses?.?and.?objection", "Discovery Response", None),
    (r"notice.?of.?hearing", "Notice", "Notice of Hearing"),
    (r"notice.?of.?depo", "Notice", "Notice of Deposition"),
    (r"notice", "Notice", None),
    (r"scheduling.?order", "Scheduling Order", None),
    (r"order", "Order", None),
    (r"subpoena", "Subpoena", None),
    (r"stipulat|settlem", "Settlement/Stipulation", None),
    (r"disclosure", "Disclosure/Initial Disclosures", None),
]


@dataclass
class MatterContext:
    """Known facts about the matter, passed to the model as hints"""
    case_number: Optional[str] = None
    court_name: Optional[str] = None
    parties: List[str] = field(default_factory=list)


@dataclass
class ClassificationResult:
    """Classification of a single filing"""
    doc_type: str = OTHER
    doc_subtype: Optional[str] = None
    doc_category: str = FALLBACK_CATEGORY
    confidence: float = 0.0
    filed_date: Optional[str] = None
    served_date: Optional[str] = None
    hearing_date: Optional[str] = None
    response_deadline_anchor: Optional[str] = None
    parties_involved: List[str] = field(default_factory=list)
    extracted_facts: Dict = field(default_factory=dict)
    related_doc_reference: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @property
    def failed(self) -> bool:
        return "classificationError" in self.extracted_facts


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _clamp_confidence(value) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.5
    return min(1.0, max(0.0, confidence))


class DocumentClassifier:
    """
    AI-powered filing classification.

    The model is asked for a fixed JSON shape; the first JSON object in its
    reply is used. Any capability error, timeout or unparsable reply fails
    closed to a zero-confidence "Other" result so ingestion never blocks.
    """

    def __init__(self,
                 text_generator=None,
                 timeout: float = 30.0,
                 max_text_chars: int = 8000,
                 max_tokens: int = 1024):
        """
        Initialize classifier

        Args:
            text_generator: Object exposing generate(system, prompt, max_tokens) -> str
            timeout: Seconds to wait for the capability before failing closed
            max_text_chars: Document characters included in the prompt
            max_tokens: Response token budget
        """
        self.text_generator = text_generator
        self.timeout = timeout
        self.max_text_chars = max_text_chars
        self.max_tokens = max_tokens

    async def classify(self,
                       text: str,
                       file_name: str,
                       matter_context: Optional[MatterContext] = None) -> ClassificationResult:
        """
        Classify a filing using the text-generation capability.

        Args:
            text: Extracted document text
            file_name: Original file name
            matter_context: Optional case number, court and known parties

        Returns:
            ClassificationResult; never raises
        """

        try:
            if not self.text_generator:
                raise RuntimeError("Text generation capability not configured")

            prompt = self._build_user_prompt(text, file_name, matter_context)
            loop = asyncio.get_running_loop()
            response_text = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: self.text_generator.generate(
                        self._build_system_prompt(), prompt, self.max_tokens
                    ),
                ),
                timeout=self.timeout,
            )

            parsed = extract_first_json_object(response_text)
            if parsed is None:
                raise ValueError("Could not parse classification response")

            result = self._normalize(parsed)
            logger.info(
                f"Document '{file_name}' classified as {result.doc_type}"
                f"{' / ' + result.doc_subtype if result.doc_subtype else ''}"
                f" with confidence {result.confidence:.2%}"
            )
            return result

        except asyncio.TimeoutError:
            logger.warning(f"Classification timed out after {self.timeout}s for '{file_name}'")
            return self._failed_classification(f"Classification timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"Classification error for '{file_name}': {e}")
            return self._failed_classification(str(e) or e.__class__.__name__)

    def _build_system_prompt(self) -> str:
        """Build classification instructions for the model."""

        return f"""You are a legal document classifier. Analyze the provided document text and classify it.

DOCUMENT TYPES (choose one):
{_bullets(DOCUMENT_TYPES)}

MOTION SUBTYPES (if type is "Motion"):
{_bullets(MOTION_SUBTYPES)}

DISCOVERY SUBTYPES (if type is "Discovery Request" or "Discovery Response"):
{_bullets(DISCOVERY_SUBTYPES)}

NOTICE SUBTYPES (if type is "Notice"):
{_bullets(NOTICE_SUBTYPES)}

DISCOVERY RECOGNITION RULES:
- "Interrogatories" -> Discovery Request, subtype "Interrogatories"
- "Requests for Production" or "RFP" -> Discovery Request, subtype "Requests for Production (RFP)"
- "Requests for Admission" or "RFA" -> Discovery Request, subtype "Requests for Admission (RFA)"
- "Notice of Service" -> Discovery Request, subtype "Notice of Service"
- "Responses and Objections" -> Discovery Response
- If both request and response language appear -> Discovery Response, and reference the originating request

E-FILING DETECTION:
- A filing receipt/confirmation page is a "Filing Confirmation"
- Extract the exact filed timestamp, the document title as filed and the served parties list

Return a JSON object with these fields:
{{
    "docType": "one of the document types above",
    "docSubtype": "subtype if applicable, null otherwise",
    "confidence": 0.0-1.0,
    "filedDate": "YYYY-MM-DD or null",
    "servedDate": "YYYY-MM-DD or null",
    "hearingDate": "YYYY-MM-DD or null",
    "responseDeadlineAnchor": "YYYY-MM-DD - the date response deadlines run from, usually the service date",
    "partiesInvolved": ["party names mentioned"],
    "extractedFacts": {{
        "judge": "judge name if found",
        "court": "court name if found",
        "caseNumber": "case number if found",
        "attorney": "attorney name if found",
        "certificateOfService": true,
        "filedTimestamp": "exact timestamp if filing confirmation",
        "documentTitleAsFiled": "title from filing confirmation",
        "servedPartiesList": ["parties served from confirmation"],
        "discoverySetNumber": "e.g. 'First Set' if applicable",
        "motionTitle": "full motion title if applicable"
    }},
    "relatedDocReference": "reference to a related document, e.g. 'Plaintiff's First Set of Interrogatories'"
}}

Return ONLY valid JSON, no other text."""

    def _build_user_prompt(self,
                           text: str,
                           file_name: str,
                           matter_context: Optional[MatterContext]) -> str:
        context_info = ""
        if matter_context:
            context_info = (
                f"\nMATTER CONTEXT: Case #{matter_context.case_number or 'unknown'}, "
                f"Court: {matter_context.court_name or 'unknown'}, "
                f"Known parties: {', '.join(matter_context.parties)}"
            )

        return f"""Classify this legal document.

FILE NAME: {file_name}
{context_info}

DOCUMENT TEXT (first {self.max_text_chars} chars):
{(text or '')[:self.max_text_chars]}"""

    def _normalize(self, parsed: Dict) -> ClassificationResult:
        """Coerce the model's JSON into a ClassificationResult"""

        doc_type = parsed.get("docType") or OTHER
        if doc_type not in DOC_CATEGORY_MAP:
            logger.warning(f"Model returned unknown document type '{doc_type}', using {OTHER}")
            doc_type = OTHER

        filed_date = self._normalize_date(parsed.get("filedDate"))
        served_date = self._normalize_date(parsed.get("servedDate"))
        hearing_date = self._normalize_date(parsed.get("hearingDate"))
        anchor = self._normalize_date(parsed.get("responseDeadlineAnchor")) or served_date

        facts = parsed.get("extractedFacts")
        parties = parsed.get("partiesInvolved")

        return ClassificationResult(
            doc_type=doc_type,
            doc_subtype=parsed.get("docSubtype") or None,
            doc_category=DOC_CATEGORY_MAP.get(doc_type, FALLBACK_CATEGORY),
            confidence=_clamp_confidence(parsed.get("confidence", 0.5)),
            filed_date=filed_date,
            served_date=served_date,
            hearing_date=hearing_date,
            response_deadline_anchor=anchor,
            parties_involved=[str(p) for p in parties] if isinstance(parties, list) else [],
            extracted_facts=facts if isinstance(facts, dict) else {},
            related_doc_reference=parsed.get("relatedDocReference") or None,
        )

    def _normalize_date(self, value) -> Optional[str]:
        if not value or not isinstance(value, str):
            return None
        return parse_date(value)

    def _failed_classification(self, error_message: str) -> ClassificationResult:
        """Zero-confidence result used whenever classification fails"""
        return ClassificationResult(
            doc_type=OTHER,
            doc_category=FALLBACK_CATEGORY,
            confidence=0.0,
            extracted_facts={"classificationError": error_message},
        )


def classify_by_file_name(file_name: str) -> Dict:
    """
    Offline keyword classification from the file name alone.

    Returns a partial classification with only doc_type, doc_subtype and
    doc_category set; empty when nothing matches. Never sets confidence
    or dates.
    """

    lower = (file_name or "").lower()

    for pattern, doc_type, doc_subtype in FILENAME_RULES:
        if re.search(pattern, lower):
            hint = {"doc_type": doc_type, "doc_category": DOC_CATEGORY_MAP[doc_type]}
            if doc_subtype:
                hint["doc_subtype"] = doc_subtype
            return hint

    return {}
