# ABOUTME: Tiered heuristic classifier for inbound request messages
# ABOUTME: Structural signature, then ordered keyword rules, then a regex fallback

import re
from dataclasses import dataclass

from rpa_pipeline.core.models import ClassificationResult, JobType
from rpa_pipeline.utils.logging import get_logger

# Section labels that only appear in a filled-in estimation request
STRUCTURAL_MARKERS = (
    "company log-in:",
    "user log-in:",
    "job size (mm):",
    "material:",
    "printing:",
    "wastage & finishing:",
    "quantity:",
    "client:",
)
STRUCTURAL_MIN_MATCHES = 5
STRUCTURAL_CONFIDENCE = 0.95

UNKNOWN_CONFIDENCE = 0.1
FALLBACK_THRESHOLD = 0.7
FALLBACK_MIN_BODY_LENGTH = 50


@dataclass(frozen=True)
class KeywordRule:
    label: JobType
    keywords: tuple[str, ...]
    base_confidence: float


# Tried in order, the first rule with any hit wins
KEYWORD_RULES = (
    KeywordRule(
        JobType.JOB_CARD_ENTRY,
        ("job card", "job number", "work order", "project card", "job id", "task card", "job entry"),
        0.9,
    ),
    KeywordRule(
        JobType.CREDENTIAL_UPDATE,
        ("username", "password", "login", "credentials", "access", "authentication", "login details"),
        0.85,
    ),
    KeywordRule(
        JobType.COSTING_REQUEST,
        ("cost", "costing", "estimate", "budget", "pricing", "quote", "financial", "expense"),
        0.8,
    ),
    KeywordRule(JobType.GENERAL_AUTOMATION, ("automation", "process", "task", "execute", "run"), 0.6),
)

_JOB_TERMS = re.compile(r"\b(job|card|number|id)\b")
_CREDENTIAL_TERMS = re.compile(r"\b(username|password|login|credential)\b")
_COST_TERMS = re.compile(r"\b(cost|costing|price|budget|estimate)\b")


class Classifier:
    """Assigns a job type label to a message. Never raises."""

    def __init__(self, rules: tuple[KeywordRule, ...] = KEYWORD_RULES):
        self.rules = rules
        self.logger = get_logger(__name__)

    def classify(self, subject: str, body: str) -> ClassificationResult:
        try:
            result = self._classify(subject or "", body or "")
        except Exception as e:
            self.logger.warning("Classification failed, degrading to unknown", error=str(e))
            return ClassificationResult(
                label=JobType.UNKNOWN.value, confidence=0.0, metadata={"method": "error", "error": str(e)}
            )

        self.logger.info(
            "Message classified", label=result.label, confidence=result.confidence, method=result.method
        )
        return result

    def _classify(self, subject: str, body: str) -> ClassificationResult:
        structural = self._structural_signature(body)
        if structural is not None:
            return structural

        keyword_result = self._keyword_rules(f"{subject} {body}".lower())
        if keyword_result.label != JobType.UNKNOWN.value and keyword_result.confidence < FALLBACK_THRESHOLD:
            return self._fallback(body, keyword_result)
        return keyword_result

    def _structural_signature(self, body: str) -> ClassificationResult | None:
        lowered = body.lower()
        found = [marker for marker in STRUCTURAL_MARKERS if marker in lowered]
        if len(found) < STRUCTURAL_MIN_MATCHES:
            return None
        return ClassificationResult(
            label=JobType.ERP_ESTIMATION.value,
            confidence=STRUCTURAL_CONFIDENCE,
            metadata={"method": "structural-signature", "matched_markers": found, "match_count": len(found)},
        )

    def _keyword_rules(self, text: str) -> ClassificationResult:
        for rule in self.rules:
            matched = [keyword for keyword in rule.keywords if keyword in text]
            if matched:
                confidence = min(rule.base_confidence, len(matched) / len(rule.keywords) + 0.5)
                return ClassificationResult(
                    label=rule.label.value,
                    confidence=round(confidence, 4),
                    metadata={"method": "keyword-rules", "matched_keywords": matched, "match_count": len(matched)},
                )

        return ClassificationResult(
            label=JobType.UNKNOWN.value, confidence=UNKNOWN_CONFIDENCE, metadata={"method": "keyword-rules"}
        )

    def _fallback(self, body: str, weak: ClassificationResult) -> ClassificationResult:
        # Fallback terms are matched against the body only
        text = body.lower()
        if _JOB_TERMS.search(text) and len(body) > FALLBACK_MIN_BODY_LENGTH:
            label, confidence = JobType.JOB_CARD_ENTRY, 0.8
        elif _CREDENTIAL_TERMS.search(text):
            label, confidence = JobType.CREDENTIAL_UPDATE, 0.85
        elif _COST_TERMS.search(text):
            label, confidence = JobType.COSTING_REQUEST, 0.75
        else:
            label, confidence = JobType.GENERAL_AUTOMATION, 0.6

        return ClassificationResult(
            label=label.value,
            confidence=confidence,
            metadata={
                "method": "fallback-heuristic",
                "keyword_label": weak.label,
                "keyword_confidence": weak.confidence,
            },
        )
