"""
Claim extraction and verification with Gemini.

Two sequential text generations over a finished transcript: the first pulls
out checkable factual claims, the second returns a verdict per claim.
Malformed model output never fails the analysis; it degrades to
placeholder claims or "unverifiable" verdicts instead.
"""

import json
import logging
import re
import uuid
from typing import Callable, Optional

from factchecker.core.error_codes import JobError, JobCancelled
from factchecker.core.gemini_client import GeminiClient
from factchecker.core.models import Claim, FactCheckResult
from factchecker.core.retry import RetryPolicy, Backoff
from factchecker.core.scoring import compute_overall_score
from factchecker.core.url_parse import language_name
from factchecker.core.constants import (
    ErrorCode, ClaimStatus, CLAIM_STATUSES,
    MAX_ATTEMPTS, INLINE_BACKOFF_SEC,
    PROGRESS_ANALYSIS_START, PROGRESS_VERIFY, PROGRESS_SCORING, PROGRESS_ANALYSIS_DONE,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

PLACEHOLDER_CLAIM_TEXT = "Unable to extract specific claims"
MAX_SOURCES = 3

_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)

EXTRACTION_PROMPT = """You are a fact-checking expert. Analyze the following transcription and extract all factual claims that can be verified.

TRANSCRIPTION:
{transcription}

INSTRUCTIONS:
1. Extract ONLY factual claims (statements that can be verified as true or false)
2. Skip opinions, questions, and subjective statements
3. Include the approximate timestamp if available
4. Return the claims in JSON format
5. IMPORTANT: Write ALL text in {language}

Return a JSON array with this structure:
[
  {{
    "text": "The factual claim text in {language}",
    "timestamp": "MM:SS or null if not available"
  }}
]

Return ONLY the JSON array, no additional text:"""

VERIFICATION_PROMPT = """You are an expert fact-checker. Verify each claim and provide clear, helpful feedback.

IMPORTANT: Write ALL your responses in {language}.

CLAIMS TO VERIFY:
{claims}

For each claim, analyze and return:

1. **status**: "true", "false", "partially_true", or "unverifiable"

2. **score**: 0-100 accuracy score

3. **explanation**: Simple, clear explanation in {language}

4. **wrongPart**: (ONLY if false/partially_true) Quote the EXACT part that is wrong

5. **correction**: (ONLY if false/partially_true) The correct information in {language}

6. **sources**: (ONLY if false/partially_true) Provide 1-3 VERIFIED sources that prove the claim is wrong. Use trusted sources:
   - Wikipedia (e.g., https://en.wikipedia.org/wiki/Topic)
   - Reuters, BBC, AP News, official .gov sites
   - For TRUE claims, leave sources as empty array []

Return JSON array, one object per claim, echoing its claimIndex:
[
  {{
    "claimIndex": 0,
    "status": "true|false|partially_true|unverifiable",
    "score": 85,
    "explanation": "Explanation in {language}",
    "wrongPart": "The incorrect part" or null,
    "correction": "Correct info in {language}" or null,
    "sources": ["https://verified-source.com"]
  }}
]

Return ONLY valid JSON, no markdown:"""


def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` (or bare ```) wrapper around model output."""
    return _FENCE_RE.sub('', (text or '').strip()).strip()


def parse_json_array(text: str) -> list | None:
    """Parse model output as a JSON array; None when it is not one."""
    try:
        data = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, list) else None


def parse_extracted_claims(text: str) -> list[dict]:
    """
    Normalise extraction output into [{text, timestamp}].
    Unparseable output yields one placeholder claim.
    """
    data = parse_json_array(text)
    if data is None:
        logger.warning("Claim extraction returned malformed JSON, using placeholder")
        return [{'text': PLACEHOLDER_CLAIM_TEXT, 'timestamp': None}]

    claims = []
    for item in data:
        if isinstance(item, str):
            item = {'text': item}
        if not isinstance(item, dict):
            continue
        claim_text = str(item.get('text') or '').strip()
        if not claim_text:
            continue
        timestamp = item.get('timestamp')
        if timestamp in ('', 'null'):
            timestamp = None
        claims.append({
            'text': claim_text,
            'timestamp': str(timestamp) if timestamp is not None else None,
        })
    return claims


def default_verdict(explanation: str = "Unable to verify") -> dict:
    return {
        'status': ClaimStatus.UNVERIFIABLE,
        'score': 50,
        'explanation': explanation,
        'wrongPart': None,
        'correction': None,
        'sources': [],
    }


def parse_verdicts(text: str, claim_count: int) -> dict[int, dict]:
    """
    Map claim index → verdict.

    Verdicts are matched by the ``claimIndex`` they echo, falling back to
    their position in the array. Unparseable output marks every claim
    unverifiable. Indexes with no verdict are absent from the result.
    """
    data = parse_json_array(text)
    if data is None:
        logger.warning("Verification returned malformed JSON, marking all claims unverifiable")
        return {i: default_verdict("Unable to verify this claim") for i in range(claim_count)}

    verdicts = {}
    for position, item in enumerate(data):
        if not isinstance(item, dict):
            continue
        index = item.get('claimIndex')
        if not isinstance(index, int) or isinstance(index, bool):
            index = position
        if 0 <= index < claim_count and index not in verdicts:
            verdicts[index] = item

    missing = claim_count - len(verdicts)
    if missing:
        logger.warning("%d of %d claims received no verdict", missing, claim_count)
    return verdicts


def _coerce_score(value, default: int = 50) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(0, min(100, score))


def _clean_optional(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_claim(extracted: dict, verdict: dict) -> Claim:
    """Assemble a final Claim, applying the display rules for each verdict."""
    status = str(verdict.get('status') or '').strip().lower()
    if status not in CLAIM_STATUSES:
        status = ClaimStatus.UNVERIFIABLE

    wrong_part = correction = None
    sources: list[str] = []
    if status in (ClaimStatus.FALSE, ClaimStatus.PARTIALLY_TRUE):
        wrong_part = _clean_optional(verdict.get('wrongPart'))
        correction = _clean_optional(verdict.get('correction'))
        raw_sources = verdict.get('sources') or []
        if isinstance(raw_sources, str):
            raw_sources = [raw_sources]
        if isinstance(raw_sources, list):
            sources = [str(s).strip() for s in raw_sources if str(s).strip()][:MAX_SOURCES]

    return Claim(
        id=str(uuid.uuid4()),
        text=extracted['text'],
        timestamp=extracted.get('timestamp'),
        status=status,
        score=_coerce_score(verdict.get('score')),
        explanation=str(verdict.get('explanation') or "Unable to verify"),
        wrong_part=wrong_part,
        correction=correction,
        sources=sources,
    )


class FactChecker:
    """Runs extraction → verification → scoring over a transcript."""

    def __init__(self, client: GeminiClient, model: str | None = None,
                 policy: RetryPolicy | None = None):
        self.client = client
        self.model = model
        self.policy = policy or RetryPolicy(MAX_ATTEMPTS, INLINE_BACKOFF_SEC, Backoff.FIXED)

    def _generate(self, prompt: str, description: str,
                  should_abort: Optional[Callable[[], None]]) -> str:
        return self.policy.call(self.client.generate, prompt, self.model,
                                description=description, should_abort=should_abort)

    def check(self, transcription: str, language: str = 'en',
              on_progress: Optional[ProgressCallback] = None,
              should_abort: Optional[Callable[[], None]] = None) -> FactCheckResult:
        """
        Extract and verify the claims in ``transcription``.
        Raises JobError(ANALYSIS_FAILED) if a model call itself fails.
        """
        report = on_progress or (lambda progress, message: None)
        lang = language_name(language)

        try:
            report(PROGRESS_ANALYSIS_START, "Extracting claims from transcription...")
            extraction_text = self._generate(
                EXTRACTION_PROMPT.format(transcription=transcription, language=lang),
                "Claim extraction", should_abort)
            extracted = parse_extracted_claims(extraction_text)

            if not extracted:
                logger.info("No factual claims found")
                report(PROGRESS_ANALYSIS_DONE, "Analysis complete!")
                return FactCheckResult(claims=[], overall_score=100)

            report(PROGRESS_VERIFY, f"Fact-checking {len(extracted)} claims...")
            payload = [dict(claim, claimIndex=i) for i, claim in enumerate(extracted)]
            verification_text = self._generate(
                VERIFICATION_PROMPT.format(claims=json.dumps(payload, ensure_ascii=False, indent=2),
                                           language=lang),
                "Claim verification", should_abort)
            verdicts = parse_verdicts(verification_text, len(extracted))
        except JobError as e:
            if e.code == ErrorCode.ANALYSIS_FAILED:
                raise
            raise JobError(ErrorCode.ANALYSIS_FAILED, f"Fact-checking failed: {e.message}")
        except JobCancelled:
            raise
        except Exception as e:
            raise JobError(ErrorCode.ANALYSIS_FAILED, f"Fact-checking failed: {e}")

        report(PROGRESS_SCORING, "Calculating final scores...")
        claims = [build_claim(claim, verdicts.get(i) or default_verdict())
                  for i, claim in enumerate(extracted)]
        overall = compute_overall_score(claims)

        report(PROGRESS_ANALYSIS_DONE, "Analysis complete!")
        return FactCheckResult(claims=claims, overall_score=overall)
