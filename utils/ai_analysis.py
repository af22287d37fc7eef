"""Gemini text analysis for complaint credibility, urgency, and routing."""
import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from flask import current_app
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from utils.priority import clamp

SENTIMENTS = {"positive", "neutral", "negative"}
MAX_KEYWORDS = 5


class AIAnalysisError(Exception):
    """Raised when Gemini cannot return a usable analysis."""

    status_code = 500


class AIRateLimitedError(AIAnalysisError):
    """Gemini answered with HTTP 429."""

    status_code = 429


class AIQuotaExhaustedError(AIAnalysisError):
    """Gemini answered with HTTP 402 (credits exhausted)."""

    status_code = 402


@dataclass
class AIAnalysis:
    sentiment: str
    fake_probability: float
    credibility_score: float
    keywords: List[str] = field(default_factory=list)
    suggested_department: str = ""
    urgency_score: float = 1
    summary: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "sentiment": self.sentiment,
            "fakeProbability": self.fake_probability,
            "credibilityScore": self.credibility_score,
            "keywords": list(self.keywords),
            "suggestedDepartment": self.suggested_department,
            "urgencyScore": self.urgency_score,
            "summary": self.summary,
        }


SYSTEM_PROMPT = (
    "You are an AI analyst for a civic complaint management system called Civic-Eye. "
    "Analyse each complaint and provide structured analysis. For each complaint determine: "
    "1. sentiment: whether the tone is positive, neutral, or negative. "
    "2. fakeProbability: likelihood (0-100) that the complaint is fake or spam, based on vague descriptions, "
    "unrealistic claims, copy-pasted or generic text, inconsistent details, and emotional language without specifics. "
    "3. credibilityScore: overall credibility (0-100) considering specificity, coherence, and realistic details. "
    "4. keywords: 3-5 relevant keywords or tags. "
    "5. suggestedDepartment: which government department should handle it. "
    "6. urgencyScore: how urgent the issue is (1-10). "
    "7. summary: a brief one-sentence summary. "
    "Be fair but vigilant. Real civic complaints tend to have specific locations, observable details, and reasonable concerns."
)

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "sentiment": {"type": "STRING", "enum": sorted(SENTIMENTS)},
        "fakeProbability": {"type": "NUMBER"},
        "credibilityScore": {"type": "NUMBER"},
        "keywords": {"type": "ARRAY", "items": {"type": "STRING"}},
        "suggestedDepartment": {"type": "STRING"},
        "urgencyScore": {"type": "NUMBER"},
        "summary": {"type": "STRING"},
    },
    "required": [
        "sentiment",
        "fakeProbability",
        "credibilityScore",
        "keywords",
        "suggestedDepartment",
        "urgencyScore",
        "summary",
    ],
}


def _first_json_block(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def _safe_json_loads(raw_text: str) -> Dict[str, Any]:
    """Parse JSON robustly, tolerating leading/trailing noise or code fences."""
    cleaned = raw_text.strip()
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*", "", cleaned).strip()
    cleaned = re.sub(r"```$", "", cleaned).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return json.loads(_first_json_block(cleaned))


def _coerce_str(value: Any, field_name: str, required: bool = True) -> str | None:
    if value is None:
        if required:
            raise AIAnalysisError(f"Missing required field: {field_name}")
        return None
    text = str(value).strip()
    if required and not text:
        raise AIAnalysisError(f"Missing required field: {field_name}")
    return text


def _coerce_float(value: Any, field_name: str) -> float:
    if value is None or value == "" or isinstance(value, bool):
        raise AIAnalysisError(f"Missing numeric field: {field_name}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise AIAnalysisError(f"Invalid numeric field: {field_name}") from exc


def _coerce_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        return [str(value).strip()] if str(value).strip() else []
    result = []
    for item in value:
        text = str(item).strip()
        if text:
            result.append(text)
    return result


def build_analysis_prompt(title: str, description: str, category: str, complaint_type: str) -> str:
    return (
        f"Analyze this {complaint_type} complaint:\n\n"
        f"Category: {category}\n"
        f"Title: {title}\n"
        f"Description: {description}\n\n"
        "Provide your analysis as JSON only."
    )


def parse_analysis(payload: Dict[str, Any]) -> AIAnalysis:
    """Validate a raw model payload and clamp numbers into their documented ranges."""
    if not isinstance(payload, dict):
        raise AIAnalysisError("Analysis payload is not an object")

    sentiment = (_coerce_str(payload.get("sentiment"), "sentiment") or "").lower()
    if sentiment not in SENTIMENTS:
        raise AIAnalysisError(f"Invalid sentiment: {sentiment}")

    fake_probability = clamp(_coerce_float(payload.get("fakeProbability"), "fakeProbability"), 0, 100)
    credibility_score = clamp(_coerce_float(payload.get("credibilityScore"), "credibilityScore"), 0, 100)
    urgency_score = clamp(_coerce_float(payload.get("urgencyScore"), "urgencyScore"), 1, 10)

    return AIAnalysis(
        sentiment=sentiment,
        fake_probability=fake_probability,
        credibility_score=credibility_score,
        keywords=_coerce_str_list(payload.get("keywords"))[:MAX_KEYWORDS],
        suggested_department=_coerce_str(payload.get("suggestedDepartment"), "suggestedDepartment"),
        urgency_score=urgency_score,
        summary=_coerce_str(payload.get("summary"), "summary", required=False) or "",
    )


def _build_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def _raise_for_api_error(exc: genai_errors.APIError) -> None:
    code = getattr(exc, "code", None)
    if code == 429:
        raise AIRateLimitedError("Rate limit exceeded. Please try again later.") from exc
    if code == 402:
        raise AIQuotaExhaustedError("AI service credits exhausted.") from exc
    raise AIAnalysisError(f"AI gateway error: {code}") from exc


def analyze_complaint(title: str, description: str, category: str, complaint_type: str) -> AIAnalysis:
    """Run one analysis request; the caller decides how to degrade on failure."""
    api_key = current_app.config.get("GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise AIAnalysisError("GEMINI_API_KEY is not configured")

    model_name = current_app.config.get("GEMINI_TEXT_MODEL", "gemini-2.5-flash")
    current_app.logger.info(
        "Dispatching Gemini complaint analysis",
        extra={"category": category, "complaint_type": complaint_type, "model": model_name},
    )

    client = _build_client(api_key)
    try:
        response = client.models.generate_content(
            model=model_name,
            contents=build_analysis_prompt(title, description, category, complaint_type),
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                response_mime_type="application/json",
                response_schema=RESPONSE_SCHEMA,
            ),
        )
    except genai_errors.APIError as exc:
        _raise_for_api_error(exc)
    except Exception as exc:  # pragma: no cover - relies on remote service
        raise AIAnalysisError("Gemini request failed") from exc

    raw_text = (getattr(response, "text", None) or "").strip()
    if not raw_text:
        raise AIAnalysisError("Gemini returned empty response")

    try:
        payload = _safe_json_loads(raw_text)
    except (json.JSONDecodeError, ValueError) as exc:
        raise AIAnalysisError("Gemini returned non-JSON output") from exc

    return parse_analysis(payload)
