"""
formalizer.py - Natural-Language to Formal Specification

Sends a free-text system description to a Gemini model and asks for a JSON
document in one of two shapes (FormalizerStyle). The reply is parsed and
checked against a JSON Schema before it is handed back.

Failure contract: formalize() never raises. Blank input, a missing key, a
transport error, unparsable JSON and a schema mismatch all come back as None,
with a WARNING log line saying which.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

import google.generativeai as genai
from jsonschema import Draft202012Validator

from config_schema import DEFAULT_MODEL

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 30.0  # seconds per generate_content call


class FormalizerStyle(Enum):
    FORMAL_LOGIC = "FORMAL_LOGIC"
    NARRATIVE = "NARRATIVE"


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

FORMAL_LOGIC_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["moduleName", "formalLogic", "invariants", "preemptionStrategy", "summary"],
    "properties": {
        "moduleName": {"type": "string"},
        "formalLogic": {"type": "string"},
        "invariants": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["property", "definition", "safetyCritical"],
                "properties": {
                    "property": {"type": "string"},
                    "definition": {"type": "string"},
                    "safetyCritical": {"type": "boolean"},
                },
            },
        },
        "preemptionStrategy": {"type": "string"},
        "summary": {"type": "string"},
    },
}

NARRATIVE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["systemName", "refusalLogic", "atomicTransitions", "constraints"],
    "properties": {
        "systemName": {"type": "string"},
        "refusalLogic": {"type": "string"},
        "atomicTransitions": {"type": "array", "items": {"type": "string"}},
        "constraints": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["metric", "boundary", "mechanism"],
                "properties": {
                    "metric": {"type": "string"},
                    "boundary": {"type": "string"},
                    "mechanism": {"type": "string"},
                },
            },
        },
    },
}

RESPONSE_SCHEMAS = {
    FormalizerStyle.FORMAL_LOGIC: FORMAL_LOGIC_SCHEMA,
    FormalizerStyle.NARRATIVE: NARRATIVE_SCHEMA,
}


# =============================================================================
# PROMPTS
# =============================================================================

_FORMAL_LOGIC_PROMPT = """You are a Formal Methods Engineer. Convert the following system description into a Formal Invariance Specification.

Use TLA+ style logic for the 'formalLogic' field.
Focus on:
1. Type Invariants (Variables and their domains).
2. Safety Properties (What must never happen).
3. Transition Relations (Atomic state changes).

Respond with a single JSON object with keys: moduleName (string), formalLogic (string),
invariants (array of {{property, definition, safetyCritical}}), preemptionStrategy (string:
how to refuse work to maintain invariants), summary (string).

Description: {description}"""

_NARRATIVE_PROMPT = """You are a systems architect designing admission control that refuses work before execution.
Describe the following system as a set of bounded, atomic state transitions.

Respond with a single JSON object with keys: systemName (string), refusalLogic (string:
when and why work is refused), atomicTransitions (array of strings), constraints (array of
{{metric, boundary, mechanism}}).

Description: {description}"""

PROMPTS = {
    FormalizerStyle.FORMAL_LOGIC: _FORMAL_LOGIC_PROMPT,
    FormalizerStyle.NARRATIVE: _NARRATIVE_PROMPT,
}


def build_prompt(description: str, style: FormalizerStyle) -> str:
    return PROMPTS[style].format(description=description.strip())


# =============================================================================
# FORMALIZER
# =============================================================================

class SpecFormalizer:
    """
    One-shot request/response client.

    Args:
        api_key: Gemini API key; needed unless a model is injected
        model_name: Gemini model to call
        style: Which response schema to request and enforce
        model: Object with generate_content(prompt, request_options) -> response.text (tests)
        timeout_s: Seconds before the call is abandoned
    """

    def __init__(self, api_key: Optional[str] = None, model_name: str = DEFAULT_MODEL,
                 style: FormalizerStyle = FormalizerStyle.FORMAL_LOGIC, model=None,
                 timeout_s: float = REQUEST_TIMEOUT_S):
        self.api_key = api_key
        self.model_name = model_name
        self.style = style
        self._model = model
        self.timeout_s = timeout_s
        self._validator = Draft202012Validator(RESPONSE_SCHEMAS[style])

    def _get_model(self):
        if self._model is None:
            if not self.api_key:
                return None
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                self.model_name,
                generation_config={"response_mime_type": "application/json"},
            )
            logger.info("formalizer using %s", self.model_name)
        return self._model

    def formalize(self, description: str) -> Optional[Dict[str, Any]]:
        """
        Convert a description into a formal specification document.

        Args:
            description: Free-text system description

        Returns:
            Parsed, schema-valid dict, or None on blank input or any failure
        """
        if not description or not description.strip():
            return None

        try:
            model = self._get_model()
            if model is None:
                logger.warning("formalizer: no API key configured (GEMINI_API_KEY or API_KEY)")
                return None
            response = model.generate_content(
                build_prompt(description, self.style),
                request_options={"timeout": self.timeout_s},
            )
            document = json.loads(response.text)
        except Exception as e:
            logger.warning("formalizer call failed: %s", e)
            return None

        errors = list(self._validator.iter_errors(document))
        if errors:
            logger.warning("formalizer response rejected: %s", errors[0].message)
            return None
        return document


def render_markdown(document: Dict[str, Any]) -> str:
    """Readable rendering of either response shape."""
    if "moduleName" in document:
        lines = [f"### {document['moduleName']}", "", document["summary"], "",
                 "```tla", document["formalLogic"], "```", "", "**Invariants**"]
        for inv in document["invariants"]:
            marker = " (safety-critical)" if inv["safetyCritical"] else ""
            lines.append(f"- `{inv['property']}`{marker}: {inv['definition']}")
        lines += ["", f"**Preemption strategy:** {document['preemptionStrategy']}"]
        return "\n".join(lines)

    lines = [f"### {document['systemName']}", "", f"**Refusal logic:** {document['refusalLogic']}",
             "", "**Atomic transitions**"]
    lines += [f"{i}. {t}" for i, t in enumerate(document["atomicTransitions"], 1)]
    lines += ["", "**Constraints**"]
    for c in document["constraints"]:
        lines.append(f"- {c['metric']} | {c['boundary']} | {c['mechanism']}")
    return "\n".join(lines)
