"""
Call-ended engine - extractor, classifier and template registry.
"""
from .extract import (
    CallDirection,
    ExtractedCallFacts,
    extract_call_facts,
)
from .classify import (
    BLOCK_KEYWORDS,
    TRIGGER_RULES,
    ClassificationDecision,
    ClassificationRule,
    classify_transcript,
)
from .templates import (
    TEMPLATES,
    MessageTemplate,
    TemplateId,
    UnknownTemplateError,
    get_template,
    lookup_template,
)

__all__ = [
    "CallDirection",
    "ExtractedCallFacts",
    "extract_call_facts",
    "BLOCK_KEYWORDS",
    "TRIGGER_RULES",
    "ClassificationDecision",
    "ClassificationRule",
    "classify_transcript",
    "TEMPLATES",
    "MessageTemplate",
    "TemplateId",
    "UnknownTemplateError",
    "get_template",
    "lookup_template",
]
