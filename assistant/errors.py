"""
assistant/errors.py
-------------------
Exception types raised at module seams, and the ``FailureKind`` tags that
record which recovery path produced a user-facing reply.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Which failure path was taken while answering a message."""
    MODEL_UNAVAILABLE = "model_unavailable"
    MALFORMED_MODEL_RESPONSE = "malformed_model_response"
    INSUFFICIENT_ENTITIES = "insufficient_entities"
    EXTERNAL_OPERATION_FAILURE = "external_operation_failure"
    VALIDATION_ERROR = "validation_error"


class ModelResponseParseError(ValueError):
    """No well-formed JSON object could be recovered from a model response."""


class ExternalOperationError(Exception):
    """The accounting backend rejected or failed an operation."""


class BookkeepingValidationError(ValueError):
    """A bookkeeping request failed schema validation before being sent."""


class DocumentParseError(Exception):
    """An uploaded document could not be turned into plain text."""


class ExtractionError(Exception):
    """Invoice fields could not be extracted from a document."""
