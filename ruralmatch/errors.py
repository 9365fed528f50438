"""
Exception hierarchy for the matching engine.

Every error carries an ``ErrorKind`` so callers can tell request-fatal
failures (validation, storage) from batch-local oracle failures.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    validation = "VALIDATION"
    oracle_timeout = "ORACLE_TIMEOUT"
    oracle_transport = "ORACLE_TRANSPORT"
    oracle_parse = "ORACLE_PARSE"
    storage_unavailable = "STORAGE_UNAVAILABLE"


class MatchingError(Exception):
    """Base exception for all matching errors."""

    kind: ErrorKind = ErrorKind.validation


class MatchValidationError(MatchingError):
    """Malformed input to the scorer or an unresolvable request."""

    kind = ErrorKind.validation


class OracleError(MatchingError):
    """Relevance oracle failure. Degrades a single batch, never the request."""

    kind = ErrorKind.oracle_transport


class OracleTimeoutError(OracleError):
    kind = ErrorKind.oracle_timeout


class OracleTransportError(OracleError):
    kind = ErrorKind.oracle_transport


class OracleParseError(OracleError):
    kind = ErrorKind.oracle_parse


class StorageUnavailableError(MatchingError):
    """Candidate pool could not be retrieved."""

    kind = ErrorKind.storage_unavailable
