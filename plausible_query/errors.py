"""
Error types shared by the validator, executor and command line.
Every failure serializes to the same {code, message, suggestion?, details?} envelope.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ValidationIssue:
    """A single problem found while validating a query"""
    code: str
    message: str
    suggestion: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


class PlausibleQueryError(Exception):
    """Base class for every failure surfaced to callers"""

    default_code = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None,
                 suggestion: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self):
        if self.suggestion:
            return f"[{self.code}] {self.message} (suggestion: {self.suggestion})"
        return f"[{self.code}] {self.message}"


class ValidationFailure(PlausibleQueryError):
    """Query rejected locally, before any I/O"""

    default_code = "INVALID_QUERY"

    def __init__(self, issues: List[ValidationIssue]):
        if not issues:
            raise ValueError("ValidationFailure requires at least one issue")
        first = issues[0]
        details = dict(first.details)
        details["issues"] = [issue.to_dict() for issue in issues]
        super().__init__(first.message, code=first.code, suggestion=first.suggestion, details=details)
        self.issues = list(issues)

    @property
    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues]


class ConfigFailure(PlausibleQueryError):
    """A required setting (site id, API key) is missing or malformed"""

    default_code = "CONFIG_ERROR"


class NetworkFailure(PlausibleQueryError):
    """Transport error, DNS failure or timeout"""

    default_code = "NETWORK_ERROR"


class UpstreamFailure(PlausibleQueryError):
    """Non-2xx or unusable response from the Plausible API"""

    default_code = "UPSTREAM_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, suggestion: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        super().__init__(message, code=code, suggestion=suggestion, details=details)
        self.status_code = status_code
