"""
Type definitions and data classes for selector extraction.
Provides the closed enums used at the persistence boundary and the
structured results returned instead of exceptions.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bs4 import Tag


class PageKind(str, Enum):
    """Kinds of page a selector set can be learned for."""
    SEARCH_RESULTS = "search_results"
    PAPER_DETAIL = "paper_detail"


class SelectorMode(str, Enum):
    """How an extractor pulls values out of page content."""
    STRUCTURAL = "structural"
    PATTERN = "pattern"


class FieldName(str, Enum):
    """Semantic fields a selector set can hold an extractor for."""
    PAPER_ITEM = "paper_item"
    TITLE = "title"
    PDF = "pdf"
    ABSTRACT = "abstract"
    ALL_VERSIONS_LINK = "all_versions_link"


class LearningState(str, Enum):
    """Per (domain, page kind) lifecycle of a learned selector set."""
    UNLEARNED = "unlearned"
    LEARNING = "learning"
    LEARNED = "learned"
    STALE = "stale"


class PassStatus(str, Enum):
    """Outcome of one extraction pass over a page."""
    EXTRACTED = "extracted"
    LEARNING_REQUESTED = "learning_requested"
    STALE = "stale"
    SKIPPED = "skipped"


def parse_enum(enum_cls, value: Any) -> Optional[Enum]:
    """Return the enum member for ``value`` or None when it is not a member."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class NodeHandle:
    """A content node matched by a structural selector."""
    node: Tag

    def as_text(self) -> str:
        return self.node.get_text(" ", strip=True)

    def attribute(self, name: str) -> Optional[str]:
        value = self.node.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value


@dataclass(frozen=True)
class TextValue:
    """A string captured by a pattern selector."""
    text: str

    def as_text(self) -> str:
        return self.text


ExtractedValue = Union[NodeHandle, TextValue]


def value_as_text(value: Union[ExtractedValue, str]) -> str:
    """Coerce an extracted value (or a plain string) to the text it stands for."""
    if isinstance(value, str):
        return value
    return value.as_text()


@dataclass
class ValidationResult:
    """Result of checking a selector or a set of extracted values."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    @property
    def has_issues(self) -> bool:
        """Check if there are any errors or warnings."""
        return bool(self.errors or self.warnings)


@dataclass
class SelectorSetValidation:
    """Validation of a whole selector set, errors grouped by field."""
    is_valid: bool = True
    errors: Dict[str, List[str]] = field(default_factory=dict)

    def add_errors(self, scope: str, messages: List[str]) -> None:
        if not messages:
            return
        self.errors.setdefault(scope, []).extend(messages)
        self.is_valid = False
