"""
Base selector interface shared by structural and pattern selectors.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from paperscout.extraction.selectors.validation import ValidationCriteria
from paperscout.extraction.types import ExtractedValue
from paperscout.extraction.types import PageKind
from paperscout.extraction.types import SelectorMode
from paperscout.extraction.types import ValidationResult
from paperscout.extraction.types import parse_enum


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_domain(url: str) -> str:
    """Return the host of ``url``, or "" when it cannot be parsed."""
    try:
        return urlparse(url).hostname or ""
    except (ValueError, TypeError, AttributeError):
        return ""


def _first_present(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


class BaseSelector(ABC):
    """Base class for a single extraction strategy bound to a site layout."""

    mode: SelectorMode

    def __init__(
        self,
        domain: str = "",
        page_kind: Union[PageKind, str] = PageKind.SEARCH_RESULTS,
        description: str = "",
        validation: Optional[ValidationCriteria] = None,
        enabled: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None,
    ):
        self.domain = domain or ""
        # Unknown page kinds are kept verbatim so validate() can report them
        self.page_kind = parse_enum(PageKind, page_kind) or page_kind
        self.description = description or ""
        self.validation = validation.copy() if validation else ValidationCriteria()
        self.enabled = enabled
        self.metadata = dict(metadata) if metadata else {}
        now = utc_now_iso()
        self.created_at = created_at or now
        self.updated_at = updated_at or now

    @classmethod
    def _base_kwargs(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Parse the fields every selector record carries."""
        enabled = data.get("enabled")
        return {
            "domain": data.get("domain", ""),
            "page_kind": _first_present(
                data, "page_kind", "pageKind", "pageType",
                default=PageKind.SEARCH_RESULTS,
            ),
            "description": data.get("description", ""),
            "validation": ValidationCriteria.from_dict(data.get("validation")),
            "enabled": True if enabled is None else bool(enabled),
            "metadata": data.get("metadata") or {},
            "created_at": _first_present(data, "created_at", "createdAt"),
            "updated_at": _first_present(data, "updated_at", "updatedAt"),
        }

    @classmethod
    @abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaseSelector":
        """Rebuild a selector from its record."""
        pass

    @abstractmethod
    def extract(self, content: Any) -> List[ExtractedValue]:
        """
        Extract values from page content.

        Never raises for bad content or a broken query; failures yield an
        empty list.

        Args:
            content: Page content appropriate for the selector kind

        Returns:
            List of extracted values
        """
        pass

    @property
    def page_kind_value(self) -> str:
        if isinstance(self.page_kind, PageKind):
            return self.page_kind.value
        return str(self.page_kind)

    def get_key(self) -> str:
        return f"{self.domain}_{self.page_kind_value}"

    def matches_page(self, url: str, page_kind: Union[PageKind, str]) -> bool:
        """Check whether this selector applies to ``url`` for ``page_kind``."""
        return (
            extract_domain(url) == self.domain
            and self.page_kind_value == getattr(page_kind, "value", page_kind)
        )

    def update(self, **changes: Any) -> None:
        """Apply attribute changes; validation dicts are merged into the criteria."""
        for key, value in changes.items():
            if key == "validation" and isinstance(value, dict):
                merged = self.validation.to_dict()
                merged.update(value)
                self.validation = ValidationCriteria.from_dict(merged)
            elif key == "validation" and isinstance(value, ValidationCriteria):
                self.validation = value.copy()
            elif hasattr(self, key):
                setattr(self, key, value)
        self.updated_at = utc_now_iso()

    def validate(self) -> ValidationResult:
        """Validate the selector configuration."""
        result = ValidationResult()

        if not self.domain:
            result.add_error("Domain must not be empty")

        if not isinstance(self.page_kind, PageKind):
            result.add_error(f"Invalid page kind: {self.page_kind}")

        for issue in self.validation.validate():
            result.add_error(issue)

        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "page_kind": self.page_kind_value,
            "description": self.description,
            "validation": self.validation.to_dict(),
            "enabled": self.enabled,
            "metadata": copy.deepcopy(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def clone(self) -> "BaseSelector":
        return self.__class__.from_dict(self.to_dict())

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(key={self.get_key()!r}, enabled={self.enabled})"
