"""
Validation criteria for extracted values.

A criteria object decides whether what a selector produced is acceptable: a
per-item content pattern plus bounds on the number of items. Structural and
pattern selectors for the same field share one criteria object.
"""
import re
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from paperscout.extraction.types import ExtractedValue
from paperscout.extraction.types import FieldName
from paperscout.extraction.types import ValidationResult
from paperscout.extraction.types import value_as_text
from paperscout.utils.logger import setup_logger

logger = setup_logger()

DEFAULT_CONTENT_REGEX = ".*"
UNBOUNDED_COUNT = sys.maxsize


@dataclass
class ValidationCriteria:
    """Content pattern plus min/max bounds on the result count."""
    content_regex: str = DEFAULT_CONTENT_REGEX
    min_count: int = 0
    max_count: int = UNBOUNDED_COUNT

    @classmethod
    def from_dict(cls, data: Optional[Union[Dict[str, Any], "ValidationCriteria"]]) -> "ValidationCriteria":
        """Create criteria from a record, accepting legacy camelCase keys."""
        if isinstance(data, ValidationCriteria):
            return data.copy()
        if not data:
            return cls()

        content_regex = data.get("content_regex", data.get("contentRegex"))
        min_count = data.get("min_count", data.get("minCount"))
        max_count = data.get("max_count", data.get("maxCount"))

        return cls(
            content_regex=content_regex if content_regex else DEFAULT_CONTENT_REGEX,
            min_count=int(min_count) if min_count is not None else 0,
            max_count=int(max_count) if max_count is not None else UNBOUNDED_COUNT,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_regex": self.content_regex,
            "min_count": self.min_count,
            "max_count": self.max_count,
        }

    def copy(self) -> "ValidationCriteria":
        return ValidationCriteria(self.content_regex, self.min_count, self.max_count)

    def validate(self) -> List[str]:
        """Check the criteria themselves and return a list of issues."""
        issues = []

        if self.min_count < 0:
            issues.append(f"min_count must not be negative (got {self.min_count})")

        if self.max_count < self.min_count:
            issues.append(
                f"max_count ({self.max_count}) must not be less than "
                f"min_count ({self.min_count})"
            )

        try:
            re.compile(self.content_regex)
        except re.error as e:
            issues.append(f"Invalid content_regex '{self.content_regex}': {e}")

        return issues

    def check(self, results: Sequence[Union[ExtractedValue, str]]) -> ValidationResult:
        """
        Check extracted values against these criteria.

        The result is valid iff min_count <= len(results) <= max_count and
        every item's text matches content_regex.
        """
        result = ValidationResult()
        count = len(results)

        if count < self.min_count:
            result.add_error(
                f"Result count {count} is below the minimum of {self.min_count}"
            )

        if count > self.max_count:
            result.add_error(
                f"Result count {count} is above the maximum of {self.max_count}"
            )

        try:
            pattern = re.compile(self.content_regex)
        except re.error as e:
            result.add_error(f"Invalid content_regex '{self.content_regex}': {e}")
            return result

        invalid_items = [
            item for item in results if not pattern.search(value_as_text(item))
        ]
        if invalid_items:
            result.add_error(
                f"{len(invalid_items)} of {count} items do not match "
                f"content_regex '{self.content_regex}'"
            )

        return result


PREDEFINED_VALIDATIONS: Dict[str, ValidationCriteria] = {
    "paper_list": ValidationCriteria(content_regex=".{6,}", min_count=3, max_count=30),
    "title": ValidationCriteria(content_regex=".{10,}", min_count=1, max_count=1),
    "pdf_url": ValidationCriteria(
        content_regex=r".*\.pdf.*|.*filetype.*pdf.*", min_count=0, max_count=5
    ),
    "abstract": ValidationCriteria(content_regex=".{50,}", min_count=0, max_count=1),
    "all_versions_link": ValidationCriteria(
        content_regex=r".*versions?.*|.*version.*\d+.*", min_count=0, max_count=1
    ),
}

FIELD_DEFAULT_VALIDATIONS: Dict[FieldName, str] = {
    FieldName.PAPER_ITEM: "paper_list",
    FieldName.TITLE: "title",
    FieldName.PDF: "pdf_url",
    FieldName.ABSTRACT: "abstract",
    FieldName.ALL_VERSIONS_LINK: "all_versions_link",
}


def get_predefined_validation(name: str) -> Optional[ValidationCriteria]:
    """
    Look up a predefined criteria object by name.

    Names are case-insensitive and may carry a ``validate_`` prefix, so both
    ``paper_list`` and ``VALIDATE_PAPER_LIST`` resolve. A copy is returned.
    """
    if not isinstance(name, str):
        return None

    key = name.lower()
    if key.startswith("validate_"):
        key = key[len("validate_"):]
    if key == "pdf":
        key = "pdf_url"

    criteria = PREDEFINED_VALIDATIONS.get(key)
    return criteria.copy() if criteria else None


def default_validation_for(field_name: FieldName) -> ValidationCriteria:
    return PREDEFINED_VALIDATIONS[FIELD_DEFAULT_VALIDATIONS[field_name]].copy()


def validate_with_predefined(
    results: Sequence[Union[ExtractedValue, str]], name: str
) -> ValidationResult:
    """Check results against one of the predefined criteria."""
    criteria = get_predefined_validation(name)
    if criteria is None:
        logger.warning(f"Predefined validation '{name}' does not exist")
        return ValidationResult(
            is_valid=False, errors=[f"Unknown predefined validation: {name}"]
        )
    return criteria.check(results)
