"""
Pattern selector: a regular expression matched over raw page text.
"""

import re
from typing import Any, Dict, List, Tuple

from bs4 import Tag

from paperscout.extraction.selectors.base import BaseSelector
from paperscout.extraction.types import SelectorMode
from paperscout.extraction.types import TextValue
from paperscout.extraction.types import ValidationResult
from paperscout.utils.logger import setup_logger

logger = setup_logger()

GLOBAL_FLAG = "g"
DEFAULT_MATCH_FLAGS = GLOBAL_FLAG

_FLAG_MAP = {
    "g": 0,
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,
}


def parse_match_flags(match_flags: str) -> Tuple[int, bool, List[str]]:
    """
    Translate a flag string into ``re`` flags.

    Returns:
        Tuple of (re flags, global matching enabled, unknown flag letters)
    """
    if match_flags.strip().lower() == "global":
        match_flags = GLOBAL_FLAG

    re_flags = 0
    unknown = []
    for letter in match_flags:
        if letter not in _FLAG_MAP:
            unknown.append(letter)
            continue
        re_flags |= _FLAG_MAP[letter]

    return re_flags, GLOBAL_FLAG in match_flags, unknown


class PatternSelector(BaseSelector):
    """Extracts strings with a regular expression."""

    mode = SelectorMode.PATTERN

    def __init__(
        self,
        pattern: str = "",
        capture_group_index: int = 0,
        match_flags: str = DEFAULT_MATCH_FLAGS,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.pattern = pattern or ""
        self.capture_group_index = capture_group_index or 0
        self.match_flags = match_flags if match_flags is not None else DEFAULT_MATCH_FLAGS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatternSelector":
        pattern = data.get("pattern", data.get("regex"))
        group = data.get("capture_group_index", data.get("captureGroupIndex", data.get("groupIndex")))
        flags = data.get("match_flags", data.get("matchFlags", data.get("flags")))
        return cls(
            pattern=pattern or "",
            capture_group_index=int(group) if group is not None else 0,
            match_flags=flags if flags is not None else DEFAULT_MATCH_FLAGS,
            **cls._base_kwargs(data),
        )

    def _compile(self) -> Tuple[re.Pattern, bool]:
        re_flags, is_global, unknown = parse_match_flags(self.match_flags)
        if unknown:
            raise re.error(f"unsupported match flags: {''.join(unknown)}")
        return re.compile(self.pattern, re_flags), is_global

    def _match_value(self, match: re.Match) -> str:
        # A group that does not exist or did not participate falls back to the whole match
        if 0 < self.capture_group_index <= (match.re.groups or 0):
            group = match.group(self.capture_group_index)
            if group is not None:
                return group
        return match.group(0)

    def extract(self, content: Any) -> List[TextValue]:
        """
        Match the pattern against text.

        With the global flag every non-overlapping match is returned left to
        right; without it at most one match is returned.

        Args:
            content: Text to search, or a Tag whose markup is searched

        Returns:
            Captured group (or whole match) of each match
        """
        if isinstance(content, Tag):
            content = str(content)

        if not isinstance(content, str) or not content or not self.pattern:
            return []

        try:
            compiled, is_global = self._compile()
        except re.error as e:
            logger.debug(f"Pattern '{self.pattern}' failed for {self.get_key()}: {e}")
            return []

        if not is_global:
            match = compiled.search(content)
            return [TextValue(self._match_value(match))] if match else []

        return [TextValue(self._match_value(match)) for match in compiled.finditer(content)]

    def validate(self) -> ValidationResult:
        result = super().validate()

        if not self.pattern:
            result.add_error("Pattern must not be empty")

        if self.capture_group_index < 0:
            result.add_error(
                f"Capture group index must not be negative (got {self.capture_group_index})"
            )

        _, _, unknown = parse_match_flags(self.match_flags)
        if unknown:
            result.add_error(f"Invalid match flags: {''.join(unknown)}")
        elif self.pattern:
            try:
                self._compile()
            except re.error as e:
                result.add_error(f"Invalid pattern '{self.pattern}': {e}")

        return result

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "pattern": self.pattern,
            "capture_group_index": self.capture_group_index,
            "match_flags": self.match_flags,
        })
        return data
