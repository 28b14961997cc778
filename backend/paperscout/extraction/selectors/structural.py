"""
Structural selector: a CSS path query evaluated over a parsed page.
"""

from typing import Any, Dict, List

import soupsieve
from bs4 import BeautifulSoup, Tag

from paperscout.extraction.selectors.base import BaseSelector
from paperscout.extraction.types import NodeHandle
from paperscout.extraction.types import SelectorMode
from paperscout.extraction.types import ValidationResult
from paperscout.utils.logger import setup_logger

logger = setup_logger()


class StructuralSelector(BaseSelector):
    """Selects content nodes with a CSS path query."""

    mode = SelectorMode.STRUCTURAL

    def __init__(self, path_query: str = "", **kwargs: Any):
        super().__init__(**kwargs)
        self.path_query = path_query or ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StructuralSelector":
        path_query = data.get("path_query", data.get("pathQuery", data.get("selector")))
        return cls(path_query=path_query or "", **cls._base_kwargs(data))

    def extract(self, content: Any) -> List[NodeHandle]:
        """
        Select nodes matching the path query.

        Args:
            content: A BeautifulSoup document or Tag, or raw HTML

        Returns:
            Handles to the matched nodes; callers read text or attributes from
            each handle themselves
        """
        if isinstance(content, str):
            content = BeautifulSoup(content, "html.parser")

        if not isinstance(content, Tag) or not self.path_query:
            return []

        try:
            return [NodeHandle(node) for node in content.select(self.path_query)]
        except Exception as e:
            logger.debug(f"Path query '{self.path_query}' failed for {self.get_key()}: {e}")
            return []

    def validate(self) -> ValidationResult:
        result = super().validate()

        if not self.path_query or not self.path_query.strip():
            result.add_error("Path query must not be empty")
            return result

        try:
            soupsieve.compile(self.path_query)
        except Exception as e:
            result.add_error(f"Invalid path query '{self.path_query}': {e}")

        return result

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["path_query"] = self.path_query
        return data
