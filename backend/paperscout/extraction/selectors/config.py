"""
Selector set configuration: one extractor per semantic field for a
(domain, page kind) site layout.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from paperscout.extraction.exceptions import SelectorConfigurationError
from paperscout.extraction.selectors.base import BaseSelector
from paperscout.extraction.selectors.base import extract_domain
from paperscout.extraction.selectors.factory import build_selector
from paperscout.extraction.selectors.factory import resolve_mode
from paperscout.extraction.selectors.factory import selector_from_dict
from paperscout.extraction.selectors.validation import default_validation_for
from paperscout.extraction.selectors.validation import validate_with_predefined
from paperscout.extraction.types import ExtractedValue
from paperscout.extraction.types import FieldName
from paperscout.extraction.types import PageKind
from paperscout.extraction.types import SelectorMode
from paperscout.extraction.types import SelectorSetValidation
from paperscout.extraction.types import ValidationResult
from paperscout.extraction.types import parse_enum
from paperscout.utils.logger import setup_logger

logger = setup_logger()

SELECTOR_SET_SCOPE = "selector_set"

_FIELD_LABELS = {
    FieldName.PAPER_ITEM: "Paper item",
    FieldName.TITLE: "Title",
    FieldName.PDF: "PDF link",
    FieldName.ABSTRACT: "Abstract",
    FieldName.ALL_VERSIONS_LINK: "All-versions link",
}


def default_description(field_name: FieldName, mode: SelectorMode) -> str:
    return f"{_FIELD_LABELS[field_name]} {mode.value} selector"


def resolve_field_name(field_name: Union[FieldName, str]) -> FieldName:
    """Return the FieldName for ``field_name`` or raise SelectorConfigurationError."""
    resolved = parse_enum(FieldName, field_name)
    if resolved is None:
        raise SelectorConfigurationError(
            f"Unsupported field name '{field_name}'. "
            f"Must be one of: {[f.value for f in FieldName]}"
        )
    return resolved


@dataclass
class ExtractorConfig:
    """Binds one selector and its acceptance rule to a semantic field."""
    field_name: FieldName
    mode: SelectorMode
    selector: BaseSelector
    enabled: bool = True
    description: str = ""

    @property
    def strategy(self) -> BaseSelector:
        return self.selector

    @property
    def validation(self):
        return self.selector.validation

    @classmethod
    def from_dict(
        cls,
        field_name: FieldName,
        data: Dict[str, Any],
        domain: str,
        page_kind: str,
    ) -> "ExtractorConfig":
        """Rebuild an extractor, including a live selector instance."""
        mode = resolve_mode(data.get("mode"))
        strategy_data = dict(data.get("strategy") or data.get("selector") or {})
        # The parent set owns the domain and page kind
        strategy_data["domain"] = domain
        strategy_data["page_kind"] = page_kind
        selector = selector_from_dict(mode, strategy_data)

        # An extractor-level flag wins over the strategy's own
        enabled = data.get("enabled")
        enabled = selector.enabled if enabled is None else bool(enabled)
        selector.enabled = enabled
        description = (
            data.get("description")
            or selector.description
            or default_description(field_name, mode)
        )

        return cls(
            field_name=field_name,
            mode=mode,
            selector=selector,
            enabled=enabled,
            description=description,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "strategy": self.selector.to_dict(),
            "description": self.description,
            "enabled": self.enabled,
        }


class SelectorSet:
    """All extractor configurations for one (domain, page kind) pair."""

    def __init__(
        self,
        domain: str = "",
        page_kind: Union[PageKind, str] = PageKind.SEARCH_RESULTS,
        extractors: Optional[Dict[str, Any]] = None,
    ):
        self.domain = domain or ""
        self.page_kind = parse_enum(PageKind, page_kind) or page_kind
        self.extractors: Dict[FieldName, ExtractorConfig] = {}

        if extractors:
            self._rebuild_extractors(extractors)

    def _rebuild_extractors(self, extractors_data: Dict[str, Any]) -> None:
        for name, config in extractors_data.items():
            field_name = parse_enum(FieldName, name)
            if field_name is None:
                logger.warning(f"Skipping unknown extractor field '{name}' in {self.get_key()}")
                continue

            if isinstance(config, ExtractorConfig):
                config = config.to_dict()
            if not config:
                continue

            self.extractors[field_name] = ExtractorConfig.from_dict(
                field_name, config, self.domain, self.page_kind_value
            )

    @property
    def page_kind_value(self) -> str:
        if isinstance(self.page_kind, PageKind):
            return self.page_kind.value
        return str(self.page_kind)

    @staticmethod
    def make_key(domain: str, page_kind: Union[PageKind, str]) -> str:
        return f"{domain}_{getattr(page_kind, 'value', page_kind)}"

    def get_key(self) -> str:
        return self.make_key(self.domain, self.page_kind_value)

    @staticmethod
    def extract_domain(url: str) -> str:
        return extract_domain(url)

    def fields(self) -> List[FieldName]:
        return list(self.extractors.keys())

    def __contains__(self, field_name: object) -> bool:
        return parse_enum(FieldName, field_name) in self.extractors

    def get_field(self, field_name: Union[FieldName, str]) -> Optional[ExtractorConfig]:
        resolved = parse_enum(FieldName, field_name)
        if resolved is None:
            return None
        return self.extractors.get(resolved)

    def set_field(
        self,
        field_name: Union[FieldName, str],
        mode: Union[SelectorMode, str],
        raw_config: Optional[Dict[str, Any]] = None,
    ) -> ExtractorConfig:
        """
        Create or replace the extractor for one field.

        The selector is rebuilt from ``raw_config`` with this set's domain and
        page kind. An existing field keeps its enabled flag; a new field is
        enabled.

        Raises:
            SelectorConfigurationError: If the field name or mode is unknown
        """
        resolved_field = resolve_field_name(field_name)
        resolved_mode = resolve_mode(mode)
        raw = dict(raw_config or {})

        selector = build_selector(
            resolved_mode,
            raw,
            domain=self.domain,
            page_kind=self.page_kind_value,
            validation=raw.get("validation") or default_validation_for(resolved_field),
        )

        description = raw.get("description") or default_description(resolved_field, resolved_mode)
        if not selector.description:
            selector.description = description

        previous = self.extractors.get(resolved_field)
        enabled = previous.enabled if previous else True
        selector.enabled = enabled

        config = ExtractorConfig(
            field_name=resolved_field,
            mode=resolved_mode,
            selector=selector,
            enabled=enabled,
            description=description,
        )
        self.extractors[resolved_field] = config
        logger.debug(f"Set {resolved_field.value} extractor ({resolved_mode.value}) on {self.get_key()}")
        return config

    def set_field_enabled(self, field_name: Union[FieldName, str], enabled: bool) -> bool:
        config = self.get_field(field_name)
        if config is None:
            return False
        config.enabled = enabled
        config.selector.update(enabled=enabled)
        return True

    def remove_field(self, field_name: Union[FieldName, str]) -> bool:
        resolved = parse_enum(FieldName, field_name)
        if resolved is None or resolved not in self.extractors:
            return False
        del self.extractors[resolved]
        return True

    def extract(
        self, field_name: Union[FieldName, str], content: Any
    ) -> Optional[List[ExtractedValue]]:
        """
        Run the extractor for a field.

        Returns:
            Extracted values, or None if the field is absent or disabled
        """
        config = self.get_field(field_name)
        if config is None or not config.enabled:
            return None
        return config.selector.extract(content)

    def validate_results(
        self,
        results: Sequence[Union[ExtractedValue, str]],
        field_name: Union[FieldName, str],
    ) -> ValidationResult:
        """Check extracted values against the field's validation criteria."""
        config = self.get_field(field_name)
        if config is None:
            return ValidationResult(
                is_valid=False,
                errors=[f"Extractor '{getattr(field_name, 'value', field_name)}' is not configured"],
            )
        return config.validation.check(results)

    @staticmethod
    def validate_with_predefined(
        results: Sequence[Union[ExtractedValue, str]], name: str
    ) -> ValidationResult:
        return validate_with_predefined(results, name)

    def validate(self) -> SelectorSetValidation:
        """Validate the set's own key and every extractor's selector."""
        validation = SelectorSetValidation()
        validation.add_errors(SELECTOR_SET_SCOPE, self._validate_key())

        for field_name, config in self.extractors.items():
            errors = list(config.selector.validate().errors)
            if (
                config.selector.domain != self.domain
                or config.selector.page_kind_value != self.page_kind_value
            ):
                errors.append(
                    f"Selector key {config.selector.get_key()} does not match "
                    f"selector set key {self.get_key()}"
                )
            validation.add_errors(field_name.value, errors)

        return validation

    def _validate_key(self) -> List[str]:
        issues = []
        if not self.domain:
            issues.append("Domain must not be empty")
        if not isinstance(self.page_kind, PageKind):
            issues.append(f"Invalid page kind: {self.page_kind}")
        return issues

    def has_valid_key(self) -> bool:
        return not self._validate_key()

    def matches_page(self, url: str, page_kind: Union[PageKind, str]) -> bool:
        return (
            extract_domain(url) == self.domain
            and self.page_kind_value == getattr(page_kind, "value", page_kind)
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectorSet":
        """Create a SelectorSet from its record, rebuilding every selector."""
        if not isinstance(data, dict):
            raise ValueError(f"Selector set record must be a mapping, got {type(data).__name__}")

        page_kind = data.get("page_kind", data.get("pageKind", data.get("pageType")))
        return cls(
            domain=data.get("domain", ""),
            page_kind=page_kind if page_kind is not None else PageKind.SEARCH_RESULTS,
            extractors=data.get("extractors") or {},
        )

    @classmethod
    def from_json(cls, json_data: str) -> "SelectorSet":
        """Create SelectorSet from JSON string."""
        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in selector set: {e}")
            raise ValueError(f"Invalid JSON format: {e}")
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, yaml_data: str) -> "SelectorSet":
        """Create SelectorSet from YAML string."""
        try:
            data = yaml.safe_load(yaml_data)
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in selector set: {e}")
            raise ValueError(f"Invalid YAML format: {e}")
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, file_path: Union[str, Path]) -> "SelectorSet":
        """Load SelectorSet from file (JSON or YAML)."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Selector set file not found: {file_path}")

        content = path.read_text(encoding="utf-8")

        if path.suffix.lower() == ".json":
            return cls.from_json(content)
        if path.suffix.lower() in [".yaml", ".yml"]:
            return cls.from_yaml(content)

        # Try to detect format from content
        if content.strip().startswith("{"):
            return cls.from_json(content)
        return cls.from_yaml(content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "page_kind": self.page_kind_value,
            "extractors": {
                field_name.value: config.to_dict()
                for field_name, config in self.extractors.items()
            },
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def clone(self) -> "SelectorSet":
        return SelectorSet.from_dict(self.to_dict())

    def __repr__(self) -> str:
        fields = ", ".join(f.value for f in self.extractors)
        return f"SelectorSet(key={self.get_key()!r}, fields=[{fields}])"
