"""
Factory mapping selector modes to selector classes.
"""

from typing import Any, Dict, Optional, Type, Union

from paperscout.extraction.exceptions import SelectorConfigurationError
from paperscout.extraction.selectors.base import BaseSelector
from paperscout.extraction.selectors.pattern import PatternSelector
from paperscout.extraction.selectors.structural import StructuralSelector
from paperscout.extraction.types import SelectorMode
from paperscout.extraction.types import parse_enum


_SELECTOR_CLASSES: Dict[SelectorMode, Type[BaseSelector]] = {
    SelectorMode.STRUCTURAL: StructuralSelector,
    SelectorMode.PATTERN: PatternSelector,
}

# Mode names written by older tooling
_LEGACY_MODES = {
    "css": SelectorMode.STRUCTURAL,
    "regex": SelectorMode.PATTERN,
}

_missing_modes = set(SelectorMode) - set(_SELECTOR_CLASSES)
if _missing_modes:
    raise RuntimeError(f"No selector class registered for modes: {sorted(_missing_modes)}")


def resolve_mode(mode: Union[SelectorMode, str]) -> SelectorMode:
    """Return the SelectorMode for ``mode`` or raise SelectorConfigurationError."""
    if isinstance(mode, str) and mode in _LEGACY_MODES:
        return _LEGACY_MODES[mode]

    resolved = parse_enum(SelectorMode, mode)
    if resolved is None:
        raise SelectorConfigurationError(
            f"Unsupported selector mode '{mode}'. "
            f"Must be one of: {[m.value for m in SelectorMode]}"
        )
    return resolved


def get_selector_class(mode: Union[SelectorMode, str]) -> Type[BaseSelector]:
    return _SELECTOR_CLASSES[resolve_mode(mode)]


def selector_from_dict(mode: Union[SelectorMode, str], data: Dict[str, Any]) -> BaseSelector:
    """Rebuild a live selector instance of the given mode from its record."""
    return get_selector_class(mode).from_dict(data or {})


def build_selector(
    mode: Union[SelectorMode, str],
    raw_config: Optional[Dict[str, Any]] = None,
    **overrides: Any,
) -> BaseSelector:
    """
    Build a selector of the given mode from raw configuration fields.

    Args:
        mode: Selector mode
        raw_config: Raw selector fields (path_query, pattern, validation, ...)
        **overrides: Fields that take precedence over raw_config

    Returns:
        Concrete selector instance

    Raises:
        SelectorConfigurationError: If the mode is unknown
    """
    data = dict(raw_config or {})
    data.update({k: v for k, v in overrides.items() if v is not None})
    return selector_from_dict(mode, data)
