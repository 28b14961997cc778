"""
Selector strategies and the per-site selector set built from them.
"""

from .base import BaseSelector, extract_domain
from .config import ExtractorConfig, SelectorSet
from .factory import build_selector, selector_from_dict
from .pattern import PatternSelector
from .structural import StructuralSelector
from .validation import (
    PREDEFINED_VALIDATIONS,
    ValidationCriteria,
    get_predefined_validation,
    validate_with_predefined,
)

__all__ = [
    'BaseSelector',
    'ExtractorConfig',
    'PatternSelector',
    'PREDEFINED_VALIDATIONS',
    'SelectorSet',
    'StructuralSelector',
    'ValidationCriteria',
    'build_selector',
    'extract_domain',
    'get_predefined_validation',
    'selector_from_dict',
    'validate_with_predefined',
]
