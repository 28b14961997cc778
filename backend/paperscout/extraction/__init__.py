"""
Adaptive selector extraction for academic search pages.

Selector sets are learned per (domain, page kind), cached, validated on
every pass and re-learned when they stop matching.
"""

from .content import HttpContentProvider, PageSnapshot
from .exceptions import (
    ConfigurationValidationError,
    PersistenceError,
    SelectorConfigurationError,
)
from .learning import ProposalLearner, SelectorLearner
from .orchestrator import ExtractionOrchestrator, ExtractionOutcome, PaperRecord
from .repository import SelectorRepository
from .seed_loader import SeedLoader
from .selectors import (
    ExtractorConfig,
    PatternSelector,
    SelectorSet,
    StructuralSelector,
    ValidationCriteria,
)
from .store import InMemoryKeyValueStore, JsonFileKeyValueStore
from .types import (
    FieldName,
    LearningState,
    NodeHandle,
    PageKind,
    PassStatus,
    SelectorMode,
    TextValue,
)

__all__ = [
    'ConfigurationValidationError',
    'ExtractionOrchestrator',
    'ExtractionOutcome',
    'ExtractorConfig',
    'FieldName',
    'HttpContentProvider',
    'InMemoryKeyValueStore',
    'JsonFileKeyValueStore',
    'LearningState',
    'NodeHandle',
    'PageKind',
    'PageSnapshot',
    'PaperRecord',
    'PassStatus',
    'PatternSelector',
    'PersistenceError',
    'ProposalLearner',
    'SelectorConfigurationError',
    'SelectorLearner',
    'SelectorMode',
    'SelectorRepository',
    'SeedLoader',
    'StructuralSelector',
    'TextValue',
    'ValidationCriteria',
]
