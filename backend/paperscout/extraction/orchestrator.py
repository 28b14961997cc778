"""
Extraction orchestrator: runs cached selector sets against pages and
triggers learning when a key has no set or its set has gone stale.

Per (domain, page kind) the orchestrator tracks a small state machine:

    unlearned -> learning -> learned -> stale -> learning -> ...

A pass never blocks on learning. It either extracts with the cached set or
gives up on the page and leaves a single background learning task running
for the key.
"""

import asyncio
import hashlib
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import urljoin

from bs4 import Tag

from paperscout.extraction.content import PageSnapshot
from paperscout.extraction.exceptions import SelectorConfigurationError
from paperscout.extraction.instrumentation import get_tracer
from paperscout.extraction.learning import SelectorLearner
from paperscout.extraction.metrics_collector import MetricsCollector
from paperscout.extraction.repository import SelectorRepository
from paperscout.extraction.selectors.config import SelectorSet
from paperscout.extraction.types import ExtractedValue
from paperscout.extraction.types import FieldName
from paperscout.extraction.types import LearningState
from paperscout.extraction.types import NodeHandle
from paperscout.extraction.types import PageKind
from paperscout.extraction.types import PassStatus
from paperscout.extraction.types import TextValue
from paperscout.extraction.types import ValidationResult
from paperscout.extraction.types import parse_enum
from paperscout.extraction.types import value_as_text
from paperscout.utils.logger import setup_logger

logger = setup_logger()

RECORD_FIELDS = (
    FieldName.TITLE,
    FieldName.ABSTRACT,
    FieldName.PDF,
    FieldName.ALL_VERSIONS_LINK,
)
LINK_FIELDS = {FieldName.PDF, FieldName.ALL_VERSIONS_LINK}
# Fields that keep every accepted value rather than the first one
MULTI_VALUE_FIELDS = {FieldName.PDF}
# A pass yielding this many paper items or fewer is stale whatever the criteria say
STALE_ITEM_FLOOR = 1

RecordConsumer = Callable[[List["PaperRecord"]], Union[None, Awaitable[None]]]


@dataclass
class PaperRecord:
    """One publication pulled out of a page."""
    record_id: str
    fields: Dict[str, Any]
    source_url: str
    position: int = 0
    node: Optional[Tag] = field(default=None, repr=False, compare=False)

    @property
    def title(self) -> Optional[str]:
        return self.fields.get(FieldName.TITLE.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "source_url": self.source_url,
            "position": self.position,
            "fields": dict(self.fields),
        }


@dataclass
class ExtractionOutcome:
    """Result of one pass over a page."""
    status: PassStatus
    key: str
    state: LearningState
    records: List[PaperRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    learning_scheduled: bool = False

    @property
    def extracted(self) -> bool:
        return self.status == PassStatus.EXTRACTED


def make_record_id(domain: str, title: str, position: int) -> str:
    digest = hashlib.sha256(f"{domain}|{title}|{position}".encode("utf-8"))
    return digest.hexdigest()[:16]


class ExtractionOrchestrator:
    """Consumes cached selector sets and schedules learning for missing or stale ones."""

    def __init__(
        self,
        repository: SelectorRepository,
        learner: SelectorLearner,
        metrics: Optional[MetricsCollector] = None,
        record_consumer: Optional[RecordConsumer] = None,
    ):
        self.repository = repository
        self.learner = learner
        self.metrics = metrics or MetricsCollector()
        self.record_consumer = record_consumer

        self._states: Dict[str, LearningState] = {}
        self._learning_tasks: Dict[str, asyncio.Task] = {}
        self._tracer = get_tracer()

    def get_state(self, domain: str, page_kind: Union[PageKind, str]) -> LearningState:
        key = SelectorSet.make_key(domain, page_kind)
        return self._states.get(key, LearningState.UNLEARNED)

    def is_learning(self, domain: str, page_kind: Union[PageKind, str]) -> bool:
        return SelectorSet.make_key(domain, page_kind) in self._learning_tasks

    async def process_page(
        self,
        snapshot: PageSnapshot,
        page_kind: Union[PageKind, str] = PageKind.SEARCH_RESULTS,
    ) -> ExtractionOutcome:
        """
        Run one extraction pass over a page.

        Args:
            snapshot: Page content
            page_kind: Kind of page the snapshot shows

        Returns:
            ExtractionOutcome; records are only present when the status is extracted

        Raises:
            SelectorConfigurationError: If page_kind is not a known page kind
        """
        resolved_kind = parse_enum(PageKind, page_kind)
        if resolved_kind is None:
            raise SelectorConfigurationError(
                f"Unsupported page kind '{page_kind}'. "
                f"Must be one of: {[k.value for k in PageKind]}"
            )

        domain = snapshot.domain
        key = SelectorSet.make_key(domain, resolved_kind)

        with self._tracer.start_as_current_span("extraction.process_page") as span:
            span.set_attribute("extraction.url", snapshot.url)
            span.set_attribute("extraction.key", key)

            if not domain:
                logger.warning(f"Skipping page without a usable domain: {snapshot.url!r}")
                outcome = ExtractionOutcome(
                    status=PassStatus.SKIPPED,
                    key=key,
                    state=LearningState.UNLEARNED,
                    errors=[f"Could not derive a domain from URL: {snapshot.url!r}"],
                )
            else:
                selector_set = await self.repository.get(domain, resolved_kind)
                if selector_set is None:
                    outcome = await self._handle_unlearned(snapshot, domain, resolved_kind, key)
                else:
                    outcome = await self._extract_with(selector_set, snapshot, domain, resolved_kind, key)

            span.set_attribute("extraction.status", outcome.status.value)
            span.set_attribute("extraction.records", len(outcome.records))

        await self.metrics.record_pass(outcome.status, len(outcome.records), key)

        if outcome.records:
            await self._deliver(outcome.records, key)

        return outcome

    async def _handle_unlearned(
        self, snapshot: PageSnapshot, domain: str, page_kind: PageKind, key: str
    ) -> ExtractionOutcome:
        logger.info(f"No selector set for {key}, requesting learning")
        scheduled = await self.ensure_learning(snapshot, domain, page_kind)
        return ExtractionOutcome(
            status=PassStatus.LEARNING_REQUESTED,
            key=key,
            state=self._states.get(key, LearningState.UNLEARNED),
            learning_scheduled=scheduled,
        )

    async def _extract_with(
        self,
        selector_set: SelectorSet,
        snapshot: PageSnapshot,
        domain: str,
        page_kind: PageKind,
        key: str,
    ) -> ExtractionOutcome:
        items, check = self._extract_items(selector_set, snapshot)

        if not check.is_valid:
            logger.info(f"Selector set {key} looks stale: {check.errors}")
            if key not in self._learning_tasks:
                self._states[key] = LearningState.STALE
            # Results of a stale pass are discarded
            scheduled = await self.ensure_learning(snapshot, domain, page_kind)
            return ExtractionOutcome(
                status=PassStatus.STALE,
                key=key,
                state=self._states[key],
                errors=list(check.errors),
                learning_scheduled=scheduled,
            )

        if key not in self._learning_tasks:
            self._states[key] = LearningState.LEARNED

        records = self._build_records(selector_set, items, snapshot, domain)
        logger.debug(f"Extracted {len(records)} records from {snapshot.url} with {key}")
        return ExtractionOutcome(
            status=PassStatus.EXTRACTED,
            key=key,
            state=self._states[key],
            records=records,
        )

    def _extract_items(self, selector_set: SelectorSet, snapshot: PageSnapshot):
        config = selector_set.get_field(FieldName.PAPER_ITEM)
        if config is None or not config.enabled:
            state = "disabled" if config is not None else "not configured"
            return [], ValidationResult(
                is_valid=False,
                errors=[f"Extractor '{FieldName.PAPER_ITEM.value}' is {state}"],
            )

        items = selector_set.extract(FieldName.PAPER_ITEM, snapshot.content_for(config.mode)) or []
        check = selector_set.validate_results(items, FieldName.PAPER_ITEM)
        if len(items) <= STALE_ITEM_FLOOR:
            check = ValidationResult(
                is_valid=False,
                errors=list(check.errors) + [
                    f"Found {len(items)} paper items, need more than {STALE_ITEM_FLOOR}"
                ],
            )
        return items, check

    def _build_records(
        self,
        selector_set: SelectorSet,
        items: List[ExtractedValue],
        snapshot: PageSnapshot,
        domain: str,
    ) -> List[PaperRecord]:
        records = []
        for position, item in enumerate(items):
            content = item.node if isinstance(item, NodeHandle) else item.as_text()
            fields = self._extract_fields(selector_set, content, snapshot.url)
            records.append(
                PaperRecord(
                    record_id=make_record_id(domain, fields.get(FieldName.TITLE.value, ""), position),
                    fields=fields,
                    source_url=snapshot.url,
                    position=position,
                    node=item.node if isinstance(item, NodeHandle) else None,
                )
            )
        return records

    def _extract_fields(self, selector_set: SelectorSet, content: Any, base_url: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for field_name in RECORD_FIELDS:
            values = selector_set.extract(field_name, content)
            if not values:
                continue

            if field_name in LINK_FIELDS:
                values = resolve_links(values, base_url)
                if not values:
                    continue

            check = selector_set.validate_results(values, field_name)
            if not check.is_valid:
                logger.debug(f"Dropping {field_name.value} from record: {check.errors}")
                continue

            texts = [value_as_text(v) for v in values]
            fields[field_name.value] = texts if field_name in MULTI_VALUE_FIELDS else texts[0]
        return fields

    async def _deliver(self, records: List[PaperRecord], key: str) -> None:
        if self.record_consumer is None:
            return
        try:
            result = self.record_consumer(records)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Record consumer failed for {key}: {e}")

    async def ensure_learning(
        self, snapshot: PageSnapshot, domain: str, page_kind: Union[PageKind, str]
    ) -> bool:
        """
        Make sure a learning task exists for the key.

        Returns:
            True if a new task was scheduled, False if one was already in flight
        """
        key = SelectorSet.make_key(domain, page_kind)

        if key in self._learning_tasks:
            logger.debug(f"Learning already in flight for {key}")
            await self.metrics.increment("learning_deduplicated")
            return False

        previous_state = self._states.get(key, LearningState.UNLEARNED)
        self._states[key] = LearningState.LEARNING
        self._learning_tasks[key] = asyncio.create_task(
            self._run_learning(snapshot, domain, page_kind, key, previous_state),
            name=f"learn:{key}",
        )
        await self.metrics.increment("learning_requested")
        logger.info(f"Scheduled learning for {key}")
        return True

    async def _run_learning(
        self,
        snapshot: PageSnapshot,
        domain: str,
        page_kind: Union[PageKind, str],
        key: str,
        previous_state: LearningState,
    ) -> None:
        try:
            with self._tracer.start_as_current_span("extraction.learn") as span:
                span.set_attribute("extraction.key", key)
                learned = await self.learner.learn(snapshot, domain, page_kind)
                span.set_attribute("extraction.learned", bool(learned))
        except Exception as e:
            logger.error(f"Learning for {key} failed: {e}")
            learned = False
        finally:
            self._learning_tasks.pop(key, None)

        if learned:
            self._states[key] = LearningState.LEARNED
            await self.metrics.increment("learning_succeeded")
            logger.info(f"Learning for {key} succeeded")
        else:
            self._states[key] = previous_state
            await self.metrics.increment("learning_failed")
            logger.warning(f"Learning for {key} produced no selector set")

    async def wait_for_learning(self) -> None:
        """Wait until every in-flight learning task has finished."""
        while self._learning_tasks:
            await asyncio.gather(*list(self._learning_tasks.values()), return_exceptions=True)


def resolve_links(values: List[ExtractedValue], base_url: str) -> List[TextValue]:
    """Absolute URLs for link values: node hrefs or captured text."""
    links = []
    for value in values:
        if isinstance(value, NodeHandle):
            href = value.attribute("href")
        else:
            href = value_as_text(value)
        if href:
            links.append(TextValue(urljoin(base_url, href.strip())))
    return links
