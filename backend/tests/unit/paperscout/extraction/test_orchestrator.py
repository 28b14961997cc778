import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from paperscout.extraction.content import PageSnapshot
from paperscout.extraction.exceptions import SelectorConfigurationError
from paperscout.extraction.metrics_collector import MetricsCollector
from paperscout.extraction.orchestrator import ExtractionOrchestrator
from paperscout.extraction.orchestrator import PaperRecord
from paperscout.extraction.orchestrator import make_record_id
from paperscout.extraction.selectors.config import SelectorSet
from paperscout.extraction.types import FieldName
from paperscout.extraction.types import LearningState
from paperscout.extraction.types import PageKind
from paperscout.extraction.types import PassStatus

DOMAIN = "scholar.google.com"


class FakeLearner:
    """Saves a prepared selector set; a blocking learner waits to be released."""

    def __init__(self, repository, selector_set=None, error=None, blocking=False):
        self.repository = repository
        self.selector_set = selector_set
        self.error = error
        self.release = asyncio.Event()
        if not blocking:
            self.release.set()
        self.calls = []

    async def learn(self, snapshot, domain, page_kind):
        self.calls.append((snapshot.url, domain, page_kind))
        await self.release.wait()
        if self.error is not None:
            raise self.error
        if self.selector_set is None:
            return False
        return await self.repository.save(self.selector_set)


@pytest.fixture
def metrics():
    return MetricsCollector()


class TestLearningStateMachine:
    @pytest.mark.asyncio
    async def test_unlearned_page_requests_learning_without_extracting(
        self, repository, metrics, scholar_snapshot, scholar_selector_set
    ):
        learner = FakeLearner(repository, scholar_selector_set, blocking=True)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        assert orchestrator.get_state(DOMAIN, PageKind.SEARCH_RESULTS) == LearningState.UNLEARNED

        outcome = await orchestrator.process_page(scholar_snapshot, PageKind.SEARCH_RESULTS)

        assert outcome.status == PassStatus.LEARNING_REQUESTED
        assert outcome.records == []
        assert outcome.learning_scheduled
        assert outcome.state == LearningState.LEARNING
        assert orchestrator.is_learning(DOMAIN, PageKind.SEARCH_RESULTS)

        learner.release.set()
        await orchestrator.wait_for_learning()

        assert orchestrator.get_state(DOMAIN, PageKind.SEARCH_RESULTS) == LearningState.LEARNED
        assert not orchestrator.is_learning(DOMAIN, PageKind.SEARCH_RESULTS)
        assert learner.calls == [(scholar_snapshot.url, DOMAIN, PageKind.SEARCH_RESULTS)]

    @pytest.mark.asyncio
    async def test_learned_set_is_used_on_the_next_pass(
        self, repository, metrics, scholar_snapshot, scholar_selector_set
    ):
        learner = FakeLearner(repository, scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        await orchestrator.process_page(scholar_snapshot)
        learner.release.set()
        await orchestrator.wait_for_learning()
        outcome = await orchestrator.process_page(scholar_snapshot)

        assert outcome.status == PassStatus.EXTRACTED
        assert len(outcome.records) == 3
        assert outcome.state == LearningState.LEARNED

    @pytest.mark.asyncio
    async def test_learning_is_requested_once_per_key(self, repository, metrics, scholar_snapshot):
        learner = FakeLearner(repository, blocking=True)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        outcomes = [await orchestrator.process_page(scholar_snapshot) for _ in range(3)]
        learner.release.set()
        await orchestrator.wait_for_learning()

        assert [o.learning_scheduled for o in outcomes] == [True, False, False]
        assert len(learner.calls) == 1
        snapshot = await metrics.get_metrics_snapshot()
        assert snapshot.learning_requested == 1
        assert snapshot.learning_deduplicated == 2

    @pytest.mark.asyncio
    async def test_concurrent_passes_share_one_learning_task(self, repository, metrics, scholar_snapshot):
        learner = FakeLearner(repository, blocking=True)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        await asyncio.gather(*[orchestrator.process_page(scholar_snapshot) for _ in range(5)])
        learner.release.set()
        await orchestrator.wait_for_learning()

        assert len(learner.calls) == 1

    @pytest.mark.asyncio
    async def test_ensure_learning_is_idempotent(self, repository, metrics, scholar_snapshot):
        learner = FakeLearner(repository, blocking=True)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        assert await orchestrator.ensure_learning(scholar_snapshot, DOMAIN, PageKind.SEARCH_RESULTS)
        assert not await orchestrator.ensure_learning(scholar_snapshot, DOMAIN, "search_results")
        assert await orchestrator.ensure_learning(scholar_snapshot, DOMAIN, PageKind.PAPER_DETAIL)

        learner.release.set()
        await orchestrator.wait_for_learning()
        assert len(learner.calls) == 2

    @pytest.mark.asyncio
    async def test_failed_learning_returns_to_previous_state(self, repository, metrics, scholar_snapshot):
        learner = FakeLearner(repository)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        await orchestrator.process_page(scholar_snapshot)
        await orchestrator.wait_for_learning()

        assert orchestrator.get_state(DOMAIN, PageKind.SEARCH_RESULTS) == LearningState.UNLEARNED
        assert (await metrics.get_metrics_snapshot()).learning_failed == 1

    @pytest.mark.asyncio
    async def test_learner_exception_does_not_escape(self, repository, metrics, scholar_snapshot):
        learner = FakeLearner(repository, error=RuntimeError("model unavailable"))
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        await orchestrator.process_page(scholar_snapshot)
        await orchestrator.wait_for_learning()

        assert orchestrator.get_state(DOMAIN, PageKind.SEARCH_RESULTS) == LearningState.UNLEARNED
        # The key can be learned again
        assert await orchestrator.ensure_learning(scholar_snapshot, DOMAIN, PageKind.SEARCH_RESULTS)
        await orchestrator.wait_for_learning()


class TestStaleness:
    @pytest.mark.asyncio
    async def test_too_few_items_is_stale_and_discarded(
        self, repository, metrics, scholar_html_factory, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        learner = FakeLearner(repository, blocking=True)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=rare", html=scholar_html_factory(1))

        outcome = await orchestrator.process_page(snapshot)

        assert outcome.status == PassStatus.STALE
        assert outcome.records == []
        assert any("minimum" in error for error in outcome.errors)
        assert outcome.learning_scheduled
        assert outcome.state == LearningState.LEARNING

        learner.release.set()
        await orchestrator.wait_for_learning()
        assert orchestrator.get_state(DOMAIN, PageKind.SEARCH_RESULTS) == LearningState.STALE

    @pytest.mark.asyncio
    async def test_two_items_are_stale_under_paper_list_criteria(
        self, repository, metrics, scholar_html_factory, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=x", html=scholar_html_factory(2))

        outcome = await orchestrator.process_page(snapshot)

        assert outcome.status == PassStatus.STALE

    @pytest.mark.asyncio
    async def test_field_criteria_decide_staleness(
        self, repository, metrics, scholar_html_factory, scholar_selector_set
    ):
        scholar_selector_set.get_field("paper_item").selector.update(validation={"min_count": 1})
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=x", html=scholar_html_factory(2))

        outcome = await orchestrator.process_page(snapshot)

        assert outcome.status == PassStatus.EXTRACTED
        assert len(outcome.records) == 2

    @pytest.mark.asyncio
    async def test_zero_items_are_stale_under_default_criteria(self, repository, metrics):
        selector_set = SelectorSet.from_dict({
            "domain": DOMAIN,
            "page_kind": "search_results",
            "extractors": {"paper_item": {"mode": "structural", "strategy": {"path_query": ".gs_r"}}},
        })
        await repository.save(selector_set)
        learner = FakeLearner(repository, blocking=True)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=none", html="<html><body></body></html>")

        outcome = await orchestrator.process_page(snapshot)

        assert outcome.status == PassStatus.STALE
        assert outcome.records == []
        assert outcome.learning_scheduled
        assert outcome.errors == ["Found 0 paper items, need more than 1"]

        learner.release.set()
        await orchestrator.wait_for_learning()

    @pytest.mark.asyncio
    async def test_single_item_is_stale_even_when_criteria_allow_it(
        self, repository, metrics, scholar_html_factory, scholar_selector_set
    ):
        scholar_selector_set.get_field("paper_item").selector.update(validation={"min_count": 0})
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=x", html=scholar_html_factory(1))

        outcome = await orchestrator.process_page(snapshot)

        assert outcome.status == PassStatus.STALE
        assert outcome.records == []
        await orchestrator.wait_for_learning()

    @pytest.mark.asyncio
    async def test_disabled_paper_item_is_stale(self, repository, metrics, scholar_snapshot, scholar_selector_set):
        scholar_selector_set.set_field_enabled(FieldName.PAPER_ITEM, False)
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        outcome = await orchestrator.process_page(scholar_snapshot)

        assert outcome.status == PassStatus.STALE
        assert outcome.errors == ["Extractor 'paper_item' is disabled"]

    @pytest.mark.asyncio
    async def test_missing_paper_item_is_stale(self, repository, metrics, scholar_snapshot, scholar_selector_set):
        scholar_selector_set.remove_field(FieldName.PAPER_ITEM)
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        outcome = await orchestrator.process_page(scholar_snapshot)

        assert outcome.status == PassStatus.STALE
        assert outcome.errors == ["Extractor 'paper_item' is not configured"]

    @pytest.mark.asyncio
    async def test_relearning_a_stale_key(
        self, repository, metrics, scholar_html_factory, scholar_selector_set
    ):
        stale_set = scholar_selector_set.clone()
        stale_set.set_field("paper_item", "structural", {"path_query": ".old-layout"})
        await repository.save(stale_set)
        learner = FakeLearner(repository, scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=x", html=scholar_html_factory(3))

        first = await orchestrator.process_page(snapshot)
        await orchestrator.wait_for_learning()
        second = await orchestrator.process_page(snapshot)

        assert first.status == PassStatus.STALE
        assert second.status == PassStatus.EXTRACTED
        assert orchestrator.get_state(DOMAIN, PageKind.SEARCH_RESULTS) == LearningState.LEARNED


class TestRecords:
    @pytest.mark.asyncio
    async def test_records_carry_validated_fields(
        self, repository, metrics, scholar_snapshot, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        outcome = await orchestrator.process_page(scholar_snapshot)

        first = outcome.records[0]
        assert first.fields["title"] == "Attention Is All You Need"
        assert first.fields["abstract"].startswith("The dominant sequence transduction models")
        assert first.fields["pdf"] == ["https://arxiv.org/pdf/1706.03762.pdf"]
        assert first.fields["all_versions_link"] == "https://scholar.google.com/scholar?cluster=111&hl=en"
        assert first.source_url == scholar_snapshot.url
        assert first.node is not None

    @pytest.mark.asyncio
    async def test_missing_sub_field_is_omitted(
        self, repository, metrics, scholar_snapshot, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        outcome = await orchestrator.process_page(scholar_snapshot)

        assert "pdf" not in outcome.records[2].fields
        assert outcome.records[2].title == "Language Models are Few-Shot Learners"

    @pytest.mark.asyncio
    async def test_sub_field_failing_criteria_is_omitted(
        self, repository, metrics, scholar_snapshot, scholar_selector_set
    ):
        scholar_selector_set.set_field("title", "structural", {"path_query": "a"})
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        outcome = await orchestrator.process_page(scholar_snapshot)

        assert outcome.status == PassStatus.EXTRACTED
        assert all("title" not in record.fields for record in outcome.records)

    @pytest.mark.asyncio
    async def test_record_ids(self, repository, metrics, scholar_snapshot, scholar_selector_set):
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        first = await orchestrator.process_page(scholar_snapshot)
        second = await orchestrator.process_page(scholar_snapshot)

        ids = [record.record_id for record in first.records]
        assert len(set(ids)) == 3
        assert all(len(record_id) == 16 for record_id in ids)
        assert ids == [record.record_id for record in second.records]
        assert ids[0] == make_record_id(DOMAIN, "Attention Is All You Need", 0)

    @pytest.mark.asyncio
    async def test_pattern_paper_items(self, repository, metrics):
        selector_set = SelectorSet("papers.example.org", PageKind.SEARCH_RESULTS)
        selector_set.set_field(
            "paper_item", "pattern",
            {"pattern": r"<li>(.*?)</li>", "capture_group_index": 1, "match_flags": "gs"},
        )
        selector_set.set_field(
            "title", "pattern",
            {"pattern": r"^(.+)$", "capture_group_index": 1, "match_flags": ""},
        )
        await repository.save(selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)
        snapshot = PageSnapshot(
            url="https://papers.example.org/search?q=graphs",
            html="<ul><li>Paper one about graphs</li><li>Paper two about trees</li>"
                 "<li>Paper three about forests</li></ul>",
        )

        outcome = await orchestrator.process_page(snapshot)

        assert outcome.status == PassStatus.EXTRACTED
        assert [record.title for record in outcome.records] == [
            "Paper one about graphs", "Paper two about trees", "Paper three about forests",
        ]
        assert all(record.node is None for record in outcome.records)

    @pytest.mark.asyncio
    async def test_async_record_consumer(self, repository, metrics, scholar_snapshot, scholar_selector_set):
        await repository.save(scholar_selector_set)
        consumer = AsyncMock()
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics, consumer)

        outcome = await orchestrator.process_page(scholar_snapshot)

        consumer.assert_awaited_once_with(outcome.records)

    @pytest.mark.asyncio
    async def test_failing_record_consumer_does_not_fail_the_pass(
        self, repository, metrics, scholar_snapshot, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        consumer = Mock(side_effect=RuntimeError("ui gone"))
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics, consumer)

        outcome = await orchestrator.process_page(scholar_snapshot)

        assert outcome.status == PassStatus.EXTRACTED
        consumer.assert_called_once()

    @pytest.mark.asyncio
    async def test_consumer_not_called_for_stale_pass(
        self, repository, metrics, scholar_html_factory, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        consumer = Mock()
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics, consumer)
        snapshot = PageSnapshot(url="https://scholar.google.com/scholar?q=x", html=scholar_html_factory(1))

        await orchestrator.process_page(snapshot)

        consumer.assert_not_called()

    def test_record_to_dict_excludes_node(self):
        record = PaperRecord(record_id="abc", fields={"title": "T"}, source_url="https://x.org", node=object())

        assert record.to_dict() == {
            "record_id": "abc", "source_url": "https://x.org", "position": 0, "fields": {"title": "T"},
        }


class TestPassHandling:
    @pytest.mark.asyncio
    async def test_page_without_domain_is_skipped(self, repository, metrics):
        learner = FakeLearner(repository)
        orchestrator = ExtractionOrchestrator(repository, learner, metrics)

        outcome = await orchestrator.process_page(PageSnapshot(url="not a url", html="<html></html>"))

        assert outcome.status == PassStatus.SKIPPED
        assert learner.calls == []

    @pytest.mark.asyncio
    async def test_unknown_page_kind_raises(self, repository, metrics, scholar_snapshot):
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        with pytest.raises(SelectorConfigurationError):
            await orchestrator.process_page(scholar_snapshot, "listing")

    @pytest.mark.asyncio
    async def test_metrics_are_recorded(
        self, repository, metrics, scholar_snapshot, scholar_html_factory, scholar_selector_set
    ):
        await repository.save(scholar_selector_set)
        orchestrator = ExtractionOrchestrator(repository, FakeLearner(repository), metrics)

        await orchestrator.process_page(scholar_snapshot)
        await orchestrator.process_page(
            PageSnapshot(url="https://scholar.google.com/scholar?q=x", html=scholar_html_factory(1))
        )

        snapshot = await metrics.get_metrics_snapshot()
        assert snapshot.passes == 2
        assert snapshot.passes_extracted == 1
        assert snapshot.passes_stale == 1
        assert snapshot.records_extracted == 3
        assert snapshot.stale_by_key == {"scholar.google.com_search_results": 1}
        assert snapshot.success_rate == 0.5
