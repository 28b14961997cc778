"""
Learning collaborators: whatever turns a page snapshot into a persisted
selector set for its (domain, page kind).
"""

from typing import Awaitable, Callable, Optional, Protocol, Union

from paperscout.extraction.content import PageSnapshot
from paperscout.extraction.repository import SelectorRepository
from paperscout.extraction.selectors.base import utc_now_iso
from paperscout.extraction.selectors.config import SelectorSet
from paperscout.extraction.selectors.structural import StructuralSelector
from paperscout.extraction.selectors.validation import validate_with_predefined
from paperscout.extraction.types import FieldName
from paperscout.extraction.types import PageKind
from paperscout.extraction.types import SelectorMode
from paperscout.utils.logger import setup_logger

logger = setup_logger()

# Given a snapshot, its domain and page kind, propose a path query for paper items
ProposeFn = Callable[[PageSnapshot, str, PageKind], Awaitable[Optional[str]]]


class SelectorLearner(Protocol):
    """Learns and persists a selector set for a page."""

    async def learn(
        self, snapshot: PageSnapshot, domain: str, page_kind: Union[PageKind, str]
    ) -> bool:
        """Return True when a selector set was persisted."""
        ...


class ProposalLearner:
    """
    Learner around an opaque async proposal function.

    The proposal is a structural path query for the paper item field. It is
    only accepted if the items it matches on the snapshot pass the
    predefined paper list criteria.
    """

    def __init__(
        self,
        propose: ProposeFn,
        repository: SelectorRepository,
        generated_by: str = "proposal_learner",
        generation_source: str = "page_snapshot",
    ):
        self.propose = propose
        self.repository = repository
        self.generated_by = generated_by
        self.generation_source = generation_source

    async def learn(
        self, snapshot: PageSnapshot, domain: str, page_kind: Union[PageKind, str]
    ) -> bool:
        key = SelectorSet.make_key(domain, page_kind)

        try:
            path_query = await self.propose(snapshot, domain, page_kind)
        except Exception as e:
            logger.error(f"Selector proposal for {key} failed: {e}")
            return False

        if not path_query:
            logger.warning(f"No selector proposed for {key}")
            return False

        candidate = StructuralSelector(path_query=path_query, domain=domain, page_kind=page_kind)
        candidate_validation = candidate.validate()
        if not candidate_validation.is_valid:
            logger.warning(
                f"Proposed selector {path_query!r} for {key} is invalid: "
                f"{candidate_validation.errors}"
            )
            return False

        items = candidate.extract(snapshot.soup)
        check = validate_with_predefined(items, "paper_list")
        if not check.is_valid:
            logger.info(f"Rejected proposed selector {path_query!r} for {key}: {check.errors}")
            return False

        existing = await self.repository.get(domain, page_kind)
        selector_set = existing.clone() if existing else SelectorSet(domain, page_kind)
        selector_set.set_field(
            FieldName.PAPER_ITEM,
            SelectorMode.STRUCTURAL,
            {
                "path_query": path_query,
                "metadata": {
                    "generated_by": self.generated_by,
                    "element_count": len(items),
                    "generation_source": self.generation_source,
                    "learned_at": utc_now_iso(),
                },
            },
        )
        # A previously disabled paper item field would keep the key stale
        selector_set.set_field_enabled(FieldName.PAPER_ITEM, True)

        set_validation = selector_set.validate()
        if not set_validation.is_valid:
            logger.error(f"Learned selector set {key} failed validation: {set_validation.errors}")
            return False

        saved = await self.repository.save(selector_set)
        if saved:
            logger.info(f"Learned paper item selector {path_query!r} for {key} ({len(items)} items)")
        return saved
