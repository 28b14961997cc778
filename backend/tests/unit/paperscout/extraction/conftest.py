import pytest

from paperscout.extraction.content import PageSnapshot
from paperscout.extraction.repository import SelectorRepository
from paperscout.extraction.selectors.config import SelectorSet
from paperscout.extraction.store import InMemoryKeyValueStore
from paperscout.extraction.types import FieldName
from paperscout.extraction.types import PageKind
from paperscout.extraction.types import SelectorMode

SCHOLAR_DOMAIN = "scholar.google.com"
SCHOLAR_URL = "https://scholar.google.com/scholar?q=transformers"

PAPERS = [
    (
        "Attention Is All You Need",
        "The dominant sequence transduction models are based on complex recurrent "
        "or convolutional neural networks in an encoder-decoder configuration.",
        "https://arxiv.org/pdf/1706.03762.pdf",
        "111",
    ),
    (
        "Deep Residual Learning for Image Recognition",
        "Deeper neural networks are more difficult to train. We present a residual "
        "learning framework to ease the training of networks.",
        "https://arxiv.org/pdf/1512.03385.pdf",
        "222",
    ),
    (
        "Language Models are Few-Shot Learners",
        "Recent work has demonstrated substantial gains on many NLP tasks and "
        "benchmarks by pre-training on a large corpus of text.",
        None,
        "333",
    ),
    (
        "BERT: Pre-training of Deep Bidirectional Transformers",
        "We introduce a new language representation model called BERT, which stands "
        "for Bidirectional Encoder Representations from Transformers.",
        "https://aclanthology.org/N19-1423.pdf",
        "444",
    ),
]


def scholar_result_html(title, abstract, pdf_url, cluster_id):
    pdf_block = ""
    if pdf_url:
        pdf_block = (
            '<div class="gs_ggs gs_fl"><div class="gs_or_ggsm">'
            f'<a href="{pdf_url}">[PDF] {pdf_url.split("/")[2]}</a>'
            "</div></div>"
        )
    return (
        f'<div class="gs_r gs_or gs_scl" data-cid="{cluster_id}">'
        f"{pdf_block}"
        '<div class="gs_ri">'
        f'<h3 class="gs_rt"><a href="https://example.org/{cluster_id}">{title}</a></h3>'
        f'<div class="gs_rs">{abstract}</div>'
        '<div class="gs_fl">'
        f'<a href="/scholar?cites={cluster_id}">Cited by 100</a>'
        f'<a href="/scholar?cluster={cluster_id}&amp;hl=en">All 5 versions</a>'
        "</div>"
        "</div>"
        "</div>"
    )


def scholar_page_html(count=3):
    results = "".join(scholar_result_html(*paper) for paper in PAPERS[:count])
    return f'<html><body><div id="gs_res_ccl_mid">{results}</div></body></html>'


@pytest.fixture
def scholar_html_factory():
    return scholar_page_html


@pytest.fixture
def scholar_snapshot():
    return PageSnapshot(url=SCHOLAR_URL, html=scholar_page_html(3))


@pytest.fixture
def scholar_selector_set():
    selector_set = SelectorSet(SCHOLAR_DOMAIN, PageKind.SEARCH_RESULTS)
    selector_set.set_field(FieldName.PAPER_ITEM, SelectorMode.STRUCTURAL, {"path_query": ".gs_r.gs_or.gs_scl"})
    selector_set.set_field(FieldName.TITLE, SelectorMode.STRUCTURAL, {"path_query": ".gs_rt a"})
    selector_set.set_field(FieldName.ABSTRACT, SelectorMode.STRUCTURAL, {"path_query": ".gs_rs"})
    selector_set.set_field(FieldName.PDF, SelectorMode.STRUCTURAL, {"path_query": ".gs_or_ggsm a"})
    selector_set.set_field(
        FieldName.ALL_VERSIONS_LINK,
        SelectorMode.STRUCTURAL,
        {
            "path_query": '.gs_fl a[href*="cluster="]',
            "validation": {"content_regex": r"cluster=\d+", "min_count": 0, "max_count": 1},
        },
    )
    return selector_set


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def repository(store):
    return SelectorRepository(store)
