"""Tests for completeness and production-readiness scoring."""

import pytest
from hypothesis import given, settings, strategies as st

from mcp_cortex.models import Readiness, branch_note_header
from mcp_cortex.scoring import completeness_score, count_terms, production_readiness, score


note_text = st.text(
    alphabet=st.sampled_from(list("abc XYZ-0123456789:#\n*")),
    max_size=400,
)

appended_line = st.text(alphabet=st.sampled_from(list("abcdefgh 0123-:")), max_size=40)


class TestCompletenessScore:
    """Tests for completeness_score."""

    def test_empty_document_scores_zero(self):
        assert completeness_score("") == 0

    def test_header_only_document_scores_zero(self):
        assert completeness_score(branch_note_header("p", "main")) == 0

    def test_components(self):
        text = (
            "# Branch Note: main (p)\n\n"
            "## 2024-01-01 10:00:00\n"
            + "word " * 100 + "\n"
            "## COMMIT: abcd1234 | 2024-01-01 11:00:00\n"
        )
        # 2 entries (10) + 100 words (10) + commit (20) + date (15); 4 non-blank lines
        assert completeness_score(text) == 55

    def test_long_documents_cap_at_100(self):
        text = "## COMMIT: x | 2024-01-01\n" + "\n".join(f"## Entry {i}\n" + "word " * 50 for i in range(40))
        assert completeness_score(text) == 100

    @given(note_text)
    def test_score_is_bounded(self, text):
        assert 0 <= completeness_score(text) <= 100

    @settings(max_examples=50)
    @given(note_text, appended_line)
    def test_appending_a_line_never_lowers_the_score(self, text, line):
        assert completeness_score(text + "\n" + line) >= completeness_score(text)


class TestProductionReadiness:
    """Tests for production_readiness."""

    def test_counts_distinct_terms(self):
        assert count_terms("Deployed, deployed and DEPLOYED", ["deployed", "merged"]) == 1

    def test_production(self):
        assert production_readiness("Merged and deployed to production") is Readiness.PRODUCTION

    def test_development(self):
        assert production_readiness("Still a draft, work in progress") is Readiness.DEVELOPMENT

    def test_no_terms_is_mixed(self):
        assert production_readiness("") is Readiness.MIXED

    @pytest.mark.parametrize("text", [
        "deployed merged released; draft todo",
        "draft todo prototype; deployed merged",
    ])
    def test_exact_ratio_is_mixed(self, text):
        # 3 vs 2 is exactly 1.5x, which does not exceed the threshold
        assert production_readiness(text) is Readiness.MIXED

    def test_custom_vocabulary(self):
        assert production_readiness("shipped it", ["shipped"], ["wip"]) is Readiness.PRODUCTION

    def test_score_combines_both(self):
        result = score("## 2024-01-01 10:00:00\nDeployed\n")
        assert result.completeness_score == 5 + 15
        assert result.production_readiness is Readiness.PRODUCTION
