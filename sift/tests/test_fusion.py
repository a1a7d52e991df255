"""Tests for reciprocal rank fusion."""

from datetime import datetime, timezone

import pytest

from sift.retriever.fusion import DEFAULT_K, reciprocal_rank_fusion


def keys(fused):
    return [item.key for item in fused]


class TestReciprocalRankFusion:
    def test_default_k_is_60(self):
        assert DEFAULT_K == 60

    def test_single_ranking_scores(self):
        fused = reciprocal_rank_fusion({"semantic": ["a", "b"]})
        assert fused[0].score == pytest.approx(1 / 61)
        assert fused[1].score == pytest.approx(1 / 62)

    def test_item_in_both_rankings_wins(self):
        fused = reciprocal_rank_fusion({
            "semantic": ["a", "b"],
            "full_text": ["b", "c"],
        })

        assert keys(fused) == ["b", "a", "c"]
        assert fused[0].score == pytest.approx(1 / 62 + 1 / 61)
        assert fused[0].ranks == {"semantic": 2, "full_text": 1}
        assert fused[1].ranks == {"semantic": 1}

    def test_three_items_in_both_rankings(self):
        fused = reciprocal_rank_fusion(
            {"semantic": ["A", "B", "C"], "full_text": ["C", "A", "B"]},
            k=60,
            weights={"semantic": 1.0, "full_text": 1.0},
        )

        assert keys(fused) == ["A", "C", "B"]
        assert fused[0].score == pytest.approx(1 / 61 + 1 / 62)
        assert fused[1].score == pytest.approx(1 / 63 + 1 / 61)
        assert fused[2].score == pytest.approx(1 / 62 + 1 / 63)

    def test_weights_shift_the_order(self):
        fused = reciprocal_rank_fusion(
            {"semantic": ["a"], "full_text": ["b"]},
            weights={"semantic": 1.0, "full_text": 2.0},
        )
        assert keys(fused) == ["b", "a"]

    def test_ties_break_newest_first(self):
        created = {
            "old": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "new": datetime(2025, 1, 1, tzinfo=timezone.utc),
        }
        fused = reciprocal_rank_fusion(
            {"semantic": ["old"], "full_text": ["new"]},
            created_at=created.get,
        )
        assert keys(fused) == ["new", "old"]

    def test_ties_without_dates_break_by_key(self):
        fused = reciprocal_rank_fusion({"semantic": ["b"], "full_text": ["a"]})
        assert keys(fused) == ["a", "b"]

    def test_duplicate_key_counts_once_at_best_rank(self):
        fused = reciprocal_rank_fusion({"semantic": ["a", "b", "a"]})
        assert fused[0].key == "a"
        assert fused[0].score == pytest.approx(1 / 61)
        assert fused[0].ranks == {"semantic": 1}

    def test_empty_rankings(self):
        assert reciprocal_rank_fusion({"semantic": [], "full_text": []}) == []

    @pytest.mark.parametrize("k", [0, -5])
    def test_non_positive_k_rejected(self, k):
        with pytest.raises(ValueError):
            reciprocal_rank_fusion({"semantic": ["a"]}, k=k)

    def test_smaller_k_sharpens_rank_one(self):
        gap_60 = reciprocal_rank_fusion({"s": ["a", "b"]})
        gap_1 = reciprocal_rank_fusion({"s": ["a", "b"]}, k=1)
        assert (gap_1[0].score - gap_1[1].score) > (gap_60[0].score - gap_60[1].score)
