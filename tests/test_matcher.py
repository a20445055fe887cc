"""Tests for fuzzy search-result matching."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from card_scraper.matcher import calculate_match_score, find_best_match, normalize_text, rank_results
from card_scraper.records import SearchResult


def result(name):
    return SearchResult(name=name, url=f"https://wallethub.com/d/{name.lower().replace(' ', '-')}-1c")


class TestMatchScore(unittest.TestCase):
    def test_normalize_text(self):
        self.assertEqual(normalize_text("  Chase®  Sapphire™ "), "chase sapphire")
        self.assertEqual(normalize_text(None), "")

    def test_exact_match(self):
        self.assertEqual(calculate_match_score("Chase Sapphire Preferred", "Chase Sapphire Preferred®"), 1.0)

    def test_candidate_contains_query(self):
        self.assertEqual(calculate_match_score("Chase Sapphire Preferred", "Chase Sapphire Preferred Card"), 0.9)

    def test_query_contains_candidate(self):
        self.assertEqual(calculate_match_score("Chase Sapphire Preferred Card", "Sapphire Preferred"), 0.85)

    def test_word_overlap_with_keyword_bonus(self):
        score = calculate_match_score("chase freedom flex card", "Chase Freedom Unlimited")
        self.assertAlmostEqual(score, 0.55)

    def test_word_overlap_is_capped(self):
        score = calculate_match_score(
            "chase sapphire preferred rewards platinum gold",
            "Chase Sapphire Gold Platinum Rewards Preferred Edition",
        )
        self.assertLessEqual(score, 0.8)

    def test_empty_inputs_score_zero(self):
        self.assertEqual(calculate_match_score("", "Chase"), 0.0)
        self.assertEqual(calculate_match_score("ab", "Chase"), 0.0)


class TestFindBestMatch(unittest.TestCase):
    def test_empty_results(self):
        self.assertIsNone(find_best_match("anything", []))

    def test_picks_highest_score(self):
        results = [result("Citi Double Cash Card"), result("Chase Freedom Unlimited"), result("Chase Freedom Flex")]
        best = find_best_match("Chase Freedom Unlimited", results)
        self.assertEqual(best.name, "Chase Freedom Unlimited")

    def test_ties_keep_original_order(self):
        results = [result("Blue Cash Everyday Card"), result("Blue Cash Preferred Card")]
        ranked = rank_results("blue cash", results)
        self.assertEqual([r.name for r, _ in ranked], ["Blue Cash Everyday Card", "Blue Cash Preferred Card"])
        self.assertEqual(find_best_match("blue cash", results).name, "Blue Cash Everyday Card")

    def test_low_confidence_returns_first_result(self):
        results = [result("Discover it Miles"), result("Wells Fargo Active Cash")]
        best = find_best_match("zzzz yyyy", results)
        self.assertEqual(best.name, "Discover it Miles")


if __name__ == "__main__":
    unittest.main()
