from __future__ import annotations

import unittest

from fb_search.counts import (
    REACTION_TYPES,
    parse_count_token,
    parse_reactions_breakdown,
    pick_counts,
    reactions_mapping,
)


class TestParseCountToken(unittest.TestCase):
    def test_plain_and_grouped(self) -> None:
        self.assertEqual(parse_count_token("87"), 87)
        self.assertEqual(parse_count_token("1,234"), 1234)

    def test_suffixes(self) -> None:
        self.assertEqual(parse_count_token("1.2K"), 1200)
        self.assertEqual(parse_count_token("3M"), 3_000_000)
        self.assertEqual(parse_count_token("2 B"), 2_000_000_000)
        self.assertEqual(parse_count_token("1,5K"), 1500)

    def test_garbage(self) -> None:
        self.assertIsNone(parse_count_token(""))
        self.assertIsNone(parse_count_token("K"))


class TestPickCounts(unittest.TestCase):
    def test_all_metrics(self) -> None:
        counts = pick_counts("All reactions: 1.2K\n34 comments\n5 shares")
        self.assertEqual(counts.reactions, 1200)
        self.assertEqual(counts.comments, 34)
        self.assertEqual(counts.shares, 5)

    def test_singular_forms_and_reshares(self) -> None:
        counts = pick_counts("1 reaction · 1 comment · 2 reshares")
        self.assertEqual(counts.reactions, 1)
        self.assertEqual(counts.comments, 1)
        self.assertEqual(counts.shares, 2)

    def test_missing_metrics_are_none_not_zero(self) -> None:
        counts = pick_counts("12 comments")
        self.assertIsNone(counts.reactions)
        self.assertEqual(counts.comments, 12)
        self.assertIsNone(counts.shares)

    def test_empty_text(self) -> None:
        counts = pick_counts("")
        self.assertIsNone(counts.reactions)
        self.assertIsNone(counts.comments)
        self.assertIsNone(counts.shares)


class TestReactions(unittest.TestCase):
    def test_breakdown_both_notations(self) -> None:
        got = parse_reactions_breakdown("900 Like\nLove: 80\n3 hahas")
        self.assertEqual(got, {"like": 900, "love": 80, "haha": 3})

    def test_mapping_zero_fills_unseen_types(self) -> None:
        mapping = reactions_mapping("Love: 12")
        assert mapping is not None
        self.assertEqual(set(mapping), set(REACTION_TYPES))
        self.assertEqual(mapping["love"], 12)
        self.assertEqual(sum(v for k, v in mapping.items() if k != "love"), 0)

    def test_mapping_is_none_for_empty_text(self) -> None:
        self.assertIsNone(reactions_mapping(""))
        self.assertIsNone(reactions_mapping(None))

    def test_mapping_present_when_no_reactions_detected(self) -> None:
        mapping = reactions_mapping("Just some words")
        self.assertEqual(mapping, {kind: 0 for kind in REACTION_TYPES})


if __name__ == "__main__":
    unittest.main()
