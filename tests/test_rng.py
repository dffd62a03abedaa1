import random
import unittest
from collections import Counter

from eventlottery.lottery.rng import (
    SEED_BITS,
    fisher_yates,
    fixed_seed_factory,
    generate_seed,
    seeded_permutation,
    split_winners,
)


class SeededPermutationTests(unittest.TestCase):
    def test_permutation_keeps_every_item(self):
        items = list(range(25))
        shuffled = seeded_permutation(items, 99)
        self.assertEqual(sorted(shuffled), items)
        self.assertEqual(items, list(range(25)))

    def test_same_seed_same_order(self):
        self.assertEqual(
            seeded_permutation("abcdefghij", 7), seeded_permutation("abcdefghij", 7)
        )

    def test_different_seeds_differ(self):
        self.assertNotEqual(
            seeded_permutation(range(20), 1), seeded_permutation(range(20), 2)
        )

    def test_negative_seed_rejected(self):
        with self.assertRaises(ValueError):
            seeded_permutation([1, 2], -1)

    def test_empty_and_single(self):
        self.assertEqual(seeded_permutation([], 3), [])
        self.assertEqual(seeded_permutation(["only"], 3), ["only"])

    def test_all_orderings_roughly_equally_likely(self):
        counts = Counter()
        for seed in range(6000):
            items = ["a", "b", "c"]
            fisher_yates(items, random.Random(seed))
            counts["".join(items)] += 1
        self.assertEqual(len(counts), 6)
        for ordering, seen in counts.items():
            with self.subTest(ordering=ordering):
                self.assertGreater(seen, 800)
                self.assertLess(seen, 1200)


class SplitWinnersTests(unittest.TestCase):
    def test_split_sizes(self):
        winners, losers = split_winners(list(range(5)), 2, seed=10)
        self.assertEqual(len(winners), 2)
        self.assertEqual(len(losers), 3)
        self.assertEqual(sorted(winners + losers), list(range(5)))

    def test_more_places_than_candidates(self):
        winners, losers = split_winners(["x", "y", "z"], 5, seed=10)
        self.assertEqual(sorted(winners), ["x", "y", "z"])
        self.assertEqual(losers, [])

    def test_winners_are_front_of_permutation(self):
        order = seeded_permutation(list(range(8)), 4)
        winners, losers = split_winners(list(range(8)), 3, seed=4)
        self.assertEqual(winners, order[:3])
        self.assertEqual(losers, order[3:])

    def test_non_positive_winner_count_rejected(self):
        with self.assertRaises(ValueError):
            split_winners([1, 2, 3], 0, seed=1)


class SeedSourceTests(unittest.TestCase):
    def test_generated_seed_in_range(self):
        for _ in range(20):
            seed = generate_seed()
            self.assertGreaterEqual(seed, 0)
            self.assertLess(seed, 2**SEED_BITS)

    def test_fixed_seed_factory(self):
        factory = fixed_seed_factory(5)
        self.assertEqual([factory(), factory()], [5, 5])
        with self.assertRaises(ValueError):
            fixed_seed_factory(-5)


if __name__ == "__main__":
    unittest.main()
