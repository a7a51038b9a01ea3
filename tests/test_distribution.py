import random
import unittest
from collections import Counter

from geoload.distribution import DistributionSampler, QueryWindow, ZipfianGenerator


class TestZipfianGenerator(unittest.TestCase):
    def test_values_stay_in_range_and_favor_min(self) -> None:
        zipf = ZipfianGenerator(1, 99, rng=random.Random(3))
        draws = Counter(zipf.next() for _ in range(5000))
        self.assertGreaterEqual(min(draws), 1)
        self.assertLessEqual(max(draws), 99)
        self.assertEqual(draws.most_common(1)[0][0], 1)
        self.assertGreater(draws[1], draws[50])

    def test_single_item_range(self) -> None:
        zipf = ZipfianGenerator(4, 4, rng=random.Random(1))
        self.assertEqual({zipf.next() for _ in range(20)}, {4})

    def test_two_item_range(self) -> None:
        zipf = ZipfianGenerator(0, 1, rng=random.Random(1))
        self.assertEqual({zipf.next() for _ in range(200)}, {0, 1})

    def test_empty_range_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ZipfianGenerator(5, 4)


class TestQueryWindow(unittest.TestCase):
    def test_inverted_bounds_are_swapped(self) -> None:
        window = QueryWindow(limit_min=50, limit_max=5, offset_min=30, offset_max=3)
        self.assertEqual((window.limit_min, window.limit_max), (5, 50))
        self.assertEqual((window.offset_min, window.offset_max), (3, 30))

    def test_fixed_bounds_are_deterministic(self) -> None:
        window = QueryWindow(limit_min=10, limit_max=10, offset_min=5, offset_max=5)
        rng = random.Random(0)
        self.assertEqual({window.random_limit(rng) for _ in range(50)}, {10})
        self.assertEqual({window.random_offset(rng) for _ in range(50)}, {5})

    def test_draws_cover_closed_interval(self) -> None:
        window = QueryWindow(limit_min=1, limit_max=3)
        rng = random.Random(0)
        self.assertEqual({window.random_limit(rng) for _ in range(200)}, {1, 2, 3})


class TestDistributionSampler(unittest.TestCase):
    def test_uniform_in_range_and_flat(self) -> None:
        sampler = DistributionSampler("uniform", rng=random.Random(11))
        population = 10
        draws = Counter(sampler.sample(population, population) for _ in range(10000))
        self.assertEqual(set(draws), set(range(population)))
        for index in range(population):
            # 5 standard deviations of a binomial(10000, 0.1)
            self.assertLess(abs(draws[index] - 1000), 150)

    def test_uniform_rejects_empty_population(self) -> None:
        sampler = DistributionSampler("uniform", rng=random.Random(1))
        with self.assertRaises(ValueError):
            sampler.uniform(0)

    def test_zipfian_skews_toward_high_end(self) -> None:
        sampler = DistributionSampler("zipfian", rng=random.Random(5))
        population = 100
        draws = Counter(sampler.sample(population, population) for _ in range(10000))
        self.assertGreater(draws[population - 1], draws[0])
        self.assertTrue(all(0 <= index < population for index in draws))

    def test_latest_leaves_room_for_window(self) -> None:
        window = QueryWindow(limit_min=1, limit_max=10, offset_min=1, offset_max=5)
        sampler = DistributionSampler("latest", window, rng=random.Random(9))
        population = 200
        for _ in range(5000):
            self.assertLessEqual(sampler.sample(population, population), population - 10 - 5)

    def test_zipfian_is_built_once(self) -> None:
        sampler = DistributionSampler("zipfian", rng=random.Random(2))
        self.assertIsNone(sampler.zipfian)
        sampler.sample(100, 50)
        first = sampler.zipfian
        sampler.sample(100, 500)
        self.assertIs(sampler.zipfian, first)
        self.assertEqual(first.max_value, 49)

    def test_single_stored_document(self) -> None:
        sampler = DistributionSampler("zipfian", rng=random.Random(2))
        self.assertEqual({sampler.sample(1, 1) for _ in range(20)}, {0})
        self.assertEqual(sampler.zipfian.max_value, 1)

    def test_latest_with_single_stored_document(self) -> None:
        window = QueryWindow(limit_min=1, limit_max=3, offset_min=1, offset_max=2)
        sampler = DistributionSampler("latest", window, rng=random.Random(2))
        self.assertEqual(sampler.sample(1, 1), 1 - 1 - 3 - 2)

    def test_unknown_mode_falls_back_to_uniform(self) -> None:
        with self.assertLogs(level="WARNING"):
            sampler = DistributionSampler("hotspot")
        self.assertEqual(sampler.mode, "uniform")

    def test_mode_name_is_case_insensitive(self) -> None:
        self.assertEqual(DistributionSampler("Zipfian").mode, "zipfian")


if __name__ == "__main__":
    unittest.main()
