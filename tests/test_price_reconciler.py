import random
import unittest
from datetime import timedelta

from fakes import FakeClock

from screener.models.market import StockRecord
from screener.prices.reconciler import PriceReconciler, calculate_delta


def _fields_except_live(state) -> dict:
    d = state.to_dict()
    d.pop("live_price")
    d.pop("delta")
    return d


class TestCalculateDelta(unittest.TestCase):
    def test_edge_cases(self):
        self.assertIsNone(calculate_delta(None, 10.0))
        self.assertIsNone(calculate_delta(10.0, None))
        self.assertIsNone(calculate_delta(None, None))
        self.assertEqual(calculate_delta(5.0, 0.0), 0.0)
        self.assertAlmostEqual(calculate_delta(11.0, 10.0), 0.1)
        self.assertAlmostEqual(calculate_delta(9.0, 10.0), -0.1)


class TestPriceReconciler(unittest.TestCase):
    def test_snapshot_tick_snapshot_scenario(self):
        rec = PriceReconciler()
        rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.0))
        rec.apply_tick("X", 11.0)
        self.assertAlmostEqual(rec.get("X").delta, 0.10)

        rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.5))
        state = rec.get("X")
        self.assertEqual(state.live_price, 11.0)
        self.assertEqual(state.baseline_price, 10.5)
        self.assertAlmostEqual(state.delta, (11 - 10.5) / 10.5)
        self.assertAlmostEqual(state.delta, 0.0476, places=4)

    def test_snapshot_never_overwrites_known_live_price(self):
        rec = PriceReconciler()
        rec.apply_tick("X", 12.0)
        rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.0, live_price=9.0, volume=500.0))

        state = rec.get("X")
        self.assertEqual(state.live_price, 12.0)
        self.assertEqual(state.volume, 500.0)
        self.assertAlmostEqual(state.delta, 0.2)

    def test_first_snapshot_seeds_live_price(self):
        rec = PriceReconciler()
        change = rec.apply_snapshot(
            StockRecord(ticker="X", baseline_price=10.0, live_price=10.8, multiplier=5.0, float_shares=1e6, mav10=2e5)
        )

        self.assertTrue(change.is_new)
        state = rec.get("X")
        self.assertEqual(state.live_price, 10.8)
        self.assertAlmostEqual(state.delta, 0.08)
        self.assertEqual(state.multiplier, 5.0)
        self.assertEqual(state.float_shares, 1e6)
        self.assertEqual(state.mav10, 2e5)
        self.assertIsNotNone(state.last_snapshot_at)

    def test_tick_only_touches_live_price_and_delta(self):
        rec = PriceReconciler()
        rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.0, live_price=10.0, volume=1.0, multiplier=2.0))
        before = _fields_except_live(rec.get("X"))

        for p in (10.1, 9.7, 10.4, 10.4, 11.0):
            rec.apply_tick("X", p)
            self.assertEqual(_fields_except_live(rec.get("X")), before)
        self.assertEqual(rec.get("X").baseline_price, 10.0)

    def test_tick_for_unseen_ticker_creates_state(self):
        rec = PriceReconciler()
        change = rec.apply_tick("NEW", 3.0)

        self.assertTrue(change.is_new)
        self.assertTrue(change.price_significant)
        self.assertEqual(change.direction, "up")
        state = rec.get("NEW")
        self.assertEqual(state.live_price, 3.0)
        self.assertIsNone(state.baseline_price)
        self.assertIsNone(state.delta)

    def test_significance_thresholds(self):
        rec = PriceReconciler()
        rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.0, live_price=10.0))

        small = rec.apply_tick("X", 10.04)  # 0.4% move, delta moves 0.004
        self.assertFalse(small.price_significant)
        self.assertFalse(small.delta_significant)
        self.assertEqual(small.direction, "up")

        big = rec.apply_tick("X", 9.9)  # ~1.4% move
        self.assertTrue(big.price_significant)
        self.assertTrue(big.delta_significant)
        self.assertEqual(big.direction, "down")

        flat = rec.apply_tick("X", 9.9)
        self.assertFalse(flat.price_significant)
        self.assertFalse(flat.delta_significant)
        self.assertIsNone(flat.direction)

    def test_zero_baseline(self):
        rec = PriceReconciler()
        rec.apply_snapshot(StockRecord(ticker="Z", baseline_price=0.0))
        rec.apply_tick("Z", 4.0)
        self.assertEqual(rec.get("Z").delta, 0.0)

    def test_snapshot_delta_flag(self):
        rec = PriceReconciler()
        rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.0, live_price=10.0))
        rec.apply_tick("X", 11.0)

        same = rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.0))
        moved = rec.apply_snapshot(StockRecord(ticker="X", baseline_price=10.5))
        self.assertFalse(same.delta_significant)
        self.assertTrue(moved.delta_significant)

    def test_delta_never_desynchronizes(self):
        rng = random.Random(3)
        rec = PriceReconciler()
        for _ in range(500):
            if rng.random() < 0.3:
                baseline = rng.choice([None, 0.0, round(rng.uniform(1, 50), 2)])
                rec.apply_snapshot(StockRecord(ticker="X", baseline_price=baseline, live_price=rng.uniform(1, 50)))
            else:
                rec.apply_tick("X", round(rng.uniform(1, 50), 2))

            state = rec.get("X")
            expected = calculate_delta(state.live_price, state.baseline_price)
            if expected is None:
                self.assertIsNone(state.delta)
            else:
                self.assertAlmostEqual(state.delta, expected)

    def test_get_returns_copy(self):
        rec = PriceReconciler()
        rec.apply_tick("X", 1.0)
        rec.get("X").live_price = 100.0
        self.assertEqual(rec.get("X").live_price, 1.0)

    def test_evict_idle(self):
        clock = FakeClock()
        rec = PriceReconciler(clock=clock)
        rec.apply_tick("OLD", 1.0)
        clock.now += timedelta(minutes=30)
        rec.apply_snapshot(StockRecord(ticker="FRESH", baseline_price=2.0))

        evicted = rec.evict_idle(600)

        self.assertEqual(evicted, ["OLD"])
        self.assertNotIn("OLD", rec)
        self.assertIn("FRESH", rec)
        self.assertEqual(len(rec), 1)


if __name__ == "__main__":
    unittest.main()
