import unittest

from fakes import T0, FlakyRenderer

from screener.charts.manager import ChartSurfaceManager
from screener.charts.memory import InMemoryRenderer, SlotContainer
from screener.charts.renderer import ChartKind
from screener.models.market import Candle
from screener.scheduling import ManualScheduler


def ms(epoch_s: float) -> int:
    return int(epoch_s * 1000)


class ChartManagerTestCase(unittest.TestCase):
    renderer_factory = InMemoryRenderer

    def setUp(self):
        self.scheduler = ManualScheduler(start=T0)
        self.renderer = self.renderer_factory()
        self.manager = ChartSurfaceManager(self.renderer, self.scheduler, finalize_buffer_seconds=1.0)
        self.container = SlotContainer("slot-0", width=600)

    def only_surface(self):
        self.assertEqual(len(self.renderer.surfaces), 1)
        return next(iter(self.renderer.surfaces.values()))


class TestAttach(ChartManagerTestCase):
    def test_bulk_load_initial_candles(self):
        candles = [Candle(T0 - 120, 1, 2, 0.5, 1.5), Candle(T0 - 60, 1.5, 3, 1.4, 2.5)]
        self.assertTrue(self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, candles))

        surface = self.only_surface()
        self.assertEqual(self.renderer.points(surface), [c.as_point() for c in candles])
        self.assertEqual(surface.width, 600)
        self.assertTrue(self.manager.is_live("slot-0"))

    def test_area_bulk_load_uses_closes(self):
        candles = [Candle(T0 - 60, 1, 2, 0.5, 1.5), Candle(T0, 1.5, 3, 1.4, 2.5)]
        self.manager.attach("slot-0", self.container, ChartKind.AREA, candles)

        points = self.renderer.points(self.only_surface())
        self.assertEqual(points, [{"time": T0 - 60, "value": 1.5}, {"time": T0, "value": 2.5}])

    def test_attach_twice_leaves_one_live_surface(self):
        candles = [Candle(T0, 10, 10, 10, 10)]
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, candles)
        first = self.only_surface()
        self.assertEqual(self.scheduler.pending(), 1)

        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, candles)
        second = self.only_surface()

        self.assertIsNot(first, second)
        self.assertTrue(first.destroyed)
        self.assertFalse(second.destroyed)
        self.assertEqual(self.manager.keys(), ["slot-0"])
        self.assertEqual(self.scheduler.pending(), 1)
        self.assertEqual(len(self.container.observers), 1)

        self.scheduler.advance(300)
        self.assertEqual(first.fit_count, 0)
        self.assertEqual(second.fit_count, 1)

    def test_create_failure_leaves_key_unattached(self):
        renderer = FlakyRenderer(fail_on={"create_surface"})
        manager = ChartSurfaceManager(renderer, self.scheduler)

        with self.assertLogs("chart_manager", level="ERROR"):
            ok = manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])

        self.assertFalse(ok)
        self.assertFalse(manager.is_live("slot-0"))
        self.assertIsNone(manager.describe("slot-0"))

    def test_bulk_failure_releases_partial_surface(self):
        renderer = FlakyRenderer(fail_on={"bulk_set_data"})
        manager = ChartSurfaceManager(renderer, self.scheduler)

        with self.assertLogs("chart_manager", level="ERROR"):
            ok = manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [Candle(T0, 1, 1, 1, 1)])

        self.assertFalse(ok)
        self.assertEqual(renderer.surfaces, {})
        self.assertEqual(self.scheduler.pending(), 0)
        self.assertEqual(self.container.observers, [])

    def test_attach_after_failed_teardown_still_works(self):
        renderer = FlakyRenderer()
        manager = ChartSurfaceManager(renderer, self.scheduler)
        manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])

        renderer.fail_on = {"destroy"}
        with self.assertLogs("chart_manager", level="WARNING"):
            ok = manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])

        self.assertTrue(ok)
        self.assertTrue(manager.is_live("slot-0"))


class TestCandlestickUpdates(ChartManagerTestCase):
    def test_ticks_build_candles_on_the_surface(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])

        self.manager.update_with_price("slot-0", ms(T0), 10.0)
        self.manager.update_with_price("slot-0", ms(T0 + 30), 11.0)
        self.manager.update_with_price("slot-0", ms(T0 + 45), 9.5)
        self.manager.update_with_price("slot-0", ms(T0 + 61), 9.0)

        points = self.renderer.points(self.only_surface())
        self.assertEqual(
            points,
            [
                {"time": T0, "open": 10.0, "high": 11.0, "low": 9.5, "close": 9.5},
                {"time": T0 + 60, "open": 9.0, "high": 9.0, "low": 9.0, "close": 9.0},
            ],
        )

    def test_continues_the_candle_loaded_at_attach(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [Candle(T0, 10, 12, 9, 11)])
        self.manager.update_with_price("slot-0", ms(T0 + 50), 13.0)

        points = self.renderer.points(self.only_surface())
        self.assertEqual(points, [{"time": T0, "open": 10, "high": 13.0, "low": 9, "close": 13.0}])

    def test_late_tick_merges_or_is_ignored(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])
        self.manager.update_with_price("slot-0", ms(T0 + 300), 10.0)

        self.manager.update_with_price("slot-0", ms(T0 + 250), 8.0)  # one bucket back
        self.manager.update_with_price("slot-0", ms(T0), 50.0)  # five buckets back

        points = self.renderer.points(self.only_surface())
        self.assertEqual(points, [{"time": T0 + 300, "open": 10.0, "high": 10.0, "low": 8.0, "close": 8.0}])
        self.assertTrue(self.manager.is_live("slot-0"))

    def test_finalize_timer_rescheduled_per_bucket(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])
        self.manager.update_with_price("slot-0", ms(T0 + 5), 10.0)
        self.assertEqual(self.manager.describe("slot-0")["pending_timers"], [T0])

        self.manager.update_with_price("slot-0", ms(T0 + 65), 10.5)
        self.assertEqual(self.manager.describe("slot-0")["pending_timers"], [T0 + 60])
        self.assertEqual(self.scheduler.pending(), 1)

        surface = self.only_surface()
        self.scheduler.advance(60)  # T0 + 60: the T0 timer would have fired at T0 + 61
        self.assertEqual(surface.fit_count, 0)
        self.scheduler.advance(62)  # past T0 + 121
        self.assertEqual(surface.fit_count, 1)
        self.assertEqual(self.manager.describe("slot-0")["pending_timers"], [])


class TestAreaUpdates(ChartManagerTestCase):
    def test_points_pushed_directly_older_skipped(self):
        self.manager.attach("slot-0", self.container, ChartKind.AREA, [])
        self.manager.update_with_price("slot-0", ms(T0 + 1), 1.0)
        self.manager.update_with_price("slot-0", ms(T0 + 1.5), 1.1)
        self.manager.update_with_price("slot-0", ms(T0 + 3), 1.2)
        self.manager.update_with_price("slot-0", ms(T0 + 2), 9.9)

        points = self.renderer.points(self.only_surface())
        self.assertEqual(points, [{"time": T0 + 1, "value": 1.1}, {"time": T0 + 3, "value": 1.2}])
        self.assertEqual(self.scheduler.pending(), 0)


class TestTeardown(ChartManagerTestCase):
    def test_destroy_is_idempotent_and_clears_everything(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])
        self.manager.update_with_price("slot-0", ms(T0), 1.0)
        surface = self.only_surface()

        self.manager.destroy("slot-0")
        self.manager.destroy("slot-0")
        self.manager.destroy("never-attached")

        self.assertTrue(surface.destroyed)
        self.assertEqual(self.manager.keys(), [])
        self.assertEqual(self.scheduler.pending(), 0)
        self.assertEqual(self.container.observers, [])

    def test_updates_after_destroy_are_silent(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])
        self.manager.destroy("slot-0")

        self.manager.update_with_price("slot-0", ms(T0), 1.0)
        self.manager.resize("slot-0", 100)
        self.assertEqual(self.scheduler.pending(), 0)
        self.assertEqual(self.renderer.surfaces, {})

    def test_update_failure_destroys_only_that_surface(self):
        renderer = FlakyRenderer()
        manager = ChartSurfaceManager(renderer, self.scheduler)
        other = SlotContainer("slot-1")
        manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])
        manager.attach("slot-1", other, ChartKind.CANDLESTICK, [])
        manager.update_with_price("slot-0", ms(T0), 1.0)

        renderer.fail_on = {"update_latest"}
        with self.assertLogs("chart_manager", level="ERROR"):
            manager.update_with_price("slot-0", ms(T0 + 61), 2.0)
        renderer.fail_on = set()

        self.assertFalse(manager.is_live("slot-0"))
        self.assertTrue(manager.is_live("slot-1"))
        self.assertEqual(self.scheduler.pending(), 0)

        manager.update_with_price("slot-0", ms(T0 + 62), 3.0)
        manager.update_with_price("slot-1", ms(T0 + 62), 3.0)
        self.assertEqual(len(renderer.surfaces), 1)

    def test_resize_failure_destroys_surface(self):
        renderer = FlakyRenderer(fail_on={"resize"})
        manager = ChartSurfaceManager(renderer, self.scheduler)
        manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])

        with self.assertLogs("chart_manager", level="ERROR"):
            manager.resize("slot-0", 900)

        self.assertFalse(manager.is_live("slot-0"))

    def test_resize_observer_follows_container(self):
        self.manager.attach("slot-0", self.container, ChartKind.CANDLESTICK, [])
        surface = self.only_surface()

        self.container.set_width(820)
        self.assertEqual(surface.width, 820)

        self.manager.destroy("slot-0")
        self.container.set_width(300)
        self.assertEqual(surface.width, 820)

    def test_destroy_all(self):
        for i in range(3):
            self.manager.attach(f"slot-{i}", SlotContainer(f"slot-{i}"), ChartKind.CANDLESTICK, [])
            self.manager.update_with_price(f"slot-{i}", ms(T0), 1.0)

        self.manager.destroy_all()
        self.assertEqual(self.manager.keys(), [])
        self.assertEqual(self.renderer.surfaces, {})
        self.assertEqual(self.scheduler.pending(), 0)


if __name__ == "__main__":
    unittest.main()
