import asyncio
import unittest
from datetime import date

from dashboard import EMPTY_MESSAGE, DashboardComposer, fetch_params
from fakes import FakeBackend, habit, settle
from grid import RollingWindow, YearWindow, iter_cells
from colors import NEUTRAL_COLOR


TODAY = date(2024, 3, 15)


class TestDashboardComposer(unittest.IsolatedAsyncioTestCase):
    async def test_empty_habit_set(self):
        composer = DashboardComposer(FakeBackend(), today=TODAY)
        self.assertTrue(composer.loading)
        self.assertFalse(composer.is_empty)

        panels = await composer.load()
        self.assertEqual(panels, [])
        self.assertTrue(composer.is_empty)
        self.assertTrue(EMPTY_MESSAGE.startswith("No active habits yet"))

    async def test_one_panel_per_habit(self):
        backend = FakeBackend(
            [habit(1, 2, name="Read"), habit(2, 1, name="Run", color="#BAFFC9")],
            {1: {TODAY: 1}, 2: {}},
        )
        composer = DashboardComposer(backend, window=RollingWindow(7), today=TODAY)
        panels = await composer.load()

        self.assertEqual([p.habit.name for p in panels], ["Read", "Run"])
        for panel in panels:
            self.assertFalse(panel.loading)
            self.assertIsNone(panel.error)
            self.assertEqual(panel.caption, "Last 7 days")
            self.assertEqual(len(list(iter_cells(panel.weeks))), 7)

        today_cell = list(iter_cells(panels[0].weeks))[-1]
        self.assertEqual(today_cell.count, 1)
        self.assertEqual(panels[0].cell_color(today_cell), "rgba(255, 179, 186, 0.5)")
        self.assertEqual(panels[0].tooltip(today_cell), "2024-03-15 - 1 / 2")
        self.assertEqual(panels[1].legend[0], NEUTRAL_COLOR)

    async def test_slow_habit_does_not_block_others(self):
        backend = FakeBackend([habit(1), habit(2)], {1: {TODAY: 1}, 2: {TODAY: 2}})
        gate = asyncio.Event()
        backend.read_gates[2] = gate
        composer = DashboardComposer(backend, window=RollingWindow(7), today=TODAY)

        await composer.load_habits()
        composer.start_entries()
        await settle()

        fast, slow = composer.panels()
        self.assertFalse(fast.loading)
        self.assertIsNotNone(fast.weeks)
        self.assertTrue(slow.loading)
        self.assertIsNone(slow.weeks)

        gate.set()
        await composer.wait()
        fast, slow = composer.panels()
        self.assertFalse(slow.loading)
        self.assertEqual(list(iter_cells(slow.weeks))[-1].count, 2)

    async def test_failing_habit_gets_its_own_error(self):
        backend = FakeBackend([habit(1), habit(2)], {1: {}, 2: {}})
        backend.fail_reads.add(2)
        composer = DashboardComposer(backend, today=TODAY)

        ok, failed = await composer.load()
        self.assertIsNotNone(ok.weeks)
        self.assertIsNone(ok.error)
        self.assertFalse(failed.loading)
        self.assertIsNone(failed.weeks)
        self.assertEqual(failed.error, "entries unavailable")

    async def test_fetch_params_follow_window(self):
        backend = FakeBackend([habit(1)], {1: {}})
        await DashboardComposer(backend, window=RollingWindow(30), today=TODAY).load()
        await DashboardComposer(backend, window=YearWindow(2023), today=TODAY).load()

        self.assertEqual(backend.reads, [
            (1, 30, None, None),
            (1, None, date(2023, 1, 1), date(2023, 12, 31)),
        ])
        self.assertEqual(fetch_params(RollingWindow(5), TODAY), {"since_days": 5})

    async def test_earliest_year(self):
        backend = FakeBackend(
            [habit(1), habit(2)],
            {1: {date(2023, 5, 1): 1}, 2: {date(2022, 6, 1): 1, TODAY: 1}},
        )
        composer = DashboardComposer(backend, window=RollingWindow(800), today=TODAY)
        await composer.load()
        self.assertEqual(composer.earliest_year(), 2022)
        self.assertEqual(composer.year_options(), [2024, 2023, 2022])

        empty = DashboardComposer(FakeBackend([habit(1)], {1: {}}), today=TODAY)
        await empty.load()
        self.assertEqual(empty.earliest_year(), 2024)
        self.assertEqual(empty.year_options(), [2024])

    async def test_year_view_marks_today(self):
        backend = FakeBackend([habit(1)], {1: {}})
        composer = DashboardComposer(backend, window=YearWindow(2024), today=TODAY)
        (panel,) = await composer.load()
        flagged = [cell.date for cell in iter_cells(panel.weeks) if cell.is_today]
        self.assertEqual(flagged, [TODAY])
        self.assertEqual(panel.caption, "2024")

    async def test_clicks_show_up_in_panels(self):
        backend = FakeBackend([habit(1, 3)], {1: {TODAY: 3}})
        composer = DashboardComposer(backend, window=RollingWindow(1), today=TODAY)
        await composer.load()

        composer.reconciler.record_entry(1, TODAY)
        (panel,) = composer.panels()
        (cell,) = iter_cells(panel.weeks)
        self.assertEqual(cell.count, 0)
        self.assertEqual(panel.cell_color(cell), NEUTRAL_COLOR)

        await composer.reconciler.wait_idle()
        self.assertEqual(backend.store[1][TODAY], 0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
