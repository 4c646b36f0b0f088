import unittest
from datetime import date

import httpx

import crud
import main
from backends import HttpBackend, SessionBackend
from dashboard import DashboardComposer
from errors import BackendError
from grid import RollingWindow, iter_cells
from reconcile import CellState
from schemas import HabitCreate
from support import DatabaseMixin


class TestHttpBackend(DatabaseMixin, unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.setUpDatabase()
        self.user_id = self.make_user()
        db = self.Session()
        try:
            habit = crud.create_habit(db, self.user_id, HabitCreate(name="Read", daily_goal=2, color="#FFB3BA"))
            self.habit_id = habit.id
            crud.upsert_entry(db, self.user_id, self.habit_id, self.today, 1)
        finally:
            db.close()
        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=main.app),
            base_url="http://testserver",
            headers=self.auth_headers(self.user_id),
        )
        self.backend = HttpBackend(self.client)

    async def asyncTearDown(self):
        await self.client.aclose()
        self.tearDownDatabase()

    async def test_dashboard_click_round_trip(self):
        composer = DashboardComposer(self.backend, window=RollingWindow(7), today=self.today)
        (panel,) = await composer.load()
        self.assertEqual(list(iter_cells(panel.weeks))[-1].count, 1)

        self.assertEqual(composer.reconciler.record_entry(self.habit_id, self.today), 2)
        await composer.reconciler.wait_idle()
        self.assertEqual(composer.reconciler.state_for(self.habit_id, self.today), CellState.CLEAN)

        db = self.Session()
        try:
            entry = crud.get_entry(db, self.user_id, self.habit_id, self.today)
            self.assertEqual(entry.count, 2)
        finally:
            db.close()

        # goal reached, next click resets
        self.assertEqual(composer.reconciler.record_entry(self.habit_id, self.today), 0)
        await composer.reconciler.wait_idle()
        entries = await self.backend.get_entries(self.habit_id, since_days=7)
        self.assertEqual([(e.date, e.count) for e in entries], [(self.today, 0)])

    async def test_forbidden_becomes_backend_error(self):
        intruder = HttpBackend(httpx.AsyncClient(
            transport=httpx.ASGITransport(app=main.app),
            base_url="http://testserver",
            headers=self.auth_headers(self.make_user("other@example.com")),
        ))
        try:
            with self.assertRaises(BackendError) as ctx:
                await intruder.upsert_entry(self.habit_id, self.today, 3)
            self.assertEqual(ctx.exception.status_code, 403)
            self.assertEqual(ctx.exception.message, "Not authorized")
            self.assertEqual(await intruder.list_active_habits(), [])
        finally:
            await intruder.client.aclose()

    async def test_transport_failure_becomes_backend_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://testserver") as client:
            with self.assertRaises(BackendError):
                await HttpBackend(client).get_entries(self.habit_id, start=date(2024, 1, 1), end=self.today)

    async def test_non_object_error_body_becomes_backend_error(self):
        def fail(request):
            return httpx.Response(502, json=["upstream", "down"])

        async with httpx.AsyncClient(transport=httpx.MockTransport(fail), base_url="http://testserver") as client:
            with self.assertRaises(BackendError) as ctx:
                await HttpBackend(client).upsert_entry(self.habit_id, self.today, 1)
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertIn("upstream", ctx.exception.message)

    async def test_session_backend_matches_http_backend(self):
        local = SessionBackend(self.Session, self.user_id, today=self.today)
        self.assertEqual(await local.list_active_habits(), await self.backend.list_active_habits())
        self.assertEqual(
            await local.get_entries(self.habit_id, since_days=7),
            await self.backend.get_entries(self.habit_id, since_days=7),
        )

        written = await local.upsert_entry(self.habit_id, date(2024, 3, 1), 4)
        self.assertEqual(written.count, 4)
        self.assertEqual(written.habit_id, self.habit_id)


if __name__ == "__main__":
    unittest.main(verbosity=2)
