import unittest
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from auth import create_access_token, get_password_hash
import crud
from database import Base, get_db, get_session_factory


TODAY = date(2024, 3, 15)


class DatabaseMixin:
    """Fresh in-memory database wired into the app's dependencies."""

    today = TODAY

    def setUpDatabase(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False)

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        main.app.dependency_overrides[get_db] = override_get_db
        main.app.dependency_overrides[get_session_factory] = lambda: self.Session
        main.app.dependency_overrides[main.get_today] = lambda: self.today

    def tearDownDatabase(self):
        main.app.dependency_overrides.clear()
        self.engine.dispose()

    def make_user(self, email="owner@example.com", password="secret"):
        db = self.Session()
        try:
            return crud.create_user(db, email, get_password_hash(password)).id
        finally:
            db.close()

    def auth_headers(self, user_id):
        token = create_access_token({"sub": str(user_id)})
        return {"Authorization": f"Bearer {token}"}


class ApiTestCase(DatabaseMixin, unittest.TestCase):

    def setUp(self):
        self.setUpDatabase()
        self.client = TestClient(main.app)

    def tearDown(self):
        self.client.close()
        self.tearDownDatabase()

    def create_habit(self, headers, **fields):
        payload = {"name": "Read", "daily_goal": 3, "color": "#FFB3BA"}
        payload.update(fields)
        response = self.client.post("/habits", json=payload, headers=headers)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()
