from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from core.models import Athlete, Base, Workout


@pytest.fixture()
def session():
    engine = create_engine("sqlite+pysqlite:///:memory:")

    @event.listens_for(engine, "connect")
    def _fk_on(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    s = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


@pytest.fixture()
def athlete(session):
    a = Athlete(id=1, email="ada@example.com", display_name="Ada", sport="running", weekly_hours_goal=6.0)
    other = Athlete(id=2, email="bob@example.com", display_name="Bob")
    session.add_all([a, other])
    session.commit()
    return a


@pytest.fixture()
def make_workout(session):
    def _make(athlete_id: int = 1, day: dt.date = dt.date(2026, 2, 12), **kwargs) -> Workout:
        values = {
            "title": "Easy Run",
            "type": "run",
            "date": dt.datetime.combine(day, dt.time(12, 0)),
            "duration_min": 45,
            "planned": True,
            "completed": False,
        }
        values.update(kwargs)
        w = Workout(athlete_id=athlete_id, **values)
        session.add(w)
        session.commit()
        return w

    return _make
