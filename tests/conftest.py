import itertools
import os
import random

import pytest

# Must be set before the database module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIP_DEMOTED_NAME"] = "true"

import models  # noqa: E402
from database import SessionLocal, engine  # noqa: E402
from tree import Tree  # noqa: E402


def counter_ids(prefix="n"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture
def tree():
    return Tree(rng=random.Random(7), id_factory=counter_ids())


@pytest.fixture
def db():
    models.Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    models.Base.metadata.drop_all(bind=engine)
