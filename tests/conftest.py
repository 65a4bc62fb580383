import pytest

from checkout import SaleCommitService
from database import Database


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def products(db):
    return {
        "coffee": db.lookup(db.add_product("8991001", "Kopi Bubuk", "50000", 10)),
        "tea": db.lookup(db.add_product("8991002", "Teh Celup", "20000", 5)),
        "sugar": db.lookup(db.add_product("8991003", "Gula Aren", "111000", 1)),
    }


@pytest.fixture
def service(db):
    return SaleCommitService(db, db, tax_rate=11)


class CountingSequence:
    """Delegates to a real generator and counts the calls."""
    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def next_sale_number(self):
        self.calls += 1
        return self.inner.next_sale_number()


@pytest.fixture
def counting_sequence(db):
    return CountingSequence(db)
