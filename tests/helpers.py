import os
import sys
import tempfile
import unittest
from decimal import Decimal
from typing import Optional

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db.database import SqliteStore  # noqa: E402
from db.models import Product, Unit  # noqa: E402


def make_product(
    pid: int,
    price: int,
    name: Optional[str] = None,
    unit: Unit = Unit.PIECE,
    stock: Optional[Decimal] = None,
    **kwargs,
) -> Product:
    return Product(
        pid=pid,
        name=name or f"Product {pid}",
        price=price,
        unit=unit,
        stock=stock,
        **kwargs,
    )


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Each test gets its own sqlite file in a temporary directory."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        self.store = SqliteStore(self.db_path, timeout=1.0)

    def tearDown(self):
        self.temp_dir.cleanup()

    async def add_product(self, *args, **kwargs) -> Product:
        return await crud.save_product(self.store, make_product(*args, **kwargs))
