import os
import unittest
from dataclasses import replace
from decimal import Decimal

from helpers import StoreTestCase, make_product

from core.errors import InvalidStateError, NotFoundError
from db import crud
from db.database import SqliteStore
from db.models import Role, Unit


class ProductCrudTestCase(StoreTestCase):
    async def asyncSetUp(self):
        await self.add_product(1001, 1500, name="Coffee beans", category="Grocery", barcode="7441001")
        await self.add_product(1002, 800, name="Ground coffee", category="Grocery")
        await self.add_product(1003, 1200, name="Cheddar cheese", unit=Unit.WEIGHT, category="Deli")
        await self.add_product(1004, 300, name="Old soda", is_active=False, barcode="1001")
        await self.add_product(1005, 950, name="Bread", stock=Decimal(10), category="Bakery")

    # ---------- Read / write ----------

    async def test_save_and_get(self):
        prod = await crud.get_product(self.store, 1003)
        self.assertEqual(prod.name, "Cheddar cheese")
        self.assertIs(prod.unit, Unit.WEIGHT)
        self.assertIsNone(await crud.get_product(self.store, 9))

        await crud.save_product(self.store, replace(prod, price=1300))
        self.assertEqual((await crud.get_product(self.store, 1003)).price, 1300)
        self.assertEqual(len(await crud.list_products(self.store, include_inactive=True)), 5)

    async def test_list_hides_inactive_by_default(self):
        self.assertEqual(
            [p.pid for p in await crud.list_products(self.store)], [1001, 1002, 1003, 1005]
        )
        everything = await crud.list_products(self.store, include_inactive=True)
        self.assertEqual([p.pid for p in everything], [1001, 1002, 1003, 1004, 1005])
        # inactive products are still reachable by id
        self.assertFalse((await crud.get_product(self.store, 1004)).is_active)

    async def test_negative_price_rejected(self):
        with self.assertRaises(ValueError):
            await crud.save_product(self.store, make_product(7, -1))
        with self.assertRaises(ValueError):
            await crud.save_product(self.store, make_product(7, 100, cost=-5))
        self.assertIsNone(await crud.get_product(self.store, 7))

    async def test_next_product_id(self):
        self.assertEqual(await crud.next_product_id(self.store), 1006)
        await crud.delete_product(self.store, 1005)
        self.assertEqual(await crud.next_product_id(self.store), 1005)

    async def test_next_product_id_empty_catalog(self):
        empty = SqliteStore(os.path.join(self.temp_dir.name, "empty.sqlite"))
        self.assertEqual(await crud.next_product_id(empty), 1001)

    async def test_delete(self):
        await crud.delete_product(self.store, 1002)
        self.assertIsNone(await crud.get_product(self.store, 1002))
        with self.assertRaises(NotFoundError):
            await crud.delete_product(self.store, 1002)

    async def test_update_product_price_stock(self):
        self.assertTrue(await crud.update_product_price_stock(self.store, 1005, 1000, None))
        bread = await crud.get_product(self.store, 1005)
        self.assertEqual((bread.price, bread.stock), (1000, Decimal(10)))

        self.assertTrue(await crud.update_product_price_stock(self.store, 1005, None, Decimal(4)))
        bread = await crud.get_product(self.store, 1005)
        self.assertEqual((bread.price, bread.stock), (1000, Decimal(4)))

        self.assertFalse(await crud.update_product_price_stock(self.store, 1005, None, None))
        self.assertFalse(await crud.update_product_price_stock(self.store, 9, 100, None))

    async def test_adjust_stock(self):
        await crud.adjust_stock(
            self.store, {1005: Decimal(3), 1003: Decimal("0.5"), 42: Decimal(1)}
        )
        self.assertEqual((await crud.get_product(self.store, 1005)).stock, Decimal(7))
        # unbounded stock stays unbounded
        self.assertIsNone((await crud.get_product(self.store, 1003)).stock)

        await crud.adjust_stock(self.store, {1005: Decimal(20)})
        self.assertEqual((await crud.get_product(self.store, 1005)).stock, Decimal(0))

    # ---------- Search ----------

    async def test_search_empty_returns_all_active(self):
        self.assertEqual(len(await crud.search_products(self.store, "  ")), 4)

    async def test_search_numeric_exact_id_or_barcode(self):
        self.assertEqual([p.pid for p in await crud.search_products(self.store, "1002")], [1002])
        self.assertEqual(
            [p.pid for p in await crud.search_products(self.store, "7441001")], [1001]
        )
        # the inactive product whose barcode is "1001" only shows up on request
        found = await crud.search_products(self.store, "1001", include_inactive=True)
        self.assertEqual([p.pid for p in found], [1001, 1004])

    async def test_search_numeric_falls_back_to_keyword(self):
        await self.add_product(1010, 500, name="Batteries 9V")
        self.assertEqual([p.pid for p in await crud.search_products(self.store, "9")], [1010])
        self.assertEqual(await crud.search_products(self.store, "99999"), [])

    async def test_search_single_word(self):
        found = await crud.search_products(self.store, "COFFEE")
        self.assertEqual([p.pid for p in found], [1001, 1002])
        self.assertEqual(
            [p.pid for p in await crud.search_products(self.store, "deli")], [1003]
        )
        self.assertEqual(await crud.search_products(self.store, "soda"), [])

    async def test_search_multiple_words(self):
        found = await crud.search_products(self.store, "ground coffee")
        # the exact phrase leads, then matches for each word, without repeats
        self.assertEqual([p.pid for p in found], [1002, 1001])

        found = await crud.search_products(self.store, "bread cheese")
        self.assertEqual([p.pid for p in found], [1005, 1003])


class UserCrudTestCase(StoreTestCase):
    async def register(self, name="Ana", email="ana@example.com", password="secret-1", role=Role.CASHIER):
        return await crud.register_user(self.store, name, email, password, role, rounds=4)

    async def test_register_and_lookup(self):
        self.assertFalse(await crud.has_users(self.store))
        user = await self.register(email="  Ana@Example.com ")
        self.assertTrue(await crud.has_users(self.store))
        self.assertEqual(user.email, "ana@example.com")
        self.assertTrue(user.is_active)
        self.assertNotEqual(user.password_hash, "secret-1")
        self.assertEqual(await crud.get_user(self.store, user.uid), user)
        self.assertEqual((await crud.find_user_by_email(self.store, "ANA@example.com")).uid, user.uid)
        self.assertIsNone(await crud.get_user(self.store, "user_missing"))

    async def test_register_duplicate_email(self):
        await self.register()
        with self.assertRaises(InvalidStateError):
            await self.register(name="Other", email="ANA@example.com")
        self.assertEqual(len(await crud.list_users(self.store)), 1)

    async def test_register_validation(self):
        with self.assertRaises(ValueError):
            await self.register(password="short")
        with self.assertRaises(ValueError):
            await self.register(name="  ")
        self.assertFalse(await crud.has_users(self.store))

    async def test_verify_credentials(self):
        user = await self.register()
        self.assertIsNone(user.last_login)

        verified = await crud.verify_credentials(self.store, "ana@example.com", "secret-1")
        self.assertEqual(verified.uid, user.uid)
        self.assertIsNotNone(verified.last_login)
        self.assertIsNotNone((await crud.get_user(self.store, user.uid)).last_login)

        self.assertIsNone(await crud.verify_credentials(self.store, "ana@example.com", "wrong"))
        self.assertIsNone(await crud.verify_credentials(self.store, "ghost@example.com", "secret-1"))

    async def test_set_user_active(self):
        user = await self.register()
        disabled = await crud.set_user_active(self.store, user.uid, False)
        self.assertFalse(disabled.is_active)
        self.assertFalse((await crud.get_user(self.store, user.uid)).is_active)
        with self.assertRaises(NotFoundError):
            await crud.set_user_active(self.store, "user_missing", True)

    def test_check_password_tolerates_bad_hashes(self):
        self.assertFalse(crud.check_password("pw", ""))
        self.assertFalse(crud.check_password("pw", "not-a-bcrypt-hash"))
        hashed = crud.hash_password("pw", rounds=4)
        self.assertTrue(crud.check_password("pw", hashed))
        self.assertFalse(crud.check_password("pW", hashed))


if __name__ == "__main__":
    unittest.main()
