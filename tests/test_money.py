import unittest
from decimal import Decimal

from helpers import src_path  # noqa: F401  (puts src/ on sys.path)

from core import money
from core.errors import ErrorKind, InvalidQuantityError, MoneyOverflowError


class RoundingTestCase(unittest.TestCase):
    def test_round_half_up_away_from_zero(self):
        self.assertEqual(money.round_minor(Decimal("2.5")), 3)
        self.assertEqual(money.round_minor(Decimal("2.4999")), 2)
        self.assertEqual(money.round_minor(Decimal("-2.5")), -3)
        self.assertEqual(money.round_minor("0.5"), 1)

    def test_float_input_goes_through_its_repr(self):
        # Decimal(0.145) would be 0.14499999..., str() keeps it at 0.145
        self.assertEqual(money.round_minor(14.5), 15)
        self.assertEqual(money.multiply(100, 0.145), 15)

    def test_line_total_and_rate(self):
        self.assertEqual(money.line_total(1500, 2), 3000)
        self.assertEqual(money.line_total(1999, Decimal("0.333")), 666)  # 665.667
        self.assertEqual(money.apply_rate(3000, Decimal("0.13")), 390)
        self.assertEqual(money.apply_rate(5, Decimal("0.13")), 1)  # 0.65


class OverflowTestCase(unittest.TestCase):
    def test_add_overflow(self):
        with self.assertRaises(MoneyOverflowError) as ctx:
            money.add(money.MAX_MINOR, 1)
        self.assertIsInstance(ctx.exception, ArithmeticError)
        self.assertIs(ctx.exception.kind, ErrorKind.ARITHMETIC)

    def test_subtract_underflow(self):
        with self.assertRaises(MoneyOverflowError):
            money.subtract(money.MIN_MINOR, 1)

    def test_multiply_overflow(self):
        with self.assertRaises(OverflowError):
            money.multiply(money.MAX_MINOR, 2)

    def test_bounds_are_inclusive(self):
        self.assertEqual(money.add(money.MAX_MINOR - 1, 1), money.MAX_MINOR)
        self.assertEqual(money.check_range(money.MIN_MINOR), money.MIN_MINOR)


class ParseFormatTestCase(unittest.TestCase):
    def test_parse_quantity_accepts_decimal_comma(self):
        self.assertEqual(money.parse_quantity(" 1,5 "), Decimal("1.5"))
        self.assertEqual(money.parse_quantity("3"), Decimal(3))

    def test_parse_rejects_garbage(self):
        for text in ("", "abc", "1..2"):
            with self.subTest(text=text):
                with self.assertRaises(InvalidQuantityError):
                    money.parse_quantity(text)
        with self.assertRaises(InvalidQuantityError):
            money.to_decimal("NaN")
        with self.assertRaises(InvalidQuantityError):
            money.to_decimal(float("inf"))

    def test_parse_amount_major_to_minor(self):
        self.assertEqual(money.parse_amount("15.5"), 1550)
        self.assertEqual(money.parse_amount("15,505"), 1551)
        self.assertEqual(money.parse_amount("7", exponent=0), 7)

    def test_format_amount(self):
        self.assertEqual(money.format_amount(339000), "₡3,390.00")
        self.assertEqual(money.format_amount(5), "₡0.05")
        self.assertEqual(money.format_amount(-1250, "$"), "-$12.50")
        self.assertEqual(money.format_amount(1500, "¥", 0), "¥1,500")

    def test_is_integral(self):
        self.assertTrue(money.is_integral(Decimal("2.000")))
        self.assertFalse(money.is_integral(Decimal("2.5")))


if __name__ == "__main__":
    unittest.main()
