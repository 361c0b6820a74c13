import re
import unittest

from marketsync.canonical import is_better_price, market_slug, to_float


class MarketSlugTests(unittest.TestCase):
    def test_lowercases_and_hyphenates(self) -> None:
        self.assertEqual(
            market_slug("Will BTC close above $100k in 2025?"),
            "will-btc-close-above-100k-in-2025",
        )

    def test_collapses_whitespace_and_hyphens(self) -> None:
        self.assertEqual(market_slug("  Fed  --  cut\trates \n now "), "-fed-cut-rates-now-")

    def test_truncates_to_100_characters(self) -> None:
        slug = market_slug("word " * 60)
        self.assertEqual(len(slug), 100)

    def test_is_deterministic_and_restricted(self) -> None:
        question = "Élection présidentielle: qui gagne? (Round #2) final"
        first = market_slug(question)
        self.assertEqual(first, market_slug(question))
        self.assertRegex(first, re.compile(r"^[a-z0-9-]*$"))

    def test_empty_question(self) -> None:
        self.assertEqual(market_slug(""), "")


class PriceHelperTests(unittest.TestCase):
    def test_better_price_is_strictly_higher(self) -> None:
        self.assertTrue(is_better_price(0.6, 0.5))
        self.assertFalse(is_better_price(0.5, 0.5))
        self.assertFalse(is_better_price(0.4, 0.5))

    def test_missing_prices(self) -> None:
        self.assertTrue(is_better_price(0.1, None))
        self.assertFalse(is_better_price(None, 0.5))

    def test_to_float(self) -> None:
        self.assertEqual(to_float("0.25"), 0.25)
        self.assertIsNone(to_float(True))
        self.assertIsNone(to_float("n/a"))
        self.assertIsNone(to_float(float("nan")))


if __name__ == "__main__":
    unittest.main()
