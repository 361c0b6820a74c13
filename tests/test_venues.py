import json
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from marketsync.models import MarketStatus
from marketsync.venues import PROFILES
from marketsync.venues.base import PriceErrorAction, VenueError
from marketsync.venues.limitless import LimitlessClient, from_base_units
from marketsync.venues.manifold import ManifoldClient
from marketsync.venues.opinion import OpinionClient
from marketsync.venues.polymarket import PolymarketClient


class FakeTransport:
    """Stands in for get_json: maps URL suffixes to (payload, status)."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, url, params=None, headers=None, timeout=10.0):
        self.requests.append((url, params, headers))
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                return response
        return None, 404


class PolymarketTests(unittest.IsolatedAsyncioTestCase):
    def test_normalize_gamma_market(self) -> None:
        market = PolymarketClient.normalize(
            {
                "id": "12345",
                "question": "Will the Fed cut rates in March?",
                "slug": "fed-cut-march",
                "outcomePrices": json.dumps(["0.62", "0.38"]),
                "clobTokenIds": json.dumps(["111", "222"]),
                "volumeNum": 1500.5,
                "liquidityNum": "320",
                "bestBid": 0.61,
                "bestAsk": 0.63,
                "endDate": "2026-03-20T00:00:00Z",
                "active": True,
                "closed": False,
            }
        )
        self.assertEqual(market.external_id, "12345")
        self.assertAlmostEqual(market.yes_price, 0.62)
        self.assertAlmostEqual(market.no_price, 0.38)
        self.assertEqual(market.volume, 1500.5)
        self.assertEqual(market.liquidity, 320.0)
        self.assertEqual(market.status, MarketStatus.ACTIVE)
        self.assertEqual(market.url, "https://polymarket.com/market/fed-cut-march")
        self.assertEqual(market.platform_data["clob_token_ids"], ["111", "222"])

    def test_closed_market_status(self) -> None:
        market = PolymarketClient.normalize({"id": "1", "question": "Q", "closed": True})
        self.assertEqual(market.status, MarketStatus.CLOSED)
        self.assertFalse(market.is_active)

    async def test_list_markets_sends_paging_params(self) -> None:
        transport = FakeTransport({"/markets": ([{"id": "1", "question": "Q"}], 200)})
        client = PolymarketClient("https://gamma.example", "https://clob.example")
        with patch("marketsync.venues.base.get_json", transport):
            markets = await client.list_markets(limit=50, offset=100)

        self.assertEqual(len(markets), 1)
        url, params, _ = transport.requests[0]
        self.assertEqual(url, "https://gamma.example/markets")
        self.assertEqual(params["limit"], 50)
        self.assertEqual(params["offset"], 100)
        self.assertEqual(params["closed"], "false")

    async def test_prices_come_from_clob_for_both_tokens(self) -> None:
        responses = {"111": ({"price": "0.55"}, 200), "222": ({"price": "0.47"}, 200)}

        def transport(url, params=None, headers=None, timeout=10.0):
            self.assertTrue(url.startswith("https://clob.example/price"))
            return responses[params["token_id"]]

        client = PolymarketClient("https://gamma.example", "https://clob.example")
        with patch("marketsync.venues.base.get_json", transport):
            quote = await client.get_prices(
                {"external_id": "1", "platform_data": {"clob_token_ids": ["111", "222"]}}
            )

        self.assertAlmostEqual(quote.yes_price, 0.55)
        self.assertAlmostEqual(quote.no_price, 0.47)
        self.assertAlmostEqual(quote.spread, 0.02)

    async def test_http_error_carries_status_code(self) -> None:
        client = PolymarketClient("https://gamma.example", "https://clob.example")
        with patch("marketsync.venues.base.get_json", return_value=({"error": "x"}, 500)):
            with self.assertRaises(VenueError) as ctx:
                await client.list_markets(limit=10, offset=0)
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_missing_market_is_none(self) -> None:
        client = PolymarketClient("https://gamma.example", "https://clob.example")
        with patch("marketsync.venues.base.get_json", return_value=(None, 404)):
            self.assertIsNone(await client.get_market("nope"))


class LimitlessTests(unittest.IsolatedAsyncioTestCase):
    def test_profile_classifies_price_errors(self) -> None:
        profile = PROFILES["limitless"]
        self.assertEqual(profile.classify_price_error(VenueError("x", 404)), PriceErrorAction.DELIST)
        self.assertEqual(profile.classify_price_error(VenueError("x", 400)), PriceErrorAction.IGNORE)
        self.assertIsNone(profile.classify_price_error(VenueError("x", 500)))
        self.assertIsNone(profile.classify_price_error(RuntimeError("x")))
        self.assertTrue(profile.promotes_best_price)
        self.assertTrue(profile.skip_closed)
        self.assertIsNone(PROFILES["polymarket"].classify_price_error(VenueError("x", 404)))
        self.assertEqual(PROFILES["opinion"].max_page_size, 20)
        self.assertIsNone(PROFILES["polymarket"].max_page_size)

    def test_normalize_converts_micro_usdc(self) -> None:
        market = LimitlessClient.normalize(
            {
                "slug": "eth-above-4000",
                "title": "ETH above $4000 on Friday?",
                "prices": [0.3, 0.7],
                "volume": "2500000",
                "liquidity": 1000000,
                "status": "FUNDED",
                "expirationTimestamp": 1769007600000,
                "categories": ["Crypto"],
                "tokens": {"yes": "9", "no": "10"},
            }
        )
        self.assertEqual(market.external_id, "eth-above-4000")
        self.assertAlmostEqual(market.volume, 2.5)
        self.assertAlmostEqual(market.liquidity, 1.0)
        self.assertEqual(market.status, MarketStatus.ACTIVE)
        self.assertEqual(market.category, "Crypto")
        self.assertTrue(market.closes_at.startswith("2026-01-21"))
        self.assertEqual(market.platform_data["yes_token_id"], "9")

    def test_status_mapping(self) -> None:
        resolved = LimitlessClient.normalize({"slug": "s", "title": "T", "status": "RESOLVED"})
        expired = LimitlessClient.normalize({"slug": "s", "title": "T", "status": "WEIRD", "expired": True})
        self.assertEqual(resolved.status, MarketStatus.RESOLVED)
        self.assertEqual(expired.status, MarketStatus.CLOSED)

    def test_from_base_units(self) -> None:
        self.assertEqual(from_base_units(None), 0.0)
        self.assertAlmostEqual(from_base_units("1500000"), 1.5)
        self.assertAlmostEqual(from_base_units(10**18, decimals=18), 1.0)

    async def test_orderbook_midpoint(self) -> None:
        book = {
            "bids": [{"price": 0.40, "size": 10}, {"price": 0.42, "size": 5}],
            "asks": [{"price": 0.48, "size": 3}, {"price": 0.46, "size": 8}],
        }
        transport = FakeTransport({"/markets/eth/orderbook": (book, 200)})
        client = LimitlessClient("https://limitless.example")
        with patch("marketsync.venues.base.get_json", transport):
            quote = await client.get_prices({"external_id": "eth", "platform_data": {}})

        self.assertAlmostEqual(quote.yes_price, 0.44)
        self.assertAlmostEqual(quote.no_price, 0.56)
        self.assertAlmostEqual(quote.spread, 0.04)

    async def test_adjusted_midpoint_wins(self) -> None:
        transport = FakeTransport({"/orderbook": ({"adjustedMidpoint": 0.3, "bids": [], "asks": []}, 200)})
        client = LimitlessClient("https://limitless.example")
        with patch("marketsync.venues.base.get_json", transport):
            quote = await client.get_prices({"external_id": "eth", "platform_data": {"slug": "eth"}})
        self.assertAlmostEqual(quote.yes_price, 0.3)

    async def test_orderbook_errors_keep_status(self) -> None:
        client = LimitlessClient("https://limitless.example")
        with patch("marketsync.venues.base.get_json", return_value=({"message": "resolved"}, 400)):
            with self.assertRaises(VenueError) as ctx:
                await client.get_prices({"external_id": "done", "platform_data": {}})
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_list_markets_uses_pages(self) -> None:
        transport = FakeTransport(
            {"/markets/active": ({"data": [{"slug": "a", "title": "A"}], "totalMarketsCount": 1}, 200)}
        )
        client = LimitlessClient("https://limitless.example")
        with patch("marketsync.venues.base.get_json", transport):
            markets = await client.list_markets(limit=25, offset=50)
        self.assertEqual([m.external_id for m in markets], ["a"])
        self.assertEqual(transport.requests[0][1], {"page": 3})


class ManifoldTests(unittest.IsolatedAsyncioTestCase):
    def test_normalize_binary_market(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        market = ManifoldClient.normalize(
            {
                "id": "abc",
                "slug": "will-it-snow",
                "question": "Will it snow?",
                "creatorUsername": "alice",
                "probability": 0.25,
                "pool": {"YES": 30, "NO": 70},
                "volume": 42,
                "isResolved": False,
                "closeTime": int(datetime(2027, 1, 1, tzinfo=timezone.utc).timestamp() * 1000),
                "groupSlugs": ["weather"],
            },
            now=now,
        )
        self.assertAlmostEqual(market.yes_price, 0.25)
        self.assertAlmostEqual(market.no_price, 0.75)
        self.assertEqual(market.liquidity, 100.0)
        self.assertEqual(market.url, "https://manifold.markets/alice/will-it-snow")
        self.assertEqual(market.status, MarketStatus.ACTIVE)
        self.assertEqual(market.category, "weather")

    def test_closed_and_resolved(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        closed = ManifoldClient.normalize(
            {"id": "a", "question": "Q", "isResolved": False, "closeTime": 1000}, now=now
        )
        resolved = ManifoldClient.normalize(
            {"id": "b", "question": "Q", "isResolved": True, "resolution": "YES", "resolutionTime": 1000},
            now=now,
        )
        self.assertEqual(closed.status, MarketStatus.CLOSED)
        self.assertEqual(resolved.status, MarketStatus.RESOLVED)
        self.assertEqual(resolved.resolution, "YES")
        self.assertIsNotNone(resolved.resolved_at)


class OpinionTests(unittest.IsolatedAsyncioTestCase):
    async def test_envelope_is_unwrapped(self) -> None:
        payload = {
            "code": 0,
            "msg": "ok",
            "result": {
                "list": [
                    {
                        "marketId": "77",
                        "title": "Will BNB flip SOL?",
                        "status": "ACTIVE",
                        "volume": 900,
                        "outcomes": [
                            {"tokenId": "t1", "title": "YES", "price": 0.2},
                            {"tokenId": "t2", "title": "NO", "price": 0.8},
                        ],
                    }
                ]
            },
        }
        transport = FakeTransport({"/market": (payload, 200)})
        client = OpinionClient("https://opinion.example", api_key="secret")
        with patch("marketsync.venues.base.get_json", transport):
            markets = await client.list_markets(limit=100, offset=40)

        self.assertEqual(markets[0].external_id, "77")
        self.assertAlmostEqual(markets[0].yes_price, 0.2)
        self.assertEqual(markets[0].platform_data["token_ids"], ["t1", "t2"])
        _, params, headers = transport.requests[0]
        self.assertEqual(params, {"page": 3, "limit": 20, "status": "ACTIVE"})
        self.assertEqual(headers["apikey"], "secret")

    async def test_error_code_raises(self) -> None:
        client = OpinionClient("https://opinion.example")
        with patch("marketsync.venues.base.get_json", return_value=({"code": 10001, "msg": "bad key"}, 200)):
            with self.assertRaises(VenueError) as ctx:
                await client.list_markets(limit=20, offset=0)
        self.assertIn("bad key", str(ctx.exception))

    def test_status_mapping(self) -> None:
        paused = OpinionClient.normalize({"marketId": "1", "title": "T", "status": "PAUSED"})
        voided = OpinionClient.normalize({"marketId": "2", "title": "T", "status": "voided"})
        self.assertEqual(paused.status, MarketStatus.CLOSED)
        self.assertEqual(voided.status, MarketStatus.CANCELLED)


if __name__ == "__main__":
    unittest.main()
