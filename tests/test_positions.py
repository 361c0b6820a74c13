import os
import tempfile
import unittest

from marketsync.positions import load_positions, unsupported_chains

POSITIONS_YAML = """
positions:
  - market_id: "0xabc"
    market_slug: fed-cut-march
    venue: polymarket
    outcome: "YES"
    contract_address: "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
    token_id: "71321045679252212594626385532706912750332728571942532289631379312455583992563"
    chain_id: 137
    decimals: 6
    question: Will the Fed cut rates in March?
    current_price: 0.62
  - market_id: eth-above-4000
    venue: limitless
    outcome: "NO"
    contract_address: "0xC9c98965297Bc527861c898329Ee280632B76e18"
    token_id: 0x1f
    chain_id: 8453
"""


class LoadPositionsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, text: str) -> str:
        path = os.path.join(self._tmp.name, "positions.yaml")
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)
        return path

    def test_loads_descriptors(self) -> None:
        positions = load_positions(self._write(POSITIONS_YAML))

        self.assertEqual(len(positions), 2)
        first, second = positions
        self.assertEqual(
            first.token_id,
            71321045679252212594626385532706912750332728571942532289631379312455583992563,
        )
        self.assertEqual(first.decimals, 6)
        self.assertEqual(first.current_price, 0.62)
        self.assertEqual(second.market_slug, "eth-above-4000")
        self.assertEqual(second.token_id, 31)
        self.assertEqual(second.decimals, 18)
        self.assertIsNone(second.current_price)

    def test_bare_list_is_accepted(self) -> None:
        text = """
- market_id: m1
  venue: polymarket
  outcome: "YES"
  contract_address: "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
  token_id: 5
  chain_id: 137
"""
        positions = load_positions(self._write(text))
        self.assertEqual([p.market_id for p in positions], ["m1"])

    def test_missing_field_is_rejected(self) -> None:
        text = """
positions:
  - market_id: m1
    venue: polymarket
    outcome: "YES"
    token_id: 5
    chain_id: 137
"""
        with self.assertRaisesRegex(ValueError, "contract_address"):
            load_positions(self._write(text))

    def test_file_without_positions(self) -> None:
        with self.assertRaises(ValueError):
            load_positions(self._write("wallet: 0xdead\n"))

    def test_unsupported_chains_are_reported(self) -> None:
        text = POSITIONS_YAML + """
  - market_id: bnb-flip
    venue: opinion
    outcome: "YES"
    contract_address: "0x1111111111111111111111111111111111111111"
    token_id: 9
    chain_id: 56
"""
        with self.assertLogs("marketsync.positions", level="WARNING") as logs:
            positions = load_positions(self._write(text))

        self.assertEqual(len(positions), 3)
        self.assertEqual(unsupported_chains(positions), {56})
        self.assertIn("56", logs.output[0])


if __name__ == "__main__":
    unittest.main()
