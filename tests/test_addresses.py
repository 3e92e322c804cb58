import unittest

from flowtracer.core.addresses import encode_pubkey, is_valid_address, require_address, require_addresses
from flowtracer.core.errors import InvalidAddress

from helpers import addr


class AddressTests(unittest.TestCase):
    def test_valid_addresses(self) -> None:
        self.assertTrue(is_valid_address("11111111111111111111111111111111"))
        self.assertTrue(is_valid_address("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"))
        self.assertTrue(is_valid_address(addr(7)))

    def test_invalid_addresses(self) -> None:
        for bad in ("", "abc", "0x" + "a" * 40, "I" * 44, "1" * 31, None):
            self.assertFalse(is_valid_address(bad), bad)

    def test_require_strips_and_raises(self) -> None:
        self.assertEqual(require_address(f"  {addr(3)} "), addr(3))
        with self.assertRaises(InvalidAddress):
            require_address("nope")
        # InvalidAddress is also a ValueError
        with self.assertRaises(ValueError):
            require_address("nope")

    def test_require_addresses_dedupes_and_reports_all(self) -> None:
        self.assertEqual(require_addresses([addr(1), "", addr(2), addr(1)]), [addr(1), addr(2)])
        with self.assertRaises(InvalidAddress) as ctx:
            require_addresses([addr(1), "bad1", "bad2"])
        self.assertIn("bad1", str(ctx.exception))
        self.assertIn("bad2", str(ctx.exception))

    def test_encode_pubkey(self) -> None:
        self.assertEqual(encode_pubkey(bytes(32)), "1" * 32)
        with self.assertRaises(ValueError):
            encode_pubkey(b"\x01")


if __name__ == "__main__":
    unittest.main()
