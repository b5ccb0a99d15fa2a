"""
Unit tests for listing normalization and identity keys.
"""

import unittest

from extractors.normalizer import (
    LISTING_FIELDS,
    Listing,
    absolute_url,
    digits_only,
    dig,
    format_price,
    identity_key,
    normalize_listing,
)


class TestHelpers(unittest.TestCase):
    """Test value coercion helpers."""

    def test_dig(self):
        data = {'media': {'photos': [{'url': {'medium': 'a.jpg'}}]}}

        self.assertEqual(dig(data, 'media', 'photos', 0, 'url', 'medium'), 'a.jpg')
        self.assertIsNone(dig(data, 'media', 'photos', 3, 'url'))
        self.assertIsNone(dig(data, 'media', 'heroImage', 'url'))
        self.assertIsNone(dig("not a dict", 'price'))

    def test_format_price(self):
        self.assertEqual(format_price(1250000), "$1,250,000")
        self.assertEqual(format_price(1250000.0), "$1,250,000")
        self.assertEqual(format_price("450000"), "$450,000")
        self.assertEqual(format_price("$2,400/mo"), "$2,400/mo")
        self.assertIsNone(format_price(None))
        self.assertIsNone(format_price(True))
        self.assertIsNone(format_price(10 ** 400))
        self.assertIsNone(format_price(float('nan')))
        self.assertIsNone(format_price(float('inf')))
        self.assertIsNone(format_price("1e400"))

    def test_digits_only(self):
        """Square footage keeps digits only."""
        self.assertEqual(digits_only("1,850 sqft"), "1850")
        self.assertEqual(digits_only("2,000 sq. ft."), "2000")
        self.assertEqual(digits_only(940), "940")
        self.assertIsNone(digits_only("sqft"))

    def test_absolute_url(self):
        self.assertEqual(absolute_url("/home/x--1"), "https://www.trulia.com/home/x--1")
        self.assertEqual(absolute_url("https://cdn.example.com/a.jpg"), "https://cdn.example.com/a.jpg")
        self.assertIsNone(absolute_url(""))


class TestNormalizeListing(unittest.TestCase):
    """Test mapping raw records onto Listing."""

    def test_always_thirteen_fields(self):
        """Every record has exactly the canonical keys."""
        for raw in [{}, {'price': 1}, {'unexpected': {'deep': [1, 2]}}, "not a dict", None]:
            with self.subTest(raw=raw):
                record = normalize_listing(raw).model_dump()
                self.assertEqual(len(record), 13)
                self.assertEqual(tuple(record), LISTING_FIELDS)

    def test_values_are_strings_or_none(self):
        raw = {
            'price': {'price': 500000},
            'bedrooms': {'value': 3},
            'bathrooms': {'value': 2.0},
            'floorSpace': {'value': 1200},
            'location': {'streetAddress': '1 Elm St', 'zipCode': 10001},
        }

        listing = normalize_listing(raw)

        for name, value in listing.model_dump().items():
            with self.subTest(field=name):
                self.assertTrue(value is None or isinstance(value, str))
        self.assertEqual(listing.baths, "2")
        self.assertEqual(listing.zip_code, "10001")

    def test_nested_before_flat(self):
        """The nested source wins when both are present."""
        raw = {
            'price': {'formattedPrice': '$700,000'},
            'location': {'streetAddress': '5 Nested Ave'},
            'address': '5 Flat Ave',
        }

        listing = normalize_listing(raw)

        self.assertEqual(listing.price, "$700,000")
        self.assertEqual(listing.address, "5 Nested Ave")

    def test_empty_values_skipped(self):
        """Blank strings fall through to the next accessor."""
        raw = {
            'location': {'streetAddress': '   ', 'formattedStreetLine': '7 Oak Ct'},
        }

        self.assertEqual(normalize_listing(raw).address, "7 Oak Ct")

    def test_full_location_parsed(self):
        raw = {'location': {'fullLocation': '9 Bay St, Staten Island, NY 10301'}}

        listing = normalize_listing(raw)

        self.assertEqual(listing.city, "Staten Island")
        self.assertEqual(listing.state, "NY")
        self.assertEqual(listing.zip_code, "10301")

    def test_flat_beds_label_stripped(self):
        self.assertEqual(normalize_listing({'beds': '4 Beds'}).beds, "4")
        self.assertEqual(normalize_listing({'baths': '1 Bath'}).baths, "1")

    def test_noise(self):
        self.assertTrue(normalize_listing({'beds': '2'}).is_noise())
        self.assertFalse(normalize_listing({'price': 100000}).is_noise())


class TestIdentityKey(unittest.TestCase):
    """Test the dedup key."""

    def test_url_preferred(self):
        listing = Listing(url="https://www.trulia.com/home/a--1", address="1 Main St")

        self.assertEqual(identity_key(listing), "https://www.trulia.com/home/a--1")

    def test_full_address_fallback(self):
        listing = Listing(address="1  Main St", city="Brooklyn", state="NY", zip_code="11201")

        self.assertEqual(identity_key(listing), "1 main st, brooklyn, ny 11201")

    def test_same_address_same_key(self):
        """Formatting differences in the address should not matter."""
        a = Listing(address="1 Main St", city="Brooklyn", state="NY")
        b = Listing(address="1 MAIN ST ", city="brooklyn", state="NY")

        self.assertEqual(identity_key(a), identity_key(b))

    def test_no_key(self):
        self.assertIsNone(identity_key(Listing(price="$1", city="Brooklyn")))


if __name__ == '__main__':
    unittest.main()
