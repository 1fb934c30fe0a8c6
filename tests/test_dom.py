"""Tests for the markup helpers."""

import unittest

from adlib_harvester.dom import (
    DEFAULT_PLACEHOLDER_SIGNATURES,
    PlaceholderPolicy,
    closest,
    first_text,
    image_source,
    parse_html,
    select_first,
    srcset_candidates,
    structured_text,
    text_with_links,
)

BASE = "https://www.linkedin.com/ad-library/detail/1"
GHOST = next(iter(DEFAULT_PLACEHOLDER_SIGNATURES))


class TestSelectors(unittest.TestCase):
    """Verify ordered selector cascades."""

    def test_first_selector_that_matches(self):
        """select_first should honour selector order, not document order."""
        doc = parse_html('<p class="b">second</p><p class="a">first</p>')
        self.assertEqual(select_first(doc, (".a", ".b")).get_text(), "first")
        self.assertIsNone(select_first(doc, (".c",)))

    def test_first_text_skips_empty(self):
        """Elements with only whitespace should not count as a match."""
        doc = parse_html('<p class="a">  </p><p class="b">text</p>')
        self.assertEqual(first_text(doc, (".a", ".b")), "text")

    def test_closest(self):
        """closest should find the nearest ancestor carrying every class."""
        doc = parse_html('<div class="flex items-center"><div class="flex"><a>x</a></div></div>')
        self.assertEqual(closest(doc.a, ("flex", "items-center")).get("class"), ["flex", "items-center"])


class TestText(unittest.TestCase):
    """Verify text flattening."""

    def test_links_keep_their_text(self):
        """Anchors become their text and <br> becomes a newline."""
        doc = parse_html('<div>Visit <a href="https://x">our site</a><br>now</div>')
        self.assertEqual(text_with_links(doc.div), "Visit our site\nnow")

    def test_text_with_links_leaves_original(self):
        """Flattening should work on a copy."""
        doc = parse_html('<div>Visit <a href="https://x">site</a></div>')
        text_with_links(doc.div)
        self.assertIsNotNone(doc.div.a)

    def test_structured_text_bullets(self):
        """List items should be bulleted on their own lines."""
        doc = parse_html("<div><p>Hello</p><ul><li>One</li><li>Two</li></ul></div>")
        text = structured_text(doc.div)
        self.assertTrue(text.startswith("Hello\n"))
        self.assertIn("* One\n", text)
        self.assertTrue(text.endswith("* Two"))


class TestImages(unittest.TestCase):
    """Verify the image attribute cascade and the placeholder policy."""

    def test_lazy_attribute_used(self):
        """A missing src should fall back to the lazy-load attribute."""
        img = parse_html('<img data-delayed-url="/media/a.jpg">').img
        self.assertEqual(image_source(img, BASE), "https://www.linkedin.com/media/a.jpg")

    def test_placeholder_without_alt_dropped(self):
        """A known placeholder with empty alt is treated as no image."""
        img = parse_html(f'<img src="{GHOST}" alt="">').img
        self.assertIsNone(image_source(img, BASE, PlaceholderPolicy()))

    def test_placeholder_with_alt_kept(self):
        """A described image is kept even when its URL is a known placeholder."""
        img = parse_html(f'<img src="{GHOST}" alt="Team photo">').img
        self.assertEqual(image_source(img, BASE, PlaceholderPolicy()), GHOST)

    def test_onerror_flag_drops_placeholder(self):
        """The onerror class marks a placeholder regardless of alt text."""
        img = parse_html(f'<img class="onerror" src="{GHOST}" alt="Team photo">').img
        self.assertIsNone(image_source(img, BASE, PlaceholderPolicy()))

    def test_configured_signatures(self):
        """Extra signatures extend the defaults."""
        policy = PlaceholderPolicy.from_signatures(["https://cdn.example/blank.gif"])
        img = parse_html('<img src="https://cdn.example/blank.gif">').img
        self.assertTrue(policy.is_placeholder(img, img["src"], BASE))
        self.assertIn(GHOST, policy.signatures)

    def test_srcset(self):
        """srcset candidates keep their URLs in order without descriptors."""
        img = parse_html('<img srcset="/a.jpg 1x, /b.jpg 2x">').img
        self.assertEqual(srcset_candidates(img), ["/a.jpg", "/b.jpg"])


if __name__ == "__main__":
    unittest.main()
