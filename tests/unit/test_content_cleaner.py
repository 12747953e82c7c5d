"""
Tests for Content Cleaner
=========================

Tag stripping for plain-text fields and allowlist sanitization for markup.
"""

import pytest

from syndifeed.ingestion.content_cleaner import ContentCleaner, sanitize_html, strip_all_tags


class TestStripAllTags:
    """Test plain-text reduction."""

    @pytest.fixture
    def cleaner(self):
        return ContentCleaner()

    def test_removes_markup(self, cleaner):
        assert cleaner.strip_all_tags("<b>Hello</b> <i>World</i>") == "Hello World"

    def test_drops_script_and_style_content(self, cleaner):
        text = "Title<script>alert(1)</script><style>p { color: red }</style>"
        assert cleaner.strip_all_tags(text) == "Title"

    def test_collapses_whitespace(self, cleaner):
        assert cleaner.strip_all_tags("  Multi\n   line\ttitle  ") == "Multi line title"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_input(self, cleaner, value):
        assert cleaner.strip_all_tags(value) == ""

    def test_entities_decoded(self, cleaner):
        assert cleaner.strip_all_tags("Fish &amp; Chips") == "Fish & Chips"

    def test_module_helper(self):
        assert strip_all_tags("<em>WordPress</em> 6.5") == "WordPress 6.5"


class TestSanitizeHtml:
    """Test allowlist sanitization."""

    @pytest.fixture
    def cleaner(self):
        return ContentCleaner()

    def test_keeps_safe_markup(self, cleaner):
        html = "<p>Hello <strong>there</strong></p>"
        assert cleaner.sanitize_html(html) == html

    def test_removes_dangerous_elements_with_content(self, cleaner):
        html = '<p onclick="steal()">Hi <script>bad()</script><b>there</b></p>'
        assert cleaner.sanitize_html(html) == "<p>Hi <b>there</b></p>"

    def test_unwraps_unknown_elements(self, cleaner):
        assert cleaner.sanitize_html('<font color="red">text</font>') == "text"

    def test_strips_disallowed_attributes(self, cleaner):
        html = '<a href="https://example.com/" style="color:red" title="t">x</a>'
        assert cleaner.sanitize_html(html) == '<a href="https://example.com/" title="t">x</a>'

    def test_drops_javascript_links(self, cleaner):
        assert cleaner.sanitize_html('<a href="javascript:alert(1)">x</a>') == "<a>x</a>"

    def test_keeps_relative_and_mailto_links(self, cleaner):
        assert cleaner.sanitize_html('<a href="/about">About</a>') == '<a href="/about">About</a>'
        assert (
            cleaner.sanitize_html('<a href="mailto:hi@example.com">Mail</a>')
            == '<a href="mailto:hi@example.com">Mail</a>'
        )

    def test_removes_images_without_safe_source(self, cleaner):
        assert cleaner.sanitize_html('<img src="data:image/png;base64,AAAA" alt="a">') == ""

    def test_removes_comments(self, cleaner):
        assert cleaner.sanitize_html("<p>a<!-- hidden --></p>") == "<p>a</p>"

    @pytest.mark.parametrize("value", [None, "", "  \n "])
    def test_empty_input(self, cleaner, value):
        assert cleaner.sanitize_html(value) == ""

    def test_output_is_deterministic(self, cleaner):
        html = '<div class="x"><p>One <a href="https://example.com/a b">link</a></p><iframe src="x"></iframe></div>'
        first = cleaner.sanitize_html(html)
        assert first == ContentCleaner().sanitize_html(html)
        assert "iframe" not in first
        assert 'href="https://example.com/a%20b"' in first

    def test_module_helper(self):
        assert sanitize_html("<p>ok<script>x</script></p>") == "<p>ok</p>"
