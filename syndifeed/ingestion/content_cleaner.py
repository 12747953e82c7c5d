"""
Content Cleaner
===============

HTML cleaning for text copied out of upstream feeds.

This module provides:
- Full tag stripping for plain-text fields such as titles and group names
- Allowlist sanitization for body and summary markup
"""

import re
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Comment
from bs4.element import CData, ProcessingInstruction, Doctype, Declaration

from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


class ContentCleaner:
    """
    HTML content cleaner for syndicated items.

    Output is deterministic for a given input, so cleaned upstream content
    can be compared against what is already stored to detect edits.
    """

    # Removed together with their content
    DANGEROUS_ELEMENTS = frozenset(
        "script style noscript iframe frame frameset embed object applet "
        "form input button select textarea meta link base canvas svg".split()
    )

    # Kept as-is; any other element is unwrapped
    SAFE_ELEMENTS = frozenset(
        "p br hr div span h1 h2 h3 h4 h5 h6 "
        "strong b em i u s del ins sub sup abbr cite code pre blockquote q "
        "ul ol li dl dt dd "
        "table caption thead tbody tfoot tr th td "
        "figure figcaption a img".split()
    )

    # Attributes to keep for specific elements
    SAFE_ATTRIBUTES = {
        "a": ["href", "title", "rel"],
        "img": ["src", "alt", "title", "width", "height"],
        "abbr": ["title"],
        "blockquote": ["cite"],
        "q": ["cite"],
        "td": ["colspan", "rowspan"],
        "th": ["colspan", "rowspan", "scope"],
    }

    URL_ATTRIBUTES = {"href", "src", "cite"}
    ALLOWED_LINK_SCHEMES = {"http", "https", "mailto"}

    WHITESPACE_PATTERN = re.compile(r"\s+", re.MULTILINE)

    def __init__(self):
        self.logger = get_logger_for_component("content_cleaner")
        self.parser = "html.parser"

    def strip_all_tags(self, text: Optional[str]) -> str:
        """
        Remove every tag, dropping script and style content entirely.

        Args:
            text: Text that may contain markup

        Returns:
            Plain text with whitespace runs collapsed
        """
        if not text or not text.strip():
            return ""

        soup = BeautifulSoup(text, self.parser)
        for element in soup(["script", "style"]):
            element.decompose()

        plain = soup.get_text()
        return self.WHITESPACE_PATTERN.sub(" ", plain).strip()

    def sanitize_html(self, html_content: Optional[str]) -> str:
        """
        Keep only an allowlisted subset of markup.

        Dangerous elements are removed with their content, unknown elements
        are unwrapped, attributes outside the allowlist are dropped and links
        with a scheme other than http(s) or mailto are removed.

        Args:
            html_content: Raw HTML from the feed

        Returns:
            Sanitized HTML
        """
        if not html_content or not html_content.strip():
            return ""

        soup = BeautifulSoup(html_content, self.parser)

        self._remove_dangerous_elements(soup)
        self._remove_non_content_elements(soup)

        for element in soup.find_all(True):
            if element.name.lower() not in self.SAFE_ELEMENTS:
                element.unwrap()

        self._clean_attributes(soup)

        cleaned = str(soup).strip()
        self.logger.debug(f"Sanitized HTML: {len(html_content)} -> {len(cleaned)} chars")
        return cleaned

    def _remove_dangerous_elements(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(list(self.DANGEROUS_ELEMENTS)):
            element.decompose()

    def _remove_non_content_elements(self, soup: BeautifulSoup) -> None:
        """Remove comments, CDATA, doctype and processing instructions."""
        for element in soup.find_all(
            string=lambda text: isinstance(
                text, (Comment, CData, ProcessingInstruction, Doctype, Declaration)
            )
        ):
            element.extract()

    def _clean_attributes(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(True):
            element_name = element.name.lower()
            safe_attrs = self.SAFE_ATTRIBUTES.get(element_name, [])

            for attr_name in list(element.attrs):
                if attr_name.lower() not in safe_attrs:
                    del element[attr_name]

            for attr_name in self.URL_ATTRIBUTES & set(element.attrs):
                cleaned = self._clean_link(element.get(attr_name, ""))
                if cleaned:
                    element[attr_name] = cleaned
                else:
                    del element[attr_name]

            if element_name == "img" and "src" not in element.attrs:
                element.decompose()

    def _clean_link(self, value) -> str:
        """Return a safe link value, or "" if the link must go.

        Relative links are kept; absolute links must use an allowed scheme.
        """
        if not isinstance(value, str):
            return ""
        value = value.strip()
        if not value:
            return ""

        try:
            scheme = urlparse(value).scheme.lower()
        except ValueError:
            return ""

        if not scheme:
            return URLValidator.encode_unsafe(value)
        if scheme not in self.ALLOWED_LINK_SCHEMES:
            return ""
        if scheme == "mailto":
            return value
        return URLValidator.sanitize_url(value)


_cleaner: Optional[ContentCleaner] = None


def _get_cleaner() -> ContentCleaner:
    global _cleaner
    if _cleaner is None:
        _cleaner = ContentCleaner()
    return _cleaner


def strip_all_tags(text: Optional[str]) -> str:
    """Quick function to reduce markup to plain text."""
    return _get_cleaner().strip_all_tags(text)


def sanitize_html(html_content: Optional[str]) -> str:
    """Quick function to sanitize markup against the allowlist."""
    return _get_cleaner().sanitize_html(html_content)
