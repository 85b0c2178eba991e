"""
Read-only access to a rendered video page.

The extractor never touches HTML directly; it asks a PageDocument for
text by CSS selector. HtmlPage answers those questions from saved page
HTML using BeautifulSoup, so the same extraction code can run against
a page saved from the browser or against a fixture in the tests.

Text Handling:
    - <br> elements become line breaks before any text is read
    - Text is joined without a separator, so inline elements keep their
      line structure: "<a>00:45</a> IU - Blueming" stays one line
"""

from pathlib import Path
from typing import Protocol

from bs4 import BeautifulSoup

from watermelon.core.exceptions import ExtractionError


class PageDocument(Protocol):
    """Lookup capability the extractor needs from a page."""

    @property
    def url(self) -> str: ...

    @property
    def title(self) -> str: ...

    def select_text(self, selector: str) -> str | None: ...

    def select_texts(self, selector: str) -> list[str]: ...

    def select_items(
        self,
        item_selector: str,
        field_selectors: dict[str, str]
    ) -> list[dict[str, str]]: ...


class HtmlPage:
    """
    PageDocument backed by a BeautifulSoup tree.

    Attributes:
        url: Address the HTML was loaded from (used for the playlist check
             and reported back in the extraction result).

    Example:
        page = HtmlPage.from_file(Path("watch.html"), "https://www.youtube.com/watch?v=abc")
        description = page.select_text("#description")
    """

    def __init__(self, html: str, url: str = "") -> None:
        self._url = url
        self._soup = BeautifulSoup(html, "html.parser")

        for br in self._soup.find_all("br"):
            br.replace_with("\n")

    @classmethod
    def from_file(cls, path: Path, url: str = "") -> "HtmlPage":
        """
        Load a saved page from disk.

        Raises:
            ExtractionError: If the file cannot be read.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                html = f.read()
        except OSError as e:
            raise ExtractionError(
                f"Failed to read page file: {e}",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e

        return cls(html, url)

    @property
    def url(self) -> str:
        return self._url

    @property
    def title(self) -> str:
        """Text of the <title> element, "" when there is none."""
        if self._soup.title is None:
            return ""
        return self._soup.title.get_text().strip()

    def select_text(self, selector: str) -> str | None:
        """Full text of the first element matching selector, or None."""
        element = self._soup.select_one(selector)
        if element is None:
            return None
        return element.get_text()

    def select_texts(self, selector: str) -> list[str]:
        """Stripped, non-empty texts of every element matching selector."""
        texts = []
        for element in self._soup.select(selector):
            text = element.get_text().strip()
            if text:
                texts.append(text)
        return texts

    def select_items(
        self,
        item_selector: str,
        field_selectors: dict[str, str]
    ) -> list[dict[str, str]]:
        """
        Read several fields from each element matching item_selector.

        Args:
            item_selector: Selector for the repeated container elements.
            field_selectors: Field name -> selector evaluated inside each
                             container.

        Returns:
            One dict per container, in document order. A field whose
            selector matches nothing maps to "".

        Example:
            page.select_items(
                "ytd-macro-markers-list-item-renderer",
                {"title": "#details h4", "time": "#time"}
            )
            -> [{"title": "Dynamite (feat. Someone)", "time": "12:03"}, ...]
        """
        items = []
        for element in self._soup.select(item_selector):
            item = {}
            for name, selector in field_selectors.items():
                field_element = element.select_one(selector)
                item[name] = field_element.get_text().strip() if field_element is not None else ""
            items.append(item)
        return items
