from __future__ import annotations

from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from leadwatch.config import SourceConfig
from leadwatch.errors import SourceError
from leadwatch.http import RequestManager
from leadwatch.models import LeadLink, RawRecord, RawStatus
from leadwatch.sources.base import Source
from leadwatch.utils import clean_text, content_fingerprint

STATUS_SELECTOR = "section > .text-content-muted > span[role=status]"
EMPHASIS_SELECTOR = ".text-body-emphasis"


class HtmlArticleSource(Source):
    def __init__(self, request_manager: RequestManager, leads_url: str, status_marker: str = "Waitlist") -> None:
        super().__init__("html_articles")
        self.request_manager = request_manager
        self.leads_url = leads_url
        self.status_marker = status_marker

    @classmethod
    def from_config(cls, config: SourceConfig) -> "HtmlArticleSource":
        auth = (config.username, config.password) if config.username and config.password else None
        manager = RequestManager(timeout_seconds=config.timeout_seconds, auth=auth)
        return cls(manager, config.leads_url, config.status_marker)

    def open(self) -> None:
        self.request_manager.open()
        super().open()
        self.logger.info("session opened for %s", self.leads_url)

    def close(self) -> None:
        self.request_manager.close()
        super().close()
        self.logger.info("session closed")

    def fetch(self) -> list[RawRecord]:
        html = self.request_manager.get_text(self.leads_url)
        try:
            return self.parse(html)
        except (AttributeError, TypeError, ValueError) as exc:
            raise SourceError(f"Could not parse leads page: {exc}") from exc

    def parse(self, html: str) -> list[RawRecord]:
        soup = BeautifulSoup(html, "html.parser")
        # Emphasis blocks are read page-wide and appended to every article's text.
        emphasis = " ".join(node.get_text(" ", strip=True) for node in soup.select(EMPHASIS_SELECTOR))

        records: list[RawRecord] = []
        for article in soup.find_all("article"):
            records.append(self._record(article, emphasis))
        self.logger.debug("parsed %d articles", len(records))
        return records

    def _record(self, article: Tag, emphasis: str) -> RawRecord:
        links = tuple(self._links(article))
        content = clean_text(article.get_text(" ", strip=True))

        if self._is_waitlisted(article):
            return RawRecord(
                id=self._identity(article, links, content),
                raw_status=RawStatus.WAITLISTED,
                links=links,
                content=content,
            )

        return RawRecord(
            id=self._identity(article, links, content),
            text=self._matching_text(article, emphasis),
            links=links,
            content=content,
        )

    def _is_waitlisted(self, article: Tag) -> bool:
        marker = article.select_one(STATUS_SELECTOR)
        return marker is not None and marker.get_text(strip=True) == self.status_marker

    @staticmethod
    def _matching_text(article: Tag, emphasis: str) -> str:
        parts: list[str] = []
        heading = article.find("h2")
        if heading is not None:
            parts.append(heading.get_text(" ", strip=True))
        parts.append(emphasis)
        parts.extend(node.get_text(" ", strip=True) for node in article.find_all("h4"))
        parts.extend(node.get_text(" ", strip=True) for node in article.select("h4 + p"))
        return " ".join(part for part in parts if part)

    def _links(self, article: Tag) -> list[LeadLink]:
        links: list[LeadLink] = []
        for anchor in article.find_all("a"):
            href = anchor.get("href")
            links.append(
                LeadLink(
                    href=urljoin(self.leads_url, href) if href else None,
                    text=anchor.get_text(" ", strip=True),
                )
            )
        return links

    @staticmethod
    def _identity(article: Tag, links: tuple[LeadLink, ...], content: str) -> str:
        native_id = (article.get("id") or "").strip()
        if native_id:
            return native_id
        if links and links[0].href:
            return links[0].href
        return content_fingerprint(str(article))
