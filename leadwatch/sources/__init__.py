from leadwatch.sources.base import Source
from leadwatch.sources.html_articles import HtmlArticleSource

__all__ = [
    "Source",
    "HtmlArticleSource",
]
