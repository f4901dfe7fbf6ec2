from .playwright_page import PlaywrightPage
from .static_html_page import PageAction, StaticHtmlPage

__all__ = [
    "PlaywrightPage",
    "StaticHtmlPage",
    "PageAction",
]
