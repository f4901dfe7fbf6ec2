from .html_snapshot import HtmlSnapshotParser, parse_html

__all__ = ["HtmlSnapshotParser", "parse_html"]
