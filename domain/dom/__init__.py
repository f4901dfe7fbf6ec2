"""Element tree used by the detection and injection services."""

from .node import TEXT_TAG, DomNode, NodePredicate, PageSnapshot, collapse_whitespace

__all__ = [
    "DomNode",
    "PageSnapshot",
    "NodePredicate",
    "TEXT_TAG",
    "collapse_whitespace",
]
