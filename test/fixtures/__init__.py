"""Test fixtures for integration and unit tests."""

from pathlib import Path

_FIXTURES_DIR = Path(__file__).parent


def fixture_path(*parts: str) -> Path:
    """Resolve a path relative to the test/fixtures/ directory."""
    return _FIXTURES_DIR.joinpath(*parts)


def load_page(name: str) -> str:
    """HTML of one of the sample pages under test/fixtures/pages/."""
    return fixture_path("pages", name).read_text(encoding="utf-8")
