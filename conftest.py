"""Root pytest configuration."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before tests run
_root = Path(__file__).parent
load_dotenv(_root / ".env")
load_dotenv(_root / ".env.local", override=True)


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


SAMPLE_FILES = {
    "config.yml": "site_name: Test Directory\nitem_name: Tool\nitems_name: Tools\n",
    "categories/categories.yml": (
        "- id: ai\n  name: AI\n  icon_url: /icons/ai.svg\n"
        "- id: devtools\n  name: Developer Tools\n"
        "- id: unused\n  name: Unused\n"
    ),
    "categories/categories.fr.yml": "- id: ai\n  name: IA\n",
    "tags.yml": "- id: python\n  name: Python\n- id: open-source\n  name: Open Source\n",
    "data/alpha/alpha.yml": (
        "name: Alpha\n"
        "description: An AI assistant\n"
        "source_url: https://example.com/alpha\n"
        "category: [ai]\n"
        "tags: [python]\n"
        "featured: true\n"
        "updated_at: '2024-01-01 10:00'\n"
        "pricing: free\n"
    ),
    "data/alpha/alpha.fr.yml": "description: Un assistant IA\n",
    "data/alpha/alpha.md": "# Alpha\n\nEnglish body.\n",
    "data/alpha/alpha.fr.md": "# Alpha\n\nCorps en français.\n",
    "data/beta/beta.yml": (
        "name: Beta\n"
        "description: A linter\n"
        "source_url: https://example.com/beta\n"
        "category: [devtools]\n"
        "tags: [python, open-source]\n"
        "updated_at: '2024-03-01 09:30'\n"
    ),
    "data/gamma/gamma.yml": (
        "name: Gamma\n"
        "source_url: https://example.com/gamma\n"
        "category: ai\n"
        "updated_at: '2024-02-01 08:00'\n"
    ),
    "collections.yml": (
        "- id: starter\n"
        "  slug: starter-kit\n"
        "  name: Starter Kit\n"
        "  items: [beta, alpha, missing]\n"
        "- id: archived\n"
        "  name: Archived\n"
        "  is_active: false\n"
    ),
    "pages/about.md": "---\ntitle: About\n---\nAbout this directory.\n",
    "pages/about.fr.md": "---\ntitle: À propos\n---\nÀ propos de ce répertoire.\n",
    "pages/faq.md": "No frontmatter here.\n",
}


def write_content(root: Path, files: dict[str, str]) -> Path:
    """Write a content repository layout under root."""
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def content_root(tmp_path):
    """A mirrored content repository with items, taxonomies, collections and pages."""
    return write_content(tmp_path / "content", SAMPLE_FILES)
