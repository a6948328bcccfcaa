# core/content/parser.py
"""Parse the mirrored content repository into a ContentSnapshot.

Repository layout:

    config.yml                      site config (optional)
    data/<slug>/<slug>.yml          item metadata
    data/<slug>/<slug>.<lang>.yml   translated fields, merged over the item
    data/<slug>/<slug>[.<lang>].md  item body (.mdx preferred over .md)
    categories/categories.yml       or categories.yml at the root
    categories/categories.<lang>.yml
    tags/tags.yml                   or tags.yml at the root
    collections.yml                 or collections/collections.yml
    pages/<slug>[.<lang>].md        static pages with YAML frontmatter

Parsing is synchronous file I/O; the content cache runs it in a worker thread.
"""

import logging
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .errors import ContentParseError
from .types import (
    Category,
    Collection,
    ContentSnapshot,
    Item,
    Page,
    Tag,
    TaxonomyRef,
)

logger = logging.getLogger(__name__)


UPDATED_AT_FORMAT = "%Y-%m-%d %H:%M"

ITEM_FIELDS = {
    "name",
    "slug",
    "description",
    "source_url",
    "category",
    "tags",
    "featured",
    "icon_url",
    "updated_at",
}

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)(.*)$", re.DOTALL)


class ContentParser:
    """Builds snapshots from the working copy at `root`."""

    def __init__(self, root: Path, default_locale: str = "en"):
        self.root = Path(root)
        self.default_locale = default_locale

    def parse(self, locale: str) -> ContentSnapshot:
        return parse_locale(self.root, locale, default_locale=self.default_locale)


def parse_locale(root: Path, locale: str, default_locale: str = "en") -> ContentSnapshot:
    """Parse every content type in the mirror for one locale.

    Raises:
        ContentParseError: If a file is malformed or missing required fields,
            or if reading the mirror fails in any other way
    """
    root = Path(root)
    try:
        return _parse_locale(root, locale, default_locale)
    except ContentParseError:
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error parsing content for locale '{locale}': {e}",
            exc_info=True,
        )
        raise ContentParseError(
            str(root), f"unexpected {type(e).__name__}: {e}"
        ) from e


def _parse_locale(root: Path, locale: str, default_locale: str) -> ContentSnapshot:
    translate = locale != default_locale

    site_config = _load_yaml(root / "config.yml", default={})
    if not isinstance(site_config, dict):
        raise ContentParseError(str(root / "config.yml"), "expected a mapping")

    categories = _read_taxonomy(root, "categories", locale if translate else None)
    tags = _read_taxonomy(root, "tags", locale if translate else None)
    items = _read_items(root, locale, translate, categories, tags)

    snapshot = ContentSnapshot(
        locale=locale,
        items=tuple(items),
        categories=tuple(
            Category(
                id=c["id"],
                name=c["name"],
                icon_url=c.get("icon_url"),
                count=c.get("count", 0),
            )
            for c in categories.values()
        ),
        tags=tuple(
            Tag(
                id=t["id"],
                name=t["name"],
                icon_url=t.get("icon_url"),
                count=t.get("count", 0),
            )
            for t in tags.values()
        ),
        collections=tuple(_read_collections(root, locale if translate else None)),
        pages=tuple(_read_pages(root, locale)),
        site_config=site_config,
    )
    logger.info(
        f"Parsed content for locale '{locale}': {snapshot.total} items, "
        f"{len(snapshot.categories)} categories, {len(snapshot.tags)} tags, "
        f"{len(snapshot.collections)} collections, {len(snapshot.pages)} pages"
    )
    return snapshot


# --- File helpers ---


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ContentParseError(str(path), f"not valid UTF-8: {e}")
    except OSError as e:
        raise ContentParseError(str(path), f"unreadable: {e.strerror or e}")


def _load_yaml(path: Path, default: Any = None) -> Any:
    """Load a YAML file, returning `default` if it doesn't exist."""
    if not path.exists():
        return default
    try:
        data = yaml.safe_load(_read_text(path))
    except yaml.YAMLError as e:
        raise ContentParseError(str(path), f"invalid YAML: {e}")
    return default if data is None else data


def _load_translation(path: Path) -> Any:
    """Load a translation overlay. Broken overlays fall back to the base text."""
    try:
        return _load_yaml(path)
    except ContentParseError as e:
        logger.warning(f"Ignoring translation {e.path}: {e.reason}")
        return None


# --- Taxonomies ---


def _read_taxonomy(root: Path, kind: str, locale: str | None) -> dict[str, dict]:
    """Read categories or tags into an ordered id -> dict mapping."""
    directory = root / kind
    use_dir = directory.is_dir()
    path = directory / f"{kind}.yml" if use_dir else root / f"{kind}.yml"

    entries = _load_yaml(path, default=[])
    if not isinstance(entries, list):
        raise ContentParseError(str(path), "expected a list")

    taxonomy: dict[str, dict] = {}
    for entry in entries:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ContentParseError(str(path), f"entry without an id: {entry!r}")
        entry_id = str(entry["id"])
        taxonomy[entry_id] = {
            **entry,
            "id": entry_id,
            "name": str(entry.get("name", entry_id)),
            "count": 0,
        }

    if use_dir and locale:
        translations = _load_translation(directory / f"{kind}.{locale}.yml")
        if isinstance(translations, list):
            for translation in translations:
                if not isinstance(translation, dict):
                    continue
                existing = taxonomy.get(str(translation.get("id")))
                if existing:
                    existing.update({k: v for k, v in translation.items() if k != "id"})

    return taxonomy


def _resolve_ref(value: Any, taxonomy: dict[str, dict], path: Path) -> TaxonomyRef:
    """Resolve a category/tag reference and bump its usage count."""
    if isinstance(value, dict):
        if "id" not in value:
            raise ContentParseError(str(path), f"reference without an id: {value!r}")
        ref_id = str(value["id"])
        name = str(value.get("name", ref_id))
    else:
        ref_id = str(value)
        name = ref_id

    entry = taxonomy.get(ref_id)
    if entry is None:
        taxonomy[ref_id] = {"id": ref_id, "name": name, "count": 1}
        return TaxonomyRef(id=ref_id, name=name)

    entry["count"] += 1
    return TaxonomyRef(id=ref_id, name=entry["name"])


# --- Items ---


def _parse_updated_at(value: Any, path: Path) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        # Keep everything naive so items sort against each other
        if value.tzinfo:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.strptime(str(value).strip(), UPDATED_AT_FORMAT)
    except ValueError:
        raise ContentParseError(
            str(path), f"updated_at {value!r} does not match YYYY-MM-DD HH:MM"
        )


def _parse_flag(value: Any, field: str, default: bool, path: Path) -> bool:
    """Read a YAML boolean; a missing or null value means `default`."""
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ContentParseError(
            str(path), f"'{field}' must be true or false, got {value!r}"
        )
    return value


def _find_body(base: Path, slug: str, locale: str) -> Path | None:
    candidates = [
        base / f"{slug}.{locale}.mdx",
        base / f"{slug}.{locale}.md",
        base / f"{slug}.mdx",
        base / f"{slug}.md",
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def _read_items(
    root: Path,
    locale: str,
    translate: bool,
    categories: dict[str, dict],
    tags: dict[str, dict],
) -> list[Item]:
    data_dir = root / "data"
    if not data_dir.is_dir():
        return []

    items = []
    for base in sorted(data_dir.iterdir()):
        if not base.is_dir() or base.name.startswith("."):
            continue
        slug = base.name
        meta_path = base / f"{slug}.yml"
        if not meta_path.is_file():
            raise ContentParseError(str(meta_path), "item metadata file is missing")

        meta = _load_yaml(meta_path, default={})
        if not isinstance(meta, dict):
            raise ContentParseError(str(meta_path), "expected a mapping")

        if translate:
            translation = _load_translation(base / f"{slug}.{locale}.yml")
            if isinstance(translation, dict):
                meta.update(translation)

        if not meta.get("name"):
            raise ContentParseError(str(meta_path), "missing required field 'name'")

        raw_categories = meta.get("category") or []
        if not isinstance(raw_categories, list):
            raw_categories = [raw_categories]
        raw_tags = meta.get("tags") or []
        if not isinstance(raw_tags, list):
            raise ContentParseError(str(meta_path), "'tags' must be a list")

        body_path = _find_body(base, slug, locale)

        items.append(
            Item(
                slug=slug,
                name=str(meta["name"]),
                description=str(meta.get("description") or ""),
                source_url=str(meta.get("source_url") or ""),
                categories=tuple(
                    _resolve_ref(c, categories, meta_path) for c in raw_categories
                ),
                tags=tuple(_resolve_ref(t, tags, meta_path) for t in raw_tags),
                updated_at=_parse_updated_at(meta.get("updated_at"), meta_path),
                featured=_parse_flag(
                    meta.get("featured"), "featured", False, meta_path
                ),
                icon_url=meta.get("icon_url"),
                body=_read_text(body_path) if body_path else None,
                extra={k: v for k, v in meta.items() if k not in ITEM_FIELDS},
            )
        )

    # Featured first, then most recently updated
    items.sort(key=lambda item: item.updated_at or datetime.min, reverse=True)
    items.sort(key=lambda item: not item.featured)
    return items


# --- Collections ---


def _read_collections(root: Path, locale: str | None) -> list[Collection]:
    directory = root / "collections"
    use_dir = directory.is_dir()
    path = directory / "collections.yml" if use_dir else root / "collections.yml"

    entries = _load_yaml(path, default=[])
    if not isinstance(entries, list):
        raise ContentParseError(str(path), "expected a list")

    overlays: dict[str, dict] = {}
    if use_dir and locale:
        translations = _load_translation(directory / f"collections.{locale}.yml")
        if isinstance(translations, list):
            overlays = {
                str(t["id"]): t
                for t in translations
                if isinstance(t, dict) and "id" in t
            }

    collections = []
    for entry in entries:
        if not isinstance(entry, dict) or not (entry.get("id") or entry.get("slug")):
            raise ContentParseError(str(path), f"collection without an id: {entry!r}")
        collection_id = str(entry.get("id") or entry["slug"])
        entry = {**entry, **overlays.get(collection_id, {})}

        refs = entry.get("items") or []
        if not isinstance(refs, list):
            raise ContentParseError(
                str(path), f"collection '{collection_id}': 'items' must be a list"
            )
        item_slugs = []
        for ref in refs:
            if isinstance(ref, dict):
                ref = ref.get("slug")
            if not isinstance(ref, (str, int)) or isinstance(ref, bool) or ref == "":
                raise ContentParseError(
                    str(path), f"collection '{collection_id}': bad item reference {ref!r}"
                )
            item_slugs.append(str(ref))

        collections.append(
            Collection(
                id=collection_id,
                slug=str(entry.get("slug") or collection_id),
                name=str(entry.get("name") or collection_id),
                description=str(entry.get("description") or ""),
                items=tuple(item_slugs),
                icon_url=entry.get("icon_url"),
                is_active=_parse_flag(entry.get("is_active"), "is_active", True, path),
            )
        )
    return collections


# --- Pages ---


def parse_frontmatter(content: str, path: Path) -> tuple[dict, str]:
    """Split a markdown file into (frontmatter dict, body)."""
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content
    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ContentParseError(str(path), f"invalid frontmatter: {e}")
    if not isinstance(metadata, dict):
        raise ContentParseError(str(path), "frontmatter must be a mapping")
    return metadata, match.group(2)


def _read_pages(root: Path, locale: str) -> list[Page]:
    pages_dir = root / "pages"
    if not pages_dir.is_dir():
        return []

    base_files: dict[str, Path] = {}
    localized_files: dict[str, Path] = {}
    for path in sorted(pages_dir.glob("*.md")):
        stem = path.stem
        if "." in stem:
            slug, suffix = stem.rsplit(".", 1)
            if suffix == locale:
                localized_files[slug] = path
            continue
        base_files[stem] = path

    pages = []
    for slug in sorted(set(base_files) | set(localized_files)):
        path = localized_files.get(slug) or base_files[slug]
        metadata, body = parse_frontmatter(_read_text(path), path)
        pages.append(
            Page(
                slug=slug,
                title=str(metadata.get("title") or slug),
                body=body,
                metadata=metadata,
            )
        )
    return pages
