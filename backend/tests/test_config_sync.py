from pathlib import Path

import pytest

from placeholder_media.core.config import Settings
from placeholder_media.core.errors import ConfigSyncError, MarkerNotFoundError
from placeholder_media.schemas.media import AssetDescriptor
from placeholder_media.services import config_sync
from placeholder_media.services.registry import MediaRegistry

MARKER = "export const IMAGE_ASSETS: Record<string, ImageAsset> = "

MODULE_SOURCE = (
    "// Hand-maintained header\n"
    "import type { ImageAsset } from './types';\n"
    "\n"
    f"{MARKER}{{\n"
    "  heroMain: {\n"
    "    id: 'hero/main-img',\n"
    "    kind: 'image',\n"
    "    description: 'Front page {banner}',\n"
    "    defaultOptions: { width: 1200, quality: 'auto' }\n"
    "  },\n"
    "};\n"
    "\n"
    "export function getImageAsset(key: string): ImageAsset | undefined {\n"
    "  return IMAGE_ASSETS[key];\n"
    "}\n"
)


@pytest.fixture
def module_file(tmp_path: Path) -> Path:
    path = tmp_path / "media-assets.ts"
    path.write_text(MODULE_SOURCE, encoding="utf-8")
    return path


def test_module_store_loads_generated_region(module_file: Path) -> None:
    assets = config_sync.ModuleRegistryStore(module_file, MARKER).load()

    assert list(assets) == ["heroMain"]
    assert assets["heroMain"].id == "hero/main-img"
    assert assets["heroMain"].description == "Front page {banner}"
    assert assets["heroMain"].default_options.width == 1200


def test_persist_splices_only_the_generated_region(module_file: Path) -> None:
    store = config_sync.ModuleRegistryStore(module_file, MARKER)
    snapshot = {
        "team-lead": AssetDescriptor(id="team/headshots/lead", area="team", description="Jane's portrait"),
        "heroMain": AssetDescriptor(id="hero/main-img"),
    }

    store.persist(snapshot)

    text = module_file.read_text(encoding="utf-8")
    head, _, rest = MODULE_SOURCE.partition(MARKER)
    assert text.startswith(head + MARKER + "{")
    assert text.endswith(";\n\nexport function getImageAsset(key: string): ImageAsset | undefined {\n  return IMAGE_ASSETS[key];\n}\n")
    assert "['team-lead']: {" in text
    assert "  heroMain: {" in text
    assert "'Jane\\'s portrait'" in text
    assert '"' not in text.partition(MARKER)[2].partition("};")[0]
    assert store.load() == snapshot


def test_missing_marker_leaves_file_untouched(tmp_path: Path) -> None:
    path = tmp_path / "media-assets.ts"
    original = "export const OTHER_ASSETS = {\n  a: 1,\n};\n".encode("utf-8")
    path.write_bytes(original)
    store = config_sync.ModuleRegistryStore(path, MARKER)

    with pytest.raises(MarkerNotFoundError):
        store.persist({"hero": AssetDescriptor(id="hero/x")})

    assert path.read_bytes() == original
    assert [entry.name for entry in tmp_path.iterdir()] == ["media-assets.ts"]


def test_registry_reports_marker_drift_as_failure(tmp_path: Path) -> None:
    path = tmp_path / "media-assets.ts"
    original = b"// generated region removed by hand\n"
    path.write_bytes(original)
    registry = MediaRegistry(config_sync.ModuleRegistryStore(path, MARKER))

    result = registry.update("hero.main", {"id": "hero/x"})

    assert result.success is False
    assert result.code == "persistence_error"
    assert path.read_bytes() == original


@pytest.mark.parametrize(
    "source",
    [
        f"{MARKER}[];\n",
        f"{MARKER}{{\n  a: {{ id: 'x' }},\n",
    ],
)
def test_find_region_rejects_malformed_regions(source: str) -> None:
    with pytest.raises(MarkerNotFoundError):
        config_sync.find_region(source, MARKER)


def test_find_region_ignores_braces_inside_strings() -> None:
    source = f"{MARKER}{{ a: '}}', b: \"{{\" }};\nconst after = {{}};\n"

    start, end = config_sync.find_region(source, MARKER)

    assert source[start:end] == "{ a: '}', b: \"{\" }"


def test_find_region_ignores_quotes_and_braces_inside_comments() -> None:
    source = (
        f"{MARKER}{{\n"
        "  // hero's banner {\n"
        "  a: { id: 'x' }, /* don't } touch */\n"
        "};\nconst after = {};\n"
    )

    start, end = config_sync.find_region(source, MARKER)

    assert source[start:end].endswith("touch */\n}")
    assert source[end:] == ";\nconst after = {};\n"


def test_find_region_rejects_unterminated_block_comment() -> None:
    with pytest.raises(MarkerNotFoundError):
        config_sync.find_region(f"{MARKER}{{ a: 1 /* open\n", MARKER)


def test_commented_region_loads_and_persists(tmp_path: Path) -> None:
    path = tmp_path / "media-assets.ts"
    tail = "\nexport const AFTER = { b: 1 };\n"
    path.write_text(
        f"{MARKER}{{\n"
        "  // hero's banner\n"
        "  heroMain: { id: 'hero/main-img' },\n"
        "  /* team's } block */\n"
        "  teamLead: { id: 'team/lead', area: 'team' },\n"
        f"}};{tail}",
        encoding="utf-8",
    )
    store = config_sync.ModuleRegistryStore(path, MARKER)

    assets = store.load()
    assert list(assets) == ["heroMain", "teamLead"]
    assert assets["teamLead"].area == "team"

    store.persist({**assets, "gallery": AssetDescriptor(id="gallery/one")})

    text = path.read_text(encoding="utf-8")
    assert text.endswith(f"}};{tail}")
    assert sorted(store.load()) == ["gallery", "heroMain", "teamLead"]


def test_render_literal_quotes_keys_that_are_not_identifiers() -> None:
    rendered = config_sync.render_literal({"plain": True, "with-dash": None, "with.dot": [1, 2.5], "empty": {}})

    assert rendered == (
        "{\n"
        "  plain: true,\n"
        "  ['with-dash']: null,\n"
        "  ['with.dot']: [\n"
        "    1,\n"
        "    2.5\n"
        "  ],\n"
        "  empty: {}\n"
        "}"
    )


def test_read_literal_accepts_trailing_commas_and_both_quote_styles() -> None:
    parsed = config_sync.read_literal("{ a: 'one', \"b\": [1, -2, true, null,], ['c-d']: { e: 'it\\'s' }, }")

    assert parsed == {"a": "one", "b": [1, -2, True, None], "c-d": {"e": "it's"}}


def test_read_literal_rejects_expressions() -> None:
    with pytest.raises(ConfigSyncError):
        config_sync.read_literal("{ a: someVariable }")


def test_json_store_round_trip(tmp_path: Path) -> None:
    store = config_sync.JsonRegistryStore(tmp_path / "nested" / "registry.json")
    assert store.load() == {}

    snapshot = {"b": AssetDescriptor(id="b/asset"), "a": AssetDescriptor(id="a/asset", kind="video")}
    store.persist(snapshot)

    text = store.path.read_text(encoding="utf-8")
    assert text.index('"a"') < text.index('"b"')
    assert "synthesized" not in text
    assert store.load() == snapshot


def test_json_store_rejects_invalid_documents(tmp_path: Path) -> None:
    path = tmp_path / "registry.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ConfigSyncError):
        config_sync.JsonRegistryStore(path).load()

    path.write_text('{"hero": {"kind": "image"}}', encoding="utf-8")
    with pytest.raises(ConfigSyncError):
        config_sync.JsonRegistryStore(path).load()

    path.write_bytes(b'\xff\xfe{"hero": {"id": "x"}}')
    with pytest.raises(ConfigSyncError):
        config_sync.JsonRegistryStore(path).load()


def test_registry_reports_undecodable_module_as_failure(tmp_path: Path) -> None:
    path = tmp_path / "media-assets.ts"
    original = b"\xff\xfe" + MODULE_SOURCE.encode("utf-8")
    path.write_bytes(original)
    store = config_sync.ModuleRegistryStore(path, MARKER)

    with pytest.raises(ConfigSyncError):
        store.load()

    result = MediaRegistry(store).update("hero.main", {"id": "hero/x"})

    assert result.success is False
    assert result.code == "persistence_error"
    assert path.read_bytes() == original
    assert [entry.name for entry in tmp_path.iterdir()] == ["media-assets.ts"]


def test_build_store_follows_settings(tmp_path: Path) -> None:
    json_store = config_sync.build_store(Settings(media_registry_path=str(tmp_path / "r.json")))
    module_store = config_sync.build_store(
        Settings(media_registry_path=str(tmp_path / "r.ts"), media_registry_format="module")
    )

    assert isinstance(json_store, config_sync.JsonRegistryStore)
    assert isinstance(module_store, config_sync.ModuleRegistryStore)
    assert module_store.marker == MARKER
