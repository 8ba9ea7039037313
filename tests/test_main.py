import argparse
import asyncio
import json

import pytest

from media_catalog.config import AppConfig, DEFAULT_POLL_INTERVAL
from media_catalog.core import CatalogApp
from media_catalog.exceptions import RootNotFound, ValidationFailed
from media_catalog.main import build_parser, main, search_params_from_args


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MEDIA_CATALOG_ROOT", "MEDIA_CATALOG_CACHE_DIR", "MEDIA_CATALOG_POLL_INTERVAL", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cli(media_root, tmp_path):
    """Runs the CLI against the media_root fixture and a tmp cache dir."""
    cache_dir = tmp_path / "cache"

    def run(*argv, root=media_root):
        return main(["--media-root", str(root), "--cache-dir", str(cache_dir), *argv])

    run.cache_dir = cache_dir
    return run


def test_scan_writes_cache(cli):
    assert cli("scan") == 0

    data = json.loads((cli.cache_dir / "index.json").read_text(encoding="utf-8"))
    assert data["version"] == "1.0.0"
    assert len(data["media"]) == 4


def test_scan_force_picks_up_new_files(cli, media_root):
    assert cli("scan") == 0
    (media_root / "late_rating-1.gif").write_bytes(b"gif")

    # Without --force the valid cache is kept
    assert cli("scan") == 0
    data = json.loads((cli.cache_dir / "index.json").read_text(encoding="utf-8"))
    assert len(data["media"]) == 4

    assert cli("scan", "--force") == 0
    data = json.loads((cli.cache_dir / "index.json").read_text(encoding="utf-8"))
    assert len(data["media"]) == 5


def test_search_prints_page(cli, capsys):
    assert cli("search", "--tags", "sunset") == 0

    page = json.loads(capsys.readouterr().out)
    assert page["total"] == 1
    assert page["page"] == 1
    assert page["pageSize"] == 60
    assert page["items"][0]["relativePath"] == "sunset_coast+location-okinawa_rating-5.png"


def test_search_attribute_filter(cli, capsys):
    assert cli("search", "--attr", "rating=4,5", "--page-size", "1") == 0

    page = json.loads(capsys.readouterr().out)
    assert page["total"] == 2
    assert len(page["items"]) == 1
    assert page["pageSize"] == 1


def test_search_rejects_empty_tags(cli, capsys):
    assert cli("search", "--tags", " , ") == 1
    assert capsys.readouterr().out == ""


def test_search_rejects_bad_page(cli):
    assert cli("search", "--page", "two") == 1


def test_missing_root_without_cache_fails(cli, tmp_path):
    assert cli("search", root=tmp_path / "missing") == 1


def test_missing_root_is_served_from_cache(cli, tmp_path, capsys):
    assert cli("scan") == 0
    assert cli("search", "--tags", "macro", root=tmp_path / "gone") == 0
    assert json.loads(capsys.readouterr().out)["total"] == 1


def test_unconfigured_root_fails(tmp_path):
    assert main(["--cache-dir", str(tmp_path / "cache"), "scan"]) == 1


def test_report_summary_and_csv(cli, tmp_path, capsys):
    output_csv = tmp_path / "out" / "report.csv"
    output_csv.parent.mkdir()
    assert cli("report", "--csv", str(output_csv)) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["totalRecords"] == 4
    assert summary["mediaTypes"] == {"image": 2, "unknown": 1, "video": 1}
    assert output_csv.exists()


def test_attr_flags_map_to_query_keys():
    args = build_parser().parse_args(["search", "--attr", "rating=4", "--attr", "rating=5", "--attr", "type=skate"])
    assert search_params_from_args(args) == {
        "attributes[rating]": "4,5",
        "attributes[type]": "skate",
    }


def test_malformed_attr_flag_is_rejected():
    args = build_parser().parse_args(["search", "--attr", "rating"])
    with pytest.raises(ValidationFailed):
        search_params_from_args(args)


def test_config_prefers_cli_over_environment(tmp_path):
    args = argparse.Namespace(media_root=tmp_path / "cli", cache_dir=None, poll_interval=None)
    environ = {
        "MEDIA_CATALOG_ROOT": str(tmp_path / "env"),
        "MEDIA_CATALOG_CACHE_DIR": str(tmp_path / "env-cache"),
        "MEDIA_CATALOG_POLL_INTERVAL": "5",
    }

    app_config = AppConfig.from_args(args, environ)
    assert app_config.media_root == tmp_path / "cli"
    assert app_config.cache_dir == tmp_path / "env-cache"
    assert app_config.poll_interval == 5.0


def test_config_defaults(tmp_path):
    args = argparse.Namespace(media_root=tmp_path)
    app_config = AppConfig.from_args(args, {})
    assert app_config.poll_interval == DEFAULT_POLL_INTERVAL
    assert app_config.log_level == "info"
    assert app_config.max_workers == 1


def test_config_requires_root():
    with pytest.raises(RootNotFound):
        AppConfig.from_args(argparse.Namespace(), {})


def test_config_rejects_bad_poll_interval(tmp_path):
    with pytest.raises(ValidationFailed):
        AppConfig.from_args(argparse.Namespace(media_root=tmp_path), {"MEDIA_CATALOG_POLL_INTERVAL": "soon"})


def test_validate_creates_cache_dir(tmp_path):
    app_config = AppConfig(media_root=tmp_path, cache_dir=tmp_path / "a" / "cache")
    app_config.validate()
    assert app_config.cache_dir.is_dir()

    with pytest.raises(RootNotFound):
        AppConfig(media_root=tmp_path / "missing", cache_dir=tmp_path).validate()


def test_app_boot_and_health(media_root, tmp_path):
    app = CatalogApp(AppConfig(media_root=media_root, cache_dir=tmp_path / "cache"))
    snapshot = app.boot()

    health = app.health()
    assert health["status"] == "ok"
    assert health["cacheItems"] == 4
    assert health["cacheGeneratedAt"] == snapshot.generated_at.isoformat()
    assert health["uptimeSeconds"] >= 0


def test_app_rebuild_picks_up_changes(media_root, tmp_path):
    app = CatalogApp(AppConfig(media_root=media_root, cache_dir=tmp_path / "cache"))
    app.boot()
    (media_root / "extra_macro.jpg").write_bytes(b"jpg")

    assert len(app.rebuild()) == 5
    assert app.search({"tags": "macro"}).total == 2


def test_app_watch_refreshes_catalog(media_root, tmp_path):
    app = CatalogApp(AppConfig(media_root=media_root, cache_dir=tmp_path / "cache", poll_interval=0.01))

    asyncio.run(app.watch(duration=0.3))

    assert app.state.generation >= 1
    assert len(app.state.current()) == 4
    assert len(app.store.load()) == 4
