import pytest
import structlog

from grafana_digest.list_dashboards import DEFAULTS

BASE_URL = "https://grafana.test/api"


@pytest.fixture(autouse=True)
def grafana_env(tmp_path, monkeypatch):
    """Token set, no config file on disk, no URL override, logging reset afterwards."""
    monkeypatch.setenv("GRAFANA_TOKEN", "s3cret")
    monkeypatch.setenv("GRAFANA_DIGEST_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("GRAFANA_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    yield
    structlog.reset_defaults()


@pytest.fixture
def config():
    cfg = dict(DEFAULTS)
    cfg["url"] = BASE_URL
    return cfg


def search_hit(uid, title, type_="dash-db", folder_title="", **extra):
    hit = {
        "id": abs(hash(uid)) % 1000,
        "uid": uid,
        "title": title,
        "uri": f"db/{uid}",
        "url": f"/d/{uid}/{title.lower()}",
        "slug": "",
        "type": type_,
        "tags": [],
        "isStarred": False,
        "folderTitle": folder_title,
    }
    hit.update(extra)
    return hit
