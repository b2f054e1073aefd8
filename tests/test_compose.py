"""
Tests for compose file patching.
"""

from pathlib import Path

import pytest
import yaml

from wahaprov.core.errors import FetchError
from wahaprov.core.services.compose import patch_compose

from .conftest import CHATWOOT_COMPOSE, STANDALONE_COMPOSE

WAHA = "devlikeapro/waha"
CHATWOOT = "chatwoot/chatwoot"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "docker-compose.yaml"
    path.write_text(text)
    return path


class TestPatchCompose:
    def test_image_and_port(self, tmp_path: Path):
        path = _write(tmp_path, STANDALONE_COMPOSE)
        changes = patch_compose(path, image="devlikeapro/waha:gows", ports={WAHA: {3000: (3001, 3001)}})
        doc = yaml.safe_load(path.read_text())
        assert doc["services"]["waha"]["image"] == "devlikeapro/waha:gows"
        assert doc["services"]["waha"]["ports"] == ["3001:3001"]
        assert doc["services"]["redis"]["image"] == "redis:7"
        assert len(changes) == 2

    def test_keeps_service_order_and_other_keys(self, tmp_path: Path):
        path = _write(tmp_path, STANDALONE_COMPOSE)
        patch_compose(path, image="devlikeapro/waha:gows")
        doc = yaml.safe_load(path.read_text())
        assert list(doc["services"]) == ["waha", "redis"]
        assert doc["services"]["waha"]["env_file"] == [".env"]

    def test_chatwoot_ports(self, tmp_path: Path):
        path = _write(tmp_path, CHATWOOT_COMPOSE)
        patch_compose(
            path,
            image="devlikeapro/waha:gows",
            ports={WAHA: {3000: (3000, 3000)}, CHATWOOT: {3009: (3010, 3009)}},
        )
        services = yaml.safe_load(path.read_text())["services"]
        assert services["waha"]["image"] == "devlikeapro/waha:gows"
        assert services["waha"]["ports"] == ["3000:3000"]
        assert services["chatwoot-rails"]["ports"] == ["3010:3009"]
        assert services["chatwoot-rails"]["image"] == "chatwoot/chatwoot:latest"

    def test_idempotent(self, tmp_path: Path):
        path = _write(tmp_path, STANDALONE_COMPOSE)
        args = {"image": "devlikeapro/waha:gows", "ports": {WAHA: {3000: (3000, 3000)}}}
        patch_compose(path, **args)
        first = path.read_text()
        assert patch_compose(path, **args) == []
        assert path.read_text() == first

    def test_dry_run(self, tmp_path: Path):
        path = _write(tmp_path, STANDALONE_COMPOSE)
        assert patch_compose(path, image="devlikeapro/waha:gows", dry_run=True)
        assert path.read_text() == STANDALONE_COMPOSE

    def test_unreadable(self, tmp_path: Path):
        with pytest.raises(FetchError):
            patch_compose(tmp_path / "absent.yaml")

    def test_other_services_keep_their_ports(self, tmp_path: Path):
        grafana = "  grafana:\n    image: grafana/grafana\n    ports:\n      - '127.0.0.1:3000:3000'\n"
        path = _write(tmp_path, STANDALONE_COMPOSE + grafana)
        patch_compose(path, image="devlikeapro/waha:gows", ports={WAHA: {3000: (3001, 3001)}})
        services = yaml.safe_load(path.read_text())["services"]
        assert services["waha"]["ports"] == ["3001:3001"]
        assert services["grafana"]["ports"] == ["127.0.0.1:3000:3000"]
