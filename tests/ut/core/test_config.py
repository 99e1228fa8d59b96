"""配置加载测试"""

from __future__ import annotations

from pathlib import Path

import pytest

import modhub.core.config as cfgmod
from modhub.core.config import Config
from modhub.core.exceptions import ConfigError


class TestConfig:
    def test_defaults(self) -> None:
        cfg = Config()
        assert cfg.default_repository == "stable"
        assert cfg.hash_algorithm == "sha1"
        assert cfg.min_api_level <= cfg.max_api_level
        assert cfg.settings_file == Path("data/modhub") / "settings.json"

    def test_missing_file_returns_defaults(self, tmp_path: Path) -> None:
        cfg = Config.from_file(str(tmp_path / "nope.yml"))
        assert cfg == Config()

    def test_from_file_with_extra(self, tmp_path: Path) -> None:
        path = tmp_path / "modhub.yml"
        path.write_text(
            "root_dir: /srv/modhub\n"
            "default_sources: [http://mirror.local/]\n"
            "retrieval_mode: manual\n"
            "ui_theme: dark\n",
            encoding="utf-8",
        )
        cfg = Config.from_file(str(path))
        assert cfg.root_dir == "/srv/modhub"
        assert cfg.default_sources == ["http://mirror.local/"]
        assert cfg.retrieval_mode == "manual"
        assert cfg.extra == {"ui_theme": "dark"}

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"retrieval_mode": "sometimes"},
            {"min_api_level": 5, "max_api_level": 2},
            {"default_repository": "nightly"},
        ],
    )
    def test_invalid_values(self, kwargs) -> None:
        with pytest.raises(ConfigError):
            Config(**kwargs)

    def test_invalid_file(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="配置文件无效"):
            Config.from_file(str(path))

    def test_init_config_sets_global(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cfgmod, "_current", None)
        path = tmp_path / "modhub.yml"
        path.write_text("platform_tag: linux-arm64\n", encoding="utf-8")
        cfgmod.init_config(str(path))
        assert cfgmod.get_config().platform_tag == "linux-arm64"
