"""运行时设置与源登记表测试"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from modhub.core.exceptions import ConfigError, ValidationError
from modhub.core.settings import Settings

DAY = 24 * 3600


class TestSourceRegistry:
    def test_ids_assigned_in_order(self, tmp_path: Path) -> None:
        s = Settings(tmp_path / "settings.json")
        assert s.source_ids(["http://a.org/repo", "http://b.org/repo/"]) == [0, 1]

    def test_same_url_same_id(self, tmp_path: Path) -> None:
        s = Settings(tmp_path / "settings.json")
        first = s.source_ids(["http://a.org/repo"])
        # 尾部 '/' 不影响登记
        assert s.source_ids(["http://a.org/repo/"]) == first
        assert s.source_url(first[0]) == "http://a.org/repo/"

    def test_unknown_id(self, tmp_path: Path) -> None:
        assert Settings(tmp_path / "settings.json").source_url(9) is None

    def test_registry_persisted(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        Settings(path).source_ids(["http://a.org/", "http://b.org/"])

        reloaded = Settings(path)
        assert reloaded.sources() == {"http://a.org/": 0, "http://b.org/": 1}
        # 新源继续递增，不复用已有 id
        assert reloaded.source_ids(["http://c.org/"]) == [2]


class TestRepository:
    def test_default(self, tmp_path: Path) -> None:
        assert Settings(tmp_path / "s.json", default_repository="testing").repository == "testing"

    def test_switch_persisted(self, tmp_path: Path) -> None:
        path = tmp_path / "s.json"
        Settings(path).set_repository("unstable")
        assert Settings(path).repository == "unstable"

    def test_unknown_repository(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="不支持的仓库"):
            Settings(tmp_path / "s.json").set_repository("nightly")

    def test_switch_resets_last_check(self, tmp_path: Path) -> None:
        s = Settings(tmp_path / "s.json")
        s.mark_checked(now=10 * DAY)
        assert s.update_check_due(now=10 * DAY + 1) is False
        s.set_repository("testing")
        assert s.update_check_due(now=10 * DAY + 1) is True


class TestUpdateCheck:
    def test_due_after_frequency(self, tmp_path: Path) -> None:
        s = Settings(tmp_path / "s.json", check_frequency_days=2)
        s.mark_checked(now=0.0)
        assert s.update_check_due(now=DAY) is False
        assert s.update_check_due(now=3 * DAY) is True

    def test_set_frequency(self, tmp_path: Path) -> None:
        s = Settings(tmp_path / "s.json")
        s.set_check_frequency(1)
        assert s.check_frequency_days == 1

    @pytest.mark.parametrize("days", [0, -3])
    def test_invalid_frequency(self, tmp_path: Path, days: int) -> None:
        with pytest.raises(ValidationError):
            Settings(tmp_path / "s.json").set_check_frequency(days)


class TestCorruptSettings:
    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "s.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            Settings(path)

    def test_invalid_source_entry(self, tmp_path: Path) -> None:
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"sources": [{"url": "http://a/"}]}), encoding="utf-8")
        with pytest.raises(ConfigError, match="字段无效"):
            Settings(path)

    def test_unknown_repository_in_file_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"repository": "nightly"}), encoding="utf-8")
        assert Settings(path).repository == "stable"
