"""命令行系统测试（click CliRunner + 真实服务容器）"""

from __future__ import annotations

from click.testing import CliRunner

from modhub.cli import main


def _run(*args: str):
    return CliRunner().invoke(main, list(args))


class TestResolve:
    def test_fetches_and_resolves(self, mirror) -> None:
        mirror.publish("1", {"Core": b"core", "Gui": b"gui"}, depends={"Gui": ["Core"]})
        result = _run("resolve", "Gui", "--timeout", "10")
        assert result.exit_code == 0, result.output
        assert "NO_ERROR" in result.output
        load_order = result.output.split("加载顺序:", 1)[1]
        assert load_order.index("libCore.so") < load_order.index("libGui.so")

    def test_no_download_reports_not_found(self, mirror) -> None:
        mirror.publish("1", {"Core": b"core"})
        result = _run("resolve", "Core", "--no-download")
        assert result.exit_code == 2
        assert "NOT_FOUND" in result.output

    def test_incompatible_api_level(self, mirror) -> None:  # noqa: ARG002
        result = _run("resolve", "Core", "--api-level", "9")
        assert result.exit_code == 1
        assert "INCOMPATIBLE" in result.output

    def test_no_wait_prints_token(self, manual_mirror) -> None:
        manual_mirror.publish("1", {"Core": b"core"})
        result = _run("resolve", "Core", "--no-wait")
        assert result.exit_code == 0
        assert "会话等待拉取" in result.output


class TestCatalogCommands:
    def test_modules_after_resolve(self, mirror) -> None:
        mirror.publish("1", {"Core": b"core", "Gui": b"gui"})
        assert _run("resolve", "Core", "--timeout", "10").exit_code == 0

        result = _run("modules")
        assert result.exit_code == 0
        assert "Core" in result.output
        assert "已安装" in result.output
        assert "可拉取" in result.output

        installed = _run("modules", "--installed")
        assert "Gui" not in installed.output

    def test_modules_without_sources(self, mirror) -> None:  # noqa: ARG002
        result = _run("modules")
        assert "没有已登记的源" in result.output

    def test_check_and_update(self, mirror) -> None:
        mirror.publish("1", {"Core": b"core-v1"})
        assert _run("resolve", "Core", "--timeout", "10").exit_code == 0

        assert "已是最新" in _run("check", "--force").output

        mirror.publish("2", {"Core": b"core-v2"})
        assert "有可用更新" in _run("check", "--force").output

        result = _run("update", "--timeout", "10")
        assert result.exit_code == 0, result.output
        assert "更新结束: NO_ERROR" in result.output
        assert "Core_0" in result.output

    def test_update_without_sources(self, mirror) -> None:  # noqa: ARG002
        assert "没有可更新的源" in _run("update").output


class TestSettingsCommands:
    def test_sources_listed(self, mirror) -> None:
        assert "没有已登记的源" in _run("sources").output
        mirror.publish("1", {"Core": b"core"})
        _run("resolve", "Core", "--timeout", "10")
        assert "http://mirror.local/repo/" in _run("sources").output

    def test_repository_switch(self, mirror) -> None:  # noqa: ARG002
        assert "当前仓库: stable" in _run("repository").output
        assert _run("repository", "testing").exit_code == 0
        assert "当前仓库: testing" in _run("repository").output

    def test_repository_invalid(self, mirror) -> None:  # noqa: ARG002
        result = _run("repository", "nightly")
        assert result.exit_code == 2
        assert "不支持的仓库" in result.output

    def test_frequency(self, mirror) -> None:  # noqa: ARG002
        assert _run("frequency", "3").exit_code == 0
        assert "每 3 天" in _run("frequency").output
        assert _run("frequency", "0").exit_code == 2

    def test_version(self) -> None:
        result = _run("--version")
        assert result.exit_code == 0
        assert "0.3.0" in result.output
