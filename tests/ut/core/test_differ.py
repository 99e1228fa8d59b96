"""增量更新比对测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from modhub.core.catalog.differ import (
    UpdateDiffer,
    auxiliary_changed,
    changed_key,
    module_changed,
)
from modhub.core.catalog.models import AuxiliaryFile, Module


def _mod(name: str, content_hash: str = "h1", aux=(), source_id: int = 3) -> Module:
    return Module(
        name=name,
        source_id=source_id,
        file_path=f"lib{name}.so",
        content_hash=content_hash,
        auxiliary_files=tuple(aux),
    )


def _aux(name: str, content_hash: str) -> AuxiliaryFile:
    return AuxiliaryFile(name=name, content_hash=content_hash)


class _RecordingDeleter:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.deleted: list[str] = []
        self.fail_on = fail_on or set()

    def __call__(self, path: Path) -> bool:
        if path.name in self.fail_on:
            raise OSError("permission denied")
        self.deleted.append(path.name)
        return True


class TestModuleChanged:
    def test_identical(self) -> None:
        assert module_changed(_mod("A"), _mod("A")) is False

    def test_hash_differs(self) -> None:
        assert module_changed(_mod("A", "h1"), _mod("A", "h2")) is True

    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            ((), (), False),
            ((("x", "1"),), (("x", "1"),), False),
            ((("x", "1"),), (("x", "2"),), True),
            ((("x", "1"),), (("x", "1"), ("y", "1")), True),
            ((("x", "1"), ("y", "1")), (("y", "1"), ("x", "1")), False),
        ],
    )
    def test_auxiliary_identity(self, old, new, expected) -> None:
        before = _mod("A", aux=[_aux(n, h) for n, h in old])
        after = _mod("A", aux=[_aux(n, h) for n, h in new])
        assert auxiliary_changed(before, after) is expected

    def test_changed_key_format(self) -> None:
        assert changed_key("Core", 7) == "Core_7"


class TestUpdateDiffer:
    def test_identical_manifest_empty(self, tmp_path: Path) -> None:
        deleter = _RecordingDeleter()
        old = {"A": _mod("A"), "B": _mod("B")}
        result = UpdateDiffer(deleter).diff(3, old, dict(old), tmp_path)
        assert result.empty
        assert deleter.deleted == []

    def test_removed_module_cleaned(self, tmp_path: Path) -> None:
        deleter = _RecordingDeleter()
        old = {"A": _mod("A", aux=[_aux("A.jar", "j")]), "B": _mod("B")}
        result = UpdateDiffer(deleter).diff(3, old, {"B": _mod("B")}, tmp_path)
        assert result.removed == {"A"}
        assert result.changed == {}
        assert deleter.deleted == ["libA.so", "A.jar"]

    def test_changed_module_keyed_by_source(self, tmp_path: Path) -> None:
        deleter = _RecordingDeleter()
        new_a = _mod("A", "h2")
        result = UpdateDiffer(deleter).diff(3, {"A": _mod("A", "h1")}, {"A": new_a}, tmp_path)
        assert result.changed == {"A_3": new_a}
        assert result.removed == set()
        assert deleter.deleted == ["libA.so"]

    def test_new_modules_not_reported(self, tmp_path: Path) -> None:
        result = UpdateDiffer(_RecordingDeleter()).diff(
            3, {"A": _mod("A")}, {"A": _mod("A"), "B": _mod("B")}, tmp_path,
        )
        assert result.empty

    def test_deletion_failure_isolated(self, tmp_path: Path) -> None:
        deleter = _RecordingDeleter(fail_on={"libA.so"})
        old = {"A": _mod("A", aux=[_aux("A.jar", "j")]), "B": _mod("B")}
        result = UpdateDiffer(deleter).diff(3, old, {}, tmp_path)
        assert result.removed == {"A", "B"}
        assert deleter.deleted == ["A.jar", "libB.so"]

    def test_default_deleter_removes_files(self, tmp_path: Path) -> None:
        (tmp_path / "libA.so").write_bytes(b"old")
        result = UpdateDiffer().diff(3, {"A": _mod("A", "h1")}, {"A": _mod("A", "h2")}, tmp_path)
        assert "A_3" in result.changed
        assert not (tmp_path / "libA.so").exists()

    def test_default_deleter_tolerates_missing_file(self, tmp_path: Path) -> None:
        result = UpdateDiffer().diff(3, {"A": _mod("A")}, {}, tmp_path)
        assert result.removed == {"A"}

    def test_paths_outside_libs_root_not_deleted(self, tmp_path: Path) -> None:
        victim = tmp_path / "outside" / "victim.txt"
        victim.parent.mkdir()
        victim.write_text("keep")
        libs_root = tmp_path / "dl" / "0" / "stable"
        evil = Module(
            name="Evil", source_id=0, file_path=str(victim),
            auxiliary_files=(AuxiliaryFile(name="x.jar", file_path="../../../outside/victim.txt"),),
        )
        result = UpdateDiffer().diff(0, {"Evil": evil}, {}, libs_root)
        assert result.removed == {"Evil"}
        assert victim.read_text() == "keep"
