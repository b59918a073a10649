from pathlib import PurePosixPath

import pytest

from ostreext.bootabletree import find_kernel_dir_fs


def test_empty_root_has_no_kernel(tmp_path):
    assert find_kernel_dir_fs(tmp_path) is None


def test_empty_modules_dir_has_no_kernel(tmp_path):
    (tmp_path / "usr/lib/modules").mkdir(parents=True)
    assert find_kernel_dir_fs(tmp_path) is None


def test_find_kernel_dir_fs(tmp_path):
    moddir = tmp_path / "usr/lib/modules"
    kpath = moddir / "5.12.8-32.aarch64"
    kpath.mkdir(parents=True)
    (kpath / "vmlinuz").write_text("some kernel")
    kpath2 = moddir / "5.13.7-44.aarch64"
    kpath2.mkdir(parents=True)
    (kpath2 / "foo.ko").write_text("some kmod")

    found = find_kernel_dir_fs(tmp_path)
    assert found.name == "5.12.8-32.aarch64"
    assert found == PurePosixPath("usr/lib/modules/5.12.8-32.aarch64")


def test_accepts_string_root(tmp_path):
    kpath = tmp_path / "usr/lib/modules/6.0.1"
    kpath.mkdir(parents=True)
    (kpath / "vmlinuz").write_text("kernel")
    assert find_kernel_dir_fs(str(tmp_path)) == PurePosixPath("usr/lib/modules/6.0.1")


def test_regular_files_in_modules_are_ignored(tmp_path):
    moddir = tmp_path / "usr/lib/modules"
    moddir.mkdir(parents=True)
    (moddir / "vmlinuz").write_text("not a directory")
    assert find_kernel_dir_fs(tmp_path) is None


def test_multiple_kernels_is_an_error(tmp_path):
    moddir = tmp_path / "usr/lib/modules"
    for name in ("5.1.0", "5.2.0"):
        (moddir / name).mkdir(parents=True)
        (moddir / name / "vmlinuz").write_text("kernel")
    with pytest.raises(ValueError, match="multiple subdirectories"):
        find_kernel_dir_fs(tmp_path)