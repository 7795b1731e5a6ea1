"""Tests for rollout_sidecar.tagfile.EnvTagFile."""

from __future__ import annotations

from pathlib import Path

import pytest

from rollout_sidecar.tagfile import EnvTagFile


def _tag_file(tmp_path: Path, text: str | None) -> EnvTagFile:
    path = tmp_path / ".env"
    if text is not None:
        path.write_text(text, encoding="utf-8")
    return EnvTagFile(path, "APP_IMAGE_TAG")


class TestRead:
    def test_reads_key(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "APP_NAME=demo\nAPP_IMAGE_TAG=v1.0.0\nDB_HOST=db\n")
        assert tf.read() == "v1.0.0"

    def test_indented_key(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "  APP_IMAGE_TAG=v1.0.1  \n")
        assert tf.read() == "v1.0.1"

    def test_similar_key_is_not_matched(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "OLD_APP_IMAGE_TAG=v0.9\nAPP_IMAGE_TAG_X=v0.8\n")
        assert tf.read() is None

    def test_missing_file(self, tmp_path: Path) -> None:
        assert _tag_file(tmp_path, None).read() is None

    def test_empty_value(self, tmp_path: Path) -> None:
        assert _tag_file(tmp_path, "APP_IMAGE_TAG=\n").read() is None


class TestWrite:
    def test_replaces_key_and_keeps_other_lines(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "APP_NAME=KMP\nAPP_IMAGE_TAG=v1.0.0\n# comment\nDB_HOST=db\n")

        tf.write("v1.1.0")

        assert tf.path.read_text(encoding="utf-8") == (
            "APP_NAME=KMP\nAPP_IMAGE_TAG=v1.1.0\n# comment\nDB_HOST=db\n"
        )
        assert tf.read() == "v1.1.0"

    def test_appends_missing_key(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "APP_NAME=KMP\n")

        tf.write("v1.1.0")

        assert tf.path.read_text(encoding="utf-8") == "APP_NAME=KMP\nAPP_IMAGE_TAG=v1.1.0\n"

    def test_appends_without_trailing_newline(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "APP_NAME=KMP")

        tf.write("v1.1.0")

        assert tf.path.read_text(encoding="utf-8") == "APP_NAME=KMP\nAPP_IMAGE_TAG=v1.1.0"

    def test_only_first_occurrence_is_rewritten(self, tmp_path: Path) -> None:
        tf = _tag_file(tmp_path, "APP_IMAGE_TAG=v1\nAPP_IMAGE_TAG=v2\n")

        tf.write("v3")

        assert tf.path.read_text(encoding="utf-8") == "APP_IMAGE_TAG=v3\nAPP_IMAGE_TAG=v2\n"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            _tag_file(tmp_path, None).write("v1.1.0")


class TestUndecodableBytes:
    """Env files are not guaranteed to be UTF-8."""

    def test_read_latin1_file(self, tmp_path: Path) -> None:
        path = tmp_path / ".env"
        path.write_bytes(b"APP_NAME=caf\xe9\nAPP_IMAGE_TAG=v1.0.0\n")
        assert EnvTagFile(path, "APP_IMAGE_TAG").read() == "v1.0.0"

    def test_write_preserves_other_bytes(self, tmp_path: Path) -> None:
        path = tmp_path / ".env"
        path.write_bytes(b"APP_NAME=caf\xe9\nAPP_IMAGE_TAG=v1.0.0\nSECRET=\xff\xfe\n")

        EnvTagFile(path, "APP_IMAGE_TAG").write("v1.1.0")

        assert path.read_bytes() == b"APP_NAME=caf\xe9\nAPP_IMAGE_TAG=v1.1.0\nSECRET=\xff\xfe\n"
