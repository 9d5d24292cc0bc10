"""Tests for backup utility functions."""

import hashlib
from pathlib import Path
from unittest.mock import patch

import pytest

from metarr.backup_utils import (
    backup_file,
    get_backup_path,
    move_or_copy_file,
    rename_to_backup,
    sha256_file,
)
from metarr.exceptions import HashMismatchError


class TestBackupFunctions:
    """Test get_backup_path, backup_file and rename_to_backup."""

    def test_backup_path_inserts_tag(self) -> None:
        assert get_backup_path(Path("/v/clip.info.json")) == Path(
            "/v/clip.info_metarrbackup.json"
        )

    def test_backup_file_copies_contents(self, tmp_path: Path) -> None:
        file_path = tmp_path / "clip.json"
        file_path.write_text('{"title": "A"}')

        backup_path = backup_file(file_path)

        assert backup_path == tmp_path / "clip_metarrbackup.json"
        assert backup_path.read_text() == '{"title": "A"}'
        assert file_path.exists()

    def test_rename_to_backup_moves_file(self, tmp_path: Path) -> None:
        file_path = tmp_path / "clip.mp4"
        file_path.write_bytes(b"video")

        backup_path = rename_to_backup(file_path)

        assert not file_path.exists()
        assert backup_path.read_bytes() == b"video"


class TestMoveOrCopyFile:
    """Test checksum-verified moves."""

    def test_move_verifies_and_removes_source(self, tmp_path: Path) -> None:
        src = tmp_path / "a.mp4"
        src.write_bytes(b"payload")
        dst = tmp_path / "out" / "a.mp4"

        move_or_copy_file(src, dst)

        assert not src.exists()
        assert dst.read_bytes() == b"payload"

    def test_copy_fallback_when_rename_fails(self, tmp_path: Path) -> None:
        src = tmp_path / "a.mp4"
        src.write_bytes(b"payload")
        dst = tmp_path / "out" / "a.mp4"

        with patch.object(Path, "rename", side_effect=OSError("cross-device")):
            move_or_copy_file(src, dst)

        assert not src.exists()
        assert sha256_file(dst) == hashlib.sha256(b"payload").hexdigest()

    def test_mismatch_removes_destination(self, tmp_path: Path) -> None:
        src = tmp_path / "a.mp4"
        src.write_bytes(b"payload")
        dst = tmp_path / "out" / "a.mp4"

        hashes = iter(["source-hash", "other-hash"])
        with (
            patch.object(Path, "rename", side_effect=OSError("cross-device")),
            patch(
                "metarr.backup_utils.sha256_file",
                side_effect=lambda _path: next(hashes),
            ),
        ):
            with pytest.raises(HashMismatchError):
                move_or_copy_file(src, dst)

        assert not dst.exists()
        assert src.read_bytes() == b"payload"

    def test_same_file_is_noop(self, tmp_path: Path) -> None:
        src = tmp_path / "a.mp4"
        src.write_bytes(b"payload")

        move_or_copy_file(src, src)

        assert src.read_bytes() == b"payload"
