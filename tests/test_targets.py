"""Tests for reading candidate addresses."""

from pathlib import Path

import pytest

from conftest import write_targets
from ollamarecon.core.errors import PreconditionError
from ollamarecon.core.targets import TargetSource, parse_address


class TestParseAddress:
    @pytest.mark.parametrize("line", ["10.0.0.1", "  192.168.1.20\n", "::1", "fe80::1"])
    def test_valid(self, line: str) -> None:
        assert parse_address(line) == line.strip()

    @pytest.mark.parametrize("line", ["", "   ", "example.com", "10.0.0.0/24", "300.1.1.1", "# comment"])
    def test_invalid(self, line: str) -> None:
        assert parse_address(line) is None


class TestTargetSource:
    def test_skips_invalid_lines(self, tmp_path: Path) -> None:
        path = write_targets(tmp_path / "ip.txt", "10.0.0.1", "garbage", "", " 10.0.0.2 ", "::1")
        source = TargetSource(path)
        assert list(source) == ["10.0.0.1", "10.0.0.2", "::1"]
        assert source.count() == 3

    def test_is_restartable(self, tmp_path: Path) -> None:
        source = TargetSource(write_targets(tmp_path / "ip.txt", "10.0.0.1", "10.0.0.2"))
        assert list(source) == list(source)

    def test_duplicates_yielded_once(self, tmp_path: Path) -> None:
        source = TargetSource(write_targets(tmp_path / "ip.txt", "10.0.0.1", "10.0.0.1", "10.0.0.2"))
        assert list(source) == ["10.0.0.1", "10.0.0.2"]
        assert source.count() == 2

    def test_missing_file_is_created_and_reported(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "ip.txt"
        with pytest.raises(PreconditionError, match="ip.txt"):
            TargetSource(path).ensure_exists()
        assert path.exists()
        assert path.read_text() == ""

    def test_existing_file_passes(self, tmp_path: Path) -> None:
        path = write_targets(tmp_path / "ip.txt", "10.0.0.1")
        TargetSource(path).ensure_exists()

    def test_directory_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "ip.txt"
        path.mkdir()
        source = TargetSource(path)

        with pytest.raises(PreconditionError, match="directory"):
            source.ensure_exists()
        with pytest.raises(PreconditionError, match="cannot read"):
            list(source)
        with pytest.raises(PreconditionError):
            source.count()
