"""
Tests for the run lock and atomic writes.
"""

import os
from pathlib import Path

import pytest

from wahaprov.core.errors import LockHeldError, ProvisionError
from wahaprov.core.persistence.atomic import atomic_write_text
from wahaprov.core.persistence.run_lock import run_lock


class TestRunLock:
    def test_acquire_and_release(self, tmp_path: Path):
        path = tmp_path / "root" / ".waha.lock"
        with run_lock(path) as held:
            assert held == path
            assert path.read_text().strip() == str(os.getpid())
        # free again
        with run_lock(path):
            pass

    def test_second_holder_rejected(self, tmp_path: Path):
        path = tmp_path / ".waha.lock"
        with run_lock(path):
            with pytest.raises(LockHeldError, match="concurrent runs"):
                with run_lock(path):
                    pass

    def test_released_on_error(self, tmp_path: Path):
        path = tmp_path / ".waha.lock"
        with pytest.raises(RuntimeError):
            with run_lock(path):
                raise RuntimeError("step failed")
        with run_lock(path):
            pass

    def test_uncreatable(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(ProvisionError, match="Cannot create lock file"):
            with run_lock(blocker / ".waha.lock"):
                pass


class TestAtomicWrite:
    def test_new_file_mode(self, tmp_path: Path):
        path = tmp_path / ".env"
        atomic_write_text(path, "A=1\n", mode=0o600)
        assert path.read_text() == "A=1\n"
        assert path.stat().st_mode & 0o777 == 0o600

    def test_keeps_existing_mode(self, tmp_path: Path):
        path = tmp_path / ".env"
        path.write_text("old\n")
        path.chmod(0o640)
        atomic_write_text(path, "new\n", mode=0o600)
        assert path.read_text() == "new\n"
        assert path.stat().st_mode & 0o777 == 0o640

    def test_no_temp_left_behind(self, tmp_path: Path):
        atomic_write_text(tmp_path / ".env", "A=1\n")
        assert [p.name for p in tmp_path.iterdir()] == [".env"]
