"""Tests for taskplan.runner.locking module."""

import os

import pytest

from taskplan.lib.errors import ConcurrentRunDetected
from taskplan.runner.locking import feature_lock, is_locked, lock_path, read_holder


class TestFeatureLock:

    def test_acquire_and_release(self, tmp_path):
        with feature_lock(tmp_path, "checkout"):
            assert is_locked(tmp_path, "checkout")
            assert read_holder(lock_path(tmp_path, "checkout")) == str(os.getpid())
        assert not is_locked(tmp_path, "checkout")

    def test_second_run_is_refused(self, tmp_path):
        with feature_lock(tmp_path, "checkout"):
            with pytest.raises(ConcurrentRunDetected) as exc_info:
                with feature_lock(tmp_path, "checkout"):
                    pass
        assert exc_info.value.exit_code == 4
        assert str(os.getpid()) in str(exc_info.value)

    def test_refused_attempt_keeps_holder_pid(self, tmp_path):
        with feature_lock(tmp_path, "checkout"):
            with pytest.raises(ConcurrentRunDetected):
                with feature_lock(tmp_path, "checkout"):
                    pass
            assert read_holder(lock_path(tmp_path, "checkout")) == str(os.getpid())

    def test_other_features_are_independent(self, tmp_path):
        with feature_lock(tmp_path, "checkout"):
            with feature_lock(tmp_path, "login"):
                assert is_locked(tmp_path, "login")

    def test_released_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with feature_lock(tmp_path, "checkout"):
                raise RuntimeError("boom")
        with feature_lock(tmp_path, "checkout"):
            pass

    def test_lock_file_is_kept(self, tmp_path):
        with feature_lock(tmp_path, "checkout"):
            pass
        assert lock_path(tmp_path, "checkout").exists()

    def test_readonly_creates_nothing(self, tmp_path):
        with feature_lock(tmp_path, "checkout", readonly=True):
            pass
        assert not (tmp_path / "locks").exists()

    def test_readonly_honours_held_lock(self, tmp_path):
        with feature_lock(tmp_path, "checkout"):
            with pytest.raises(ConcurrentRunDetected):
                with feature_lock(tmp_path, "checkout", readonly=True):
                    pass
            assert read_holder(lock_path(tmp_path, "checkout")) == str(os.getpid())

    def test_readonly_leaves_holder_pid(self, tmp_path):
        lock_file = lock_path(tmp_path, "checkout")
        lock_file.parent.mkdir(parents=True)
        lock_file.write_text("12345\n")
        with feature_lock(tmp_path, "checkout", readonly=True):
            assert is_locked(tmp_path, "checkout")
        assert read_holder(lock_file) == "12345"

    def test_never_locked(self, tmp_path):
        assert not is_locked(tmp_path, "checkout")
        assert read_holder(lock_path(tmp_path, "checkout")) is None
