"""Unit tests for LocalImagesCache."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from image_resolver.container.interface import ImageData, RegistryClientError
from image_resolver.image import cache as cache_module
from image_resolver.image.cache import LocalImagesCache
from image_resolver.image.reference import ImageReference

ALPINE = ImageReference.parse("alpine:3.19")
CREATED = datetime(2024, 5, 1, tzinfo=timezone.utc)


class TestLocalImagesCache:
    """Test presence memoization."""

    def test_presence_checked_once(self):
        """Test that each reference hits the presence check only once."""
        check = MagicMock(return_value=ImageData(created_at=CREATED))
        cache = LocalImagesCache(check)

        assert cache.is_present(ALPINE) is True
        assert cache.is_present(ALPINE) is True
        assert cache.get(ALPINE).created_at == CREATED
        check.assert_called_once_with(ALPINE)

    def test_absence_is_memoized(self):
        """Test that a missing image is also remembered."""
        check = MagicMock(return_value=None)
        cache = LocalImagesCache(check)

        assert cache.is_present(ALPINE) is False
        assert cache.is_present(ALPINE) is False
        assert check.call_count == 1

    def test_equal_references_share_entry(self):
        """Test entries are keyed by canonical name."""
        check = MagicMock(return_value=ImageData())
        cache = LocalImagesCache(check)

        cache.is_present(ImageReference.parse("alpine"))
        cache.is_present(ImageReference.parse("alpine:latest"))
        assert check.call_count == 1
        assert len(cache) == 1

    def test_refresh_marks_present(self):
        """Test refresh() turns an absent entry into a present one."""
        check = MagicMock(side_effect=[None, ImageData(created_at=CREATED)])
        cache = LocalImagesCache(check)

        assert cache.is_present(ALPINE) is False
        data = cache.refresh(ALPINE)

        assert data.created_at == CREATED
        assert cache.is_present(ALPINE) is True
        assert check.call_count == 2

    def test_refresh_is_idempotent(self):
        """Test refreshing twice leaves the image present."""
        cache = LocalImagesCache(MagicMock(return_value=ImageData()))
        cache.refresh(ALPINE)
        cache.refresh(ALPINE)
        assert cache.is_present(ALPINE) is True

    def test_refresh_survives_inspect_failure(self):
        """Test refresh() still records presence when inspection fails."""
        check = MagicMock(side_effect=RegistryClientError("inspect failed"))
        cache = LocalImagesCache(check)

        data = cache.refresh(ALPINE)

        assert data == ImageData()
        assert cache.is_present(ALPINE) is True

    def test_refresh_wins_over_late_absent_answer(self):
        """Test that a slow presence check cannot downgrade a refreshed entry."""
        entered = threading.Event()
        release = threading.Event()
        answers = iter([None])

        def slow_check(image):
            entered.set()
            release.wait(5)
            return next(answers)

        cache = LocalImagesCache(slow_check)
        result = {}
        reader = threading.Thread(target=lambda: result.setdefault("present", cache.is_present(ALPINE)))
        reader.start()
        assert entered.wait(5)

        # refresh() inspects too; answer it directly
        cache._presence_check = MagicMock(return_value=ImageData(created_at=CREATED))
        cache.refresh(ALPINE)
        release.set()
        reader.join(5)

        assert result["present"] is True
        assert cache.is_present(ALPINE) is True

    def test_presence_check_errors_propagate(self):
        """Test that a failing presence check is not memoized."""
        check = MagicMock(side_effect=[RegistryClientError("podman down"), ImageData()])
        cache = LocalImagesCache(check)

        with pytest.raises(RegistryClientError):
            cache.is_present(ALPINE)
        assert cache.is_present(ALPINE) is True

    def test_clear(self):
        """Test clear() forgets all entries."""
        check = MagicMock(return_value=ImageData())
        cache = LocalImagesCache(check)
        cache.is_present(ALPINE)
        cache.clear()
        cache.is_present(ALPINE)
        assert check.call_count == 2


class TestProcessWideCache:
    """Test the process-wide cache accessor."""

    def test_singleton(self, monkeypatch):
        """Test get_local_images_cache() returns one instance until reset."""
        fake_client = MagicMock()
        monkeypatch.setattr(
            "image_resolver.container.podman_client.lazy_client", lambda: fake_client
        )
        cache_module.reset_local_images_cache()
        try:
            first = cache_module.get_local_images_cache()
            assert cache_module.get_local_images_cache() is first

            fake_client.inspect_image.return_value = None
            assert first.is_present(ALPINE) is False
            fake_client.inspect_image.assert_called_once_with(ALPINE)

            cache_module.reset_local_images_cache()
            assert cache_module.get_local_images_cache() is not first
        finally:
            cache_module.reset_local_images_cache()

    def test_one_cache_per_client(self):
        """Test an explicit client gets one cache, separate from other clients."""
        cache_module.reset_local_images_cache()
        try:
            client = MagicMock()
            client.inspect_image.return_value = ImageData()
            other = MagicMock()

            cache = cache_module.get_local_images_cache(client)
            assert cache_module.get_local_images_cache(client) is cache
            assert cache_module.get_local_images_cache(other) is not cache

            assert cache.is_present(ALPINE) is True
            assert cache_module.get_local_images_cache(client).is_present(ALPINE) is True
            client.inspect_image.assert_called_once_with(ALPINE)
        finally:
            cache_module.reset_local_images_cache()
