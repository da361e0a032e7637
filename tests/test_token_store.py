# Test suite for session token bookkeeping

import pytest

from duckchat.providers.token_store import AuxHeaders, TokenStore


class TestTokenStore:
    """Test suite for TokenStore"""

    @pytest.fixture
    def store(self):
        return TokenStore()

    def test_first_rotation(self, store):
        assert not store.has_token
        assert store.rotate("t1") is True
        assert store.current == "t1"
        assert store.previous is None

    def test_rotation_moves_forward(self, store):
        store.rotate("t1")
        store.rotate("t2")
        assert store.current == "t2"
        assert store.previous == "t1"
        assert store.is_retired("t1")

    def test_ignores_empty_and_current(self, store):
        store.rotate("t1")
        assert store.rotate("") is False
        assert store.rotate(None) is False
        assert store.rotate("t1") is False
        assert store.current == "t1"

    def test_superseded_token_never_readopted(self, store):
        """Test that a retired token cannot become current again"""
        store.rotate("t1")
        store.rotate("t2")

        assert store.rotate("t1") is False
        assert store.current == "t2"
        assert store.previous == "t1"

    def test_retry_window(self, store):
        assert store.record_retry() == 1
        assert store.record_retry() == 2
        store.reset_retries()
        assert store.retry_count == 0


class TestAuxHeaders:
    """Test suite for the anti-automation header set"""

    def test_from_dict_ignores_unknown_keys(self):
        aux = AuxHeaders.from_dict({"fe_version": "v1", "_comment": "x"})
        assert aux.fe_version == "v1"
        assert aux.fe_signals == ""

    def test_request_headers(self):
        aux = AuxHeaders(fe_signals="sig", fe_version="ver", vqd_hash_1="hash")
        assert aux.as_request_headers() == {
            "x-fe-signals": "sig",
            "x-fe-version": "ver",
            "x-vqd-hash-1": "hash",
        }

    def test_request_headers_without_hash(self):
        assert "x-vqd-hash-1" not in AuxHeaders().as_request_headers()
