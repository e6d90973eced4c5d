import pytest

from app.academia.storage import LocalStorage, S3Storage, StorageError, normalize_key, storage_from_config


def test_normalize_key():
    assert normalize_key("/justificativas/1/2/a.pdf") == "justificativas/1/2/a.pdf"
    assert normalize_key("justificativas\\1\\a.pdf") == "justificativas/1/a.pdf"
    for bad in ("", "/", "../etc/passwd", "a/../../b"):
        with pytest.raises(StorageError):
            normalize_key(bad)


def test_local_storage_roundtrip(tmp_path):
    st = LocalStorage(root=tmp_path)
    key = "justificativas/1/2/atestado.pdf"
    assert not st.exists(key)
    st.put_bytes(key, b"%PDF", content_type="application/pdf")
    assert st.exists(key)
    with st.open(key) as fh:
        assert fh.read() == b"%PDF"
    st.delete(key)
    st.delete(key)
    assert not st.exists(key)
    with pytest.raises(StorageError):
        st.open(key)


def test_storage_from_config(tmp_path):
    st = storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_ROOT": str(tmp_path)})
    assert isinstance(st, LocalStorage)
    assert st.root == tmp_path

    st = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": "academia", "S3_ENDPOINT": "nyc3.example.com"})
    assert isinstance(st, S3Storage)
    assert st.region == "nyc3"

    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "s3"})
    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "ftp"})
