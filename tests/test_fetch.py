from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from conftest import ARCHIVE_BYTES, XRAY_VERSION, FakeRunner, fake_unzip, fake_wget
from relay_installer.errors import VerificationError
from relay_installer.lib.fetch import DL_FILE, download_url, fetch_and_verify, verify_digest
from relay_installer.lib.version import Version


def test_download_url_uses_prefixed_tag():
    assert download_url(Version("1.8.4")) == (
        "https://github.com/XTLS/Xray-core/releases/download/v1.8.4/Xray-linux-64.zip"
    )


def test_version_parse():
    assert Version.parse("v1.8.24") == Version("1.8.24")
    with pytest.raises(ValueError):
        Version.parse("latest")


def test_verify_digest_accepts_listed_hash(tmp_path: Path):
    archive = tmp_path / DL_FILE
    archive.write_bytes(ARCHIVE_BYTES)
    dgst = tmp_path / (DL_FILE + ".dgst")
    dgst.write_text(f"MD5= 00\nSHA2-256= {hashlib.sha256(ARCHIVE_BYTES).hexdigest().upper()}\n")
    assert verify_digest(archive, dgst) == hashlib.sha256(ARCHIVE_BYTES).hexdigest()


def test_fetch_and_verify_unpacks(tmp_path: Path):
    runner = FakeRunner(handlers={"wget": fake_wget(), "unzip": fake_unzip})
    dest = fetch_and_verify(runner, XRAY_VERSION, tmp_path / "dl")

    assert (dest / "xray").exists()
    assert [a[0] for a in runner.argvs()] == ["wget", "wget", "unzip"]
    assert all(cwd == str(dest) for a, cwd in runner.calls if a[0] == "wget")


def test_digest_mismatch_never_unpacks(tmp_path: Path):
    runner = FakeRunner(handlers={"wget": fake_wget("SHA2-256= deadbeef\n"), "unzip": fake_unzip})
    with pytest.raises(VerificationError):
        fetch_and_verify(runner, XRAY_VERSION, tmp_path / "dl")

    assert "unzip" not in [a[0] for a in runner.argvs()]
    assert not (tmp_path / "dl" / "xray").exists()
