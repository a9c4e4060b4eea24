"""Tests for decrypting, de-signing and moving message files."""
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import file_payload, message_payload
from portal_sync.errors import CryptoError, DirectoryCreationError
from portal_sync.extraction import ExtractionPipeline
from portal_sync.models import ApiResult
from portal_sync.portal_client import PortalClient

PASSPORT = (
    '<passport><document annotation="Letter"><RegNumer regdate="2024-03-04">77</RegNumer></document></passport>'
)


class FakeCrypto:
    """Copies bytes instead of running a crypto engine."""

    def __init__(self, fail: tuple[str, ...] = ()) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    def _copy(self, operation: str, src: Path, dst: Path) -> bool:
        self.calls.append((operation, Path(src).name))
        if operation in self.fail:
            return False
        Path(dst).write_bytes(Path(src).read_bytes())
        return True

    def decrypt(self, src, dst):
        return self._copy("decrypt", src, dst)

    def clean_sign(self, src, dst):
        return self._copy("clean_sign", src, dst)

    def sign_detached(self, src, dst):
        return self._copy("sign_detached", src, dst)

    def encrypt(self, src, dst, recipients):
        return self._copy("encrypt", src, dst)

    def verify_detached(self, content, signature):
        return True


def _message(files, **kwargs):
    return PortalClient._to_message(message_payload("m-1", files=files, **kwargs))


@pytest.fixture
def portal() -> MagicMock:
    return MagicMock(spec=PortalClient)


@pytest.fixture
def source(tmp_path: Path) -> Path:
    folder = tmp_path / "source"
    folder.mkdir()
    return folder


class TestExtractMessage:
    def test_decrypts_and_skips_signatures(self, portal, source: Path, tmp_path: Path) -> None:
        (source / "X.zip.enc").write_bytes(b"payload")
        (source / "X.zip.sig").write_bytes(b"signature")
        (source / "passport.xml").write_text(PASSPORT, encoding="utf-8")
        message = _message(
            [
                file_payload("f1", "X.zip.enc", encrypted=True),
                file_payload("f2", "X.zip.sig", signed_file="f1"),
                file_payload("f3", "passport.xml"),
            ]
        )

        info = ExtractionPipeline(portal, FakeCrypto()).extract_message(message, source, tmp_path / "docs")

        folder = tmp_path.resolve() / "docs" / "Inbox" / "2024-03" / "2024-03-04-77 Letter"
        assert info.folder == folder
        assert (folder / "X.zip").read_bytes() == b"payload"
        assert not (folder / "X.zip.enc").exists()
        assert not (folder / "X.zip.sig").exists()
        assert (folder / "passport.xml").exists()
        assert (folder / "info.txt").exists()
        assert not (source / "X.zip.enc").exists()

    def test_encrypted_form_is_decrypted_first(self, portal, source: Path, tmp_path: Path) -> None:
        (source / "passport.xml.enc").write_text(PASSPORT, encoding="utf-8")
        message = _message([file_payload("f1", "passport.xml.enc", encrypted=True)])
        crypto = FakeCrypto()

        info = ExtractionPipeline(portal, crypto).extract_message(message, source, tmp_path / "docs")

        assert info.number == "77"
        assert crypto.calls == [("decrypt", "passport.xml.enc")]
        assert (info.folder / "passport.xml").exists()

    def test_decrypt_failure_keeps_input(self, portal, source: Path, tmp_path: Path) -> None:
        (source / "report.pdf.enc").write_bytes(b"cipher")
        message = _message([file_payload("f1", "report.pdf.enc", encrypted=True)])

        info = ExtractionPipeline(portal, FakeCrypto(fail=("decrypt",))).extract_message(
            message, source, tmp_path / "docs"
        )

        assert (info.folder / "report.pdf.enc").read_bytes() == b"cipher"
        assert "Could not decrypt 'report.pdf.enc'." in (info.folder / "info.txt").read_text(encoding="utf-8")

    def test_missing_file_is_downloaded_once_then_noted(self, portal, source: Path, tmp_path: Path) -> None:
        portal.download_message_file.return_value = ApiResult.failure("Gone")
        message = _message([file_payload("f9", "missing.pdf")])

        info = ExtractionPipeline(portal, FakeCrypto()).extract_message(message, source, tmp_path / "docs")

        portal.download_message_file.assert_called_once_with("m-1", "f9", source / "missing.pdf")
        assert info.notes == ["File 'missing.pdf' could not be downloaded."]

    def test_missing_file_recovered_by_download(self, portal, source: Path, tmp_path: Path) -> None:
        def download(message_id, file_id, path):
            Path(path).write_bytes(b"late")
            return ApiResult.success(path)

        portal.download_message_file.side_effect = download
        message = _message([file_payload("f9", "late.pdf")])

        info = ExtractionPipeline(portal, FakeCrypto()).extract_message(message, source, tmp_path / "docs")

        assert (info.folder / "late.pdf").read_bytes() == b"late"
        assert info.notes == []

    def test_correlated_message_noted(self, portal, source: Path, tmp_path: Path) -> None:
        original = PortalClient._to_message(message_payload("orig-1", type="outbox", status="registered"))
        portal.get_message.return_value = ApiResult.success(original)
        message = _message([], CorrelationId="orig-1")

        info = ExtractionPipeline(portal, FakeCrypto()).extract_message(message, source, tmp_path / "docs")

        portal.get_message.assert_called_once_with("orig-1")
        assert info.notes[0].startswith("In reply to Outbox of ")

    def test_destination_that_cannot_be_created(self, portal, source: Path, tmp_path: Path) -> None:
        blocker = tmp_path / "docs"
        blocker.write_text("not a directory")

        with pytest.raises(DirectoryCreationError):
            ExtractionPipeline(portal, FakeCrypto()).extract_message(_message([]), source, blocker)


class TestExtractFile:
    def test_signed_file_is_cleaned(self, portal, source: Path, tmp_path: Path) -> None:
        (source / "act.pdf.sig").write_bytes(b"signed")

        result = ExtractionPipeline(portal, FakeCrypto()).extract_file(source / "act.pdf.sig", tmp_path / "out")

        assert result == tmp_path / "out" / "act.pdf"
        assert result.read_bytes() == b"signed"

    def test_encrypted_and_signed(self, portal, source: Path, tmp_path: Path) -> None:
        (source / "act.pdf.sig.enc").write_bytes(b"both")
        crypto = FakeCrypto()

        result = ExtractionPipeline(portal, crypto).extract_file(source / "act.pdf.sig.enc", tmp_path / "out")

        assert result.name == "act.pdf"
        assert [operation for operation, _ in crypto.calls] == ["decrypt", "clean_sign"]

    def test_crypto_exception_is_absorbed(self, portal, source: Path, tmp_path: Path) -> None:
        (source / "a.xml.enc").write_bytes(b"x")
        crypto = MagicMock()
        crypto.decrypt.side_effect = CryptoError("no key")
        notes: list[str] = []

        result = ExtractionPipeline(portal, crypto).extract_file(source / "a.xml.enc", tmp_path / "out", notes)

        assert result.name == "a.xml.enc"
        assert notes == ["Could not decrypt 'a.xml.enc'."]
