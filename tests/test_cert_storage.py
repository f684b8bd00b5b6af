"""
Tests for certificate artifact storage.
"""
import pytest

from app.core import cert_storage
from app.core.errors import ValidationError


class TestUrls:

    def test_pdf_url(self):
        assert cert_storage.pdf_url("CERT-1-AB") == "/api/certificates/files/CERT-1-AB.pdf"

    def test_qr_url(self):
        assert cert_storage.qr_url("CERT-1-AB") == "/api/certificates/qrcodes/CERT-1-AB.png"


class TestWrite:

    def test_write_and_resolve(self, cert_dirs):
        cert_storage.ensure_dirs()
        cert_storage.write_pdf("CERT-1-AB", b"%PDF-1.4 test")
        cert_storage.write_qr("CERT-1-AB", b"png")

        pdf = cert_storage.resolve_pdf("CERT-1-AB.pdf")
        assert pdf is not None
        assert pdf.read_bytes() == b"%PDF-1.4 test"
        assert cert_storage.resolve_qr("CERT-1-AB.png").read_bytes() == b"png"

    def test_no_temp_files_left(self, cert_dirs):
        pdf_dir, _ = cert_dirs
        cert_storage.ensure_dirs()
        cert_storage.write_pdf("CERT-1-AB", b"data")
        assert sorted(p.name for p in pdf_dir.iterdir() if p.is_file()) == ["CERT-1-AB.pdf"]

    def test_overwrite(self, cert_dirs):
        cert_storage.ensure_dirs()
        cert_storage.write_pdf("CERT-1-AB", b"one")
        cert_storage.write_pdf("CERT-1-AB", b"two")
        assert cert_storage.resolve_pdf("CERT-1-AB.pdf").read_bytes() == b"two"

    def test_missing_file(self, cert_dirs):
        cert_storage.ensure_dirs()
        assert cert_storage.resolve_pdf("CERT-0-00.pdf") is None


class TestFilenameGuard:

    @pytest.mark.parametrize("name", ["../secret.pdf", "a/b.pdf", "a\\b.pdf", "..pdf", "x\x00.pdf", ""])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(ValidationError):
            cert_storage.resolve_pdf(name)

    def test_rejects_wrong_extension(self):
        with pytest.raises(ValidationError):
            cert_storage.resolve_qr("CERT-1-AB.pdf")

    def test_pdf_path_for_falls_back_to_number(self, cert_dirs):
        cert_storage.ensure_dirs()
        cert_storage.write_pdf("CERT-1-AB", b"data")
        assert cert_storage.pdf_path_for(None, "CERT-1-AB").name == "CERT-1-AB.pdf"

    def test_pdf_path_for_unsafe_url(self):
        assert cert_storage.pdf_path_for("/api/certificates/files/..", "CERT-1-AB") is None
