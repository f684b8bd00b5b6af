# app/core/cert_storage.py
"""
Certificate artifacts on local disk.

    {CERTIFICATES_PATH}/{number}.pdf   served at /api/certificates/files/{number}.pdf
    {QR_CODE_PATH}/{number}.png        served at /api/certificates/qrcodes/{number}.png

Functions here block; async callers run them with anyio.to_thread.run_sync.
"""
import logging
import os
import tempfile
from pathlib import Path

from app.core.config import settings
from app.core.errors import CertificateGenerationError, ValidationError

logger = logging.getLogger(__name__)

PDF_URL_PREFIX = "/api/certificates/files"
QR_URL_PREFIX = "/api/certificates/qrcodes"


def certificates_dir() -> Path:
    return Path(settings.CERTIFICATES_PATH)


def qrcodes_dir() -> Path:
    return Path(settings.QR_CODE_PATH)


def ensure_dirs() -> None:
    try:
        certificates_dir().mkdir(parents=True, exist_ok=True)
        qrcodes_dir().mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CertificateGenerationError(f"Could not create certificate directories: {e}") from e


def pdf_filename(number: str) -> str:
    return f"{number}.pdf"


def qr_filename(number: str) -> str:
    return f"{number}.png"


def pdf_url(number: str) -> str:
    return f"{PDF_URL_PREFIX}/{pdf_filename(number)}"


def qr_url(number: str) -> str:
    return f"{QR_URL_PREFIX}/{qr_filename(number)}"


def _write_atomic(directory: Path, filename: str, data: bytes) -> Path:
    """Write to a temp file in the same directory, fsync, then rename into place."""
    target = directory / filename
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=target.suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except OSError as e:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise CertificateGenerationError(f"Could not write {filename}: {e}") from e
    return target


def write_qr(number: str, png_bytes: bytes) -> Path:
    return _write_atomic(qrcodes_dir(), qr_filename(number), png_bytes)


def write_pdf(number: str, pdf_bytes: bytes) -> Path:
    return _write_atomic(certificates_dir(), pdf_filename(number), pdf_bytes)


def _safe_name(filename: str, extension: str) -> str:
    if (
        not filename
        or ".." in filename
        or "/" in filename
        or "\\" in filename
        or "\x00" in filename
    ):
        logger.warning("Rejected certificate file name %r", filename)
        raise ValidationError("Invalid filename")
    if not filename.lower().endswith(extension):
        logger.warning("Rejected certificate file name %r (expected %s)", filename, extension)
        raise ValidationError("Invalid file type")
    return filename


def _resolve(directory: Path, filename: str, extension: str) -> Path | None:
    name = _safe_name(filename, extension)
    path = directory / name
    return path if path.is_file() else None


def resolve_pdf(filename: str) -> Path | None:
    """Path of a stored PDF, or None when missing. Raises ValidationError on unsafe names."""
    return _resolve(certificates_dir(), filename, ".pdf")


def resolve_qr(filename: str) -> Path | None:
    return _resolve(qrcodes_dir(), filename, ".png")


def pdf_path_for(pdf_url_value: str | None, number: str) -> Path | None:
    """Stored PDF for a certificate row: last segment of pdf_url, else {number}.pdf."""
    filename = (pdf_url_value or "").rsplit("/", 1)[-1] or pdf_filename(number)
    try:
        return resolve_pdf(filename)
    except ValidationError:
        return None
