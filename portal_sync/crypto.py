"""Crypto collaborator: the engine that decrypts, signs and verifies files."""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Iterable, Protocol

from .config import Settings

logger = logging.getLogger(__name__)


class CryptoService(Protocol):
    """Opaque certificate-based engine. Every call returns True on success."""

    def decrypt(self, src: Path, dst: Path) -> bool: ...

    def clean_sign(self, src: Path, dst: Path) -> bool: ...

    def sign_detached(self, src: Path, dst: Path) -> bool: ...

    def encrypt(self, src: Path, dst: Path, recipients: Iterable[str]) -> bool: ...

    def verify_detached(self, content: Path, signature: Path) -> bool: ...


class CommandLineCrypto:
    """Run a vendor crypto utility with configurable command templates.

    Templates are formatted with `src`, `dst` and `cert`; the PIN, when set,
    is appended as `-pin`.
    """

    def __init__(
        self,
        util: str,
        thumbprint: str | None = None,
        pin: str | None = None,
        *,
        decrypt_command: str,
        encrypt_command: str,
        sign_detached_command: str,
        verify_detached_command: str,
        clean_sign_command: str,
        timeout: float = 300.0,
    ) -> None:
        self.util = util
        self.thumbprint = thumbprint
        self.pin = pin
        self.decrypt_command = decrypt_command
        self.encrypt_command = encrypt_command
        self.sign_detached_command = sign_detached_command
        self.verify_detached_command = verify_detached_command
        self.clean_sign_command = clean_sign_command
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> CommandLineCrypto:
        return cls(
            settings.crypto_util,
            settings.crypto_thumbprint,
            settings.crypto_pin,
            decrypt_command=settings.crypto_decrypt_command,
            encrypt_command=settings.crypto_encrypt_command,
            sign_detached_command=settings.crypto_sign_detached_command,
            verify_detached_command=settings.crypto_verify_detached_command,
            clean_sign_command=settings.crypto_clean_sign_command,
        )

    def decrypt(self, src: Path, dst: Path) -> bool:
        return self._run(self.decrypt_command, src, dst, self.thumbprint) and Path(dst).exists()

    def clean_sign(self, src: Path, dst: Path) -> bool:
        return self._run(self.clean_sign_command, src, dst) and Path(dst).exists()

    def sign_detached(self, src: Path, dst: Path) -> bool:
        return self._run(self.sign_detached_command, src, dst, self.thumbprint) and Path(dst).exists()

    def encrypt(self, src: Path, dst: Path, recipients: Iterable[str]) -> bool:
        certs = [self.thumbprint, *recipients] if self.thumbprint else list(recipients)
        if not certs:
            logger.error("No recipient certificates to encrypt %s", src)
            return False
        template = self.encrypt_command
        extra = "".join(f" -thumbprint {cert}" for cert in certs[1:])
        return self._run(template + extra, src, dst, certs[0]) and Path(dst).exists()

    def verify_detached(self, content: Path, signature: Path) -> bool:
        return self._run(self.verify_detached_command, content, signature)

    def _run(self, template: str, src: Path, dst: Path, cert: str | None = None) -> bool:
        arguments = template.format(src=src, dst=dst, cert=cert or "")
        command = [self.util, *shlex.split(arguments)]
        logger.debug("Running %s", shlex.join(command))
        if self.pin:
            command += ["-pin", self.pin]
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error("Crypto utility %s failed to run: %s", self.util, exc)
            return False
        if completed.returncode != 0:
            logger.error(
                "Crypto utility exited with %s for %s: %s",
                completed.returncode,
                Path(src).name,
                (completed.stderr or completed.stdout).strip(),
            )
            return False
        return True
