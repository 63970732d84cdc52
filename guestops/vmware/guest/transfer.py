# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/guest/transfer.py
"""
Whole-file upload/download to and from a guest.

The control plane (InitiateFileTransfer{To,From}Guest) hands out a one-shot
URL on the ESXi host; the data plane is a plain HTTP PUT/GET against it.

TLS:
  - if the client holds a thumbprint for the URL's host[:port] (registered by
    GuestFileManager.transfer_url, or configured for a direct ESXi
    connection), the peer certificate is pinned to it;
  - otherwise certificates are verified unless the client is insecure.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
from contextlib import closing
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Optional, Union
from urllib.parse import urlsplit

import requests
import requests.adapters
import urllib3

from ...core.exceptions import TransferError
from ...core.logger import get_logger
from ...core.retry import retry_operation
from .builders import posix_attributes

ProgressFn = Callable[[int, int], None]  # (done_bytes, total_bytes)

DEFAULT_CHUNK_SIZE = 1024 * 1024


class FingerprintAdapter(requests.adapters.HTTPAdapter):
    """HTTPAdapter whose connections must present a certificate with this fingerprint."""

    def __init__(self, fingerprint: str, **kwargs: Any) -> None:
        # HTTPAdapter.__init__ builds the pool manager, so set this first.
        self.fingerprint = fingerprint
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["assert_fingerprint"] = self.fingerprint
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


class _ProgressReader:
    """File wrapper reporting bytes read; keeps ``len()`` so requests sends Content-Length."""

    def __init__(self, fh: BinaryIO, total: int, progress: ProgressFn) -> None:
        self._fh = fh
        self._total = total
        self._progress = progress
        self._done = 0

    def __len__(self) -> int:
        return self._total

    def read(self, size: int = -1) -> bytes:
        chunk = self._fh.read(size)
        if chunk:
            self._done += len(chunk)
            self._progress(self._done, self._total)
        return chunk


def _authority(url: str) -> str:
    return urlsplit(url).netloc.rpartition("@")[2]


def _safe_url(url: str) -> str:
    # The query string carries the transfer ticket.
    p = urlsplit(url)
    return p._replace(query="", fragment="").geturl()


def _guest_basename(guest_path: str) -> str:
    # Guest paths may use either separator (Linux or Windows guests).
    return re.split(r"[\\/]", guest_path.rstrip("\\/"))[-1] or "download"


def is_transient(e: BaseException) -> bool:
    """5xx answers and connection-level failures are worth another attempt."""
    if not isinstance(e, TransferError):
        return False
    status = (e.context or {}).get("status")
    if status is not None:
        return int(status) >= 500
    return isinstance(e.cause, (requests.ConnectionError, requests.Timeout))


class GuestTransfer:
    """Upload and download whole files through a GuestFileManager."""

    def __init__(
        self,
        file_manager: Any,
        *,
        timeout: Optional[float] = None,
        retries: int = 0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"Invalid chunk size: {chunk_size}")
        self.file_manager = file_manager
        self.client = file_manager.client
        self.timeout = timeout
        self.retries = max(0, int(retries))
        self.chunk_size = int(chunk_size)
        self.logger = get_logger(logger)
        self.session = session if session is not None else requests.Session()
        self._pinned: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _verify_for(self, url: str) -> bool:
        """Mount a pinning adapter when a thumbprint is known; return requests' ``verify``."""
        p = urlsplit(url)
        authority = _authority(url)
        thumbprint = self.client.thumbprint(authority)
        if thumbprint and p.scheme == "https":
            if self._pinned.get(authority) != thumbprint:
                self.session.mount(f"https://{authority}/", FingerprintAdapter(thumbprint))
                self._pinned[authority] = thumbprint
                self.logger.debug("Pinning %s to thumbprint %s", authority, thumbprint)
            # The pin replaces chain validation (ESXi certs are often self-signed).
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            return False
        if self.client.insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            return False
        return True

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        verify = self._verify_for(url)
        try:
            resp = self.session.request(method, url, verify=verify, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransferError(
                msg=f"{method} {_safe_url(url)} failed: {e}",
                cause=e,
                context={"method": method, "url": _safe_url(url)},
            ) from e
        if not 200 <= resp.status_code < 300:
            reason = resp.reason or ""
            resp.close()
            raise TransferError(
                msg=f"{method} {_safe_url(url)}: HTTP {resp.status_code} {reason}".rstrip(),
                context={"method": method, "url": _safe_url(url), "status": resp.status_code},
            )
        return resp

    def _retrying(self, op: Callable[[], Any], name: str) -> Any:
        return retry_operation(
            op,
            max_attempts=self.retries + 1,
            base_backoff_s=1.0,
            max_backoff_s=20.0,
            jitter_s=0.5,
            exceptions=TransferError,
            should_retry=is_transient,
            operation_name=name,
            logger=self.logger,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def upload(
        self,
        auth: Any,
        local_path: Union[str, Path],
        guest_path: str,
        *,
        overwrite: bool = False,
        attributes: Any = None,
        progress: Optional[ProgressFn] = None,
    ) -> str:
        """Copy a local file into the guest. Returns the URL the body was sent to."""
        src = Path(local_path).expanduser()
        if not src.is_file():
            raise TransferError(code=2, msg=f"not a regular file: {src}", context={"local": str(src)})
        size = src.stat().st_size

        raw = self.file_manager.initiate_file_transfer_to_guest(
            auth,
            guest_path,
            attributes if attributes is not None else posix_attributes(),
            size,
            overwrite,
        )
        url = self.file_manager.transfer_url(raw)
        self.logger.info("Uploading %s -> %s (%d bytes)", src, guest_path, size)

        def attempt() -> None:
            with src.open("rb") as fh:
                body: Any = _ProgressReader(fh, size, progress) if progress else fh
                resp = self._send("PUT", url, data=body, headers={"Content-Length": str(size)})
                resp.close()

        self._retrying(attempt, f"upload {guest_path}")
        return url

    def download(
        self,
        auth: Any,
        guest_path: str,
        local_path: Union[str, Path],
        *,
        progress: Optional[ProgressFn] = None,
    ) -> Path:
        """
        Copy a guest file to ``local_path`` (a file, or an existing directory).

        Written to a temp file beside the target and renamed into place once
        the byte count matches what the guest reported.
        """
        info = self.file_manager.initiate_file_transfer_from_guest(auth, guest_path)
        url = self.file_manager.transfer_url(info.url)
        total = int(getattr(info, "size", 0) or 0)

        dst = Path(local_path).expanduser()
        if dst.is_dir():
            dst = dst / _guest_basename(guest_path)
        dst.parent.mkdir(parents=True, exist_ok=True)
        self.logger.info("Downloading %s -> %s (%d bytes)", guest_path, dst, total)

        def attempt() -> int:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".part", dir=str(dst.parent))
            tmp = Path(tmp_name)
            try:
                done = 0
                with os.fdopen(fd, "wb") as out:
                    with closing(self._send("GET", url, stream=True)) as resp:
                        for chunk in resp.iter_content(chunk_size=self.chunk_size):
                            if not chunk:
                                continue
                            out.write(chunk)
                            done += len(chunk)
                            if progress:
                                progress(done, total)
                if total and done != total:
                    raise TransferError(
                        msg=f"short download of {guest_path}: got {done} of {total} bytes",
                        context={"guest_path": guest_path, "expected": total, "received": done},
                    )
                os.replace(tmp, dst)
                return done
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise

        self._retrying(attempt, f"download {guest_path}")
        return dst
