from dataclasses import dataclass
import hashlib
from pathlib import Path
import posixpath
import tarfile
import tempfile
from typing import IO

from loguru import logger
import requests
import requests.adapters

from gitopssets.context import ReconcileContext
from gitopssets.errors import ChecksumMismatchError, DataError, EndpointError, PathTraversalError, TransientError
from gitopssets.tools.fs import secure_join

_ALGORITHMS_BY_LENGTH = {40: "sha1", 64: "sha256", 128: "sha512"}


@dataclass
class ArchiveFetcher:
    """
    Downloads a gzipped tarball, verifies its checksum and extracts it into a directory. Downloads are retried by
    the session's adapter; the checksum is verified before a single file is extracted.
    """

    session: requests.Session
    """ The session to download archives with. Use `ArchiveFetcher.default()` for a session that retries. """

    max_size: int | None = None
    """ The maximum size of the downloaded archive and of its extracted contents in bytes. `None` means unlimited. """

    timeout: float = 30
    """ Timeout for connecting to the server and for waiting on data, in seconds. """

    chunk_size: int = 64 * 1024

    @staticmethod
    def default(retries: int = 9, max_size: int | None = None, timeout: float = 30) -> "ArchiveFetcher":
        """
        Create an archive fetcher with a session that retries failed downloads up to *retries* times.
        """

        adapter = requests.adapters.HTTPAdapter(
            max_retries=requests.adapters.Retry(
                total=retries,
                backoff_factor=0.5,
                backoff_max=10,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET"],
            )
        )
        session = requests.Session()
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return ArchiveFetcher(session, max_size=max_size, timeout=timeout)

    def fetch(self, ctx: ReconcileContext, url: str, checksum: str, directory: Path) -> None:
        """
        Download the archive at *url* and extract it into *directory*.

        Args:
            url: The URL of the archive.
            checksum: The expected checksum, either as `<algorithm>:<hex digest>` or as a bare hex digest.
            directory: The directory to extract the archive into.
        Raises:
            TransientError: If the archive could not be downloaded.
            ChecksumMismatchError: If the archive does not match the checksum.
            PathTraversalError: If a member of the archive would be extracted outside of *directory*.
            DataError: If the archive is not a valid tarball or exceeds the size limit.
        """

        algorithm, expected = parse_checksum(checksum)

        with tempfile.TemporaryFile() as archive:
            actual = self._download(ctx, url, algorithm, archive)
            if actual != expected:
                raise ChecksumMismatchError(url, checksum, f"{algorithm}:{actual}")

            archive.seek(0)
            self._extract(url, archive, directory)

    def _download(self, ctx: ReconcileContext, url: str, algorithm: str, fp: IO[bytes]) -> str:
        hasher = hashlib.new(algorithm)
        size = 0

        logger.debug("Fetching archive {}", url)
        try:
            response = self.session.get(url, stream=True, timeout=ctx.timeout(self.timeout))
            try:
                if response.status_code >= 400:
                    raise EndpointError(url, response.status_code)
                for chunk in response.iter_content(self.chunk_size):
                    ctx.check()
                    size += len(chunk)
                    if self.max_size is not None and size > self.max_size:
                        raise DataError(f"archive {url} exceeds the maximum size of {self.max_size} bytes")
                    hasher.update(chunk)
                    fp.write(chunk)
            finally:
                response.close()
        except requests.RequestException as exc:
            raise TransientError(f"failed to fetch archive {url}: {exc}") from exc

        logger.debug("Fetched {} bytes from {}", size, url)
        return hasher.hexdigest()

    def _extract(self, url: str, fp: IO[bytes], directory: Path) -> None:
        try:
            with tarfile.open(fileobj=fp, mode="r:*") as tar:
                members = []
                total = 0
                for member in tar.getmembers():
                    secure_join(directory, member.name)
                    if member.issym():
                        if posixpath.isabs(member.linkname):
                            raise PathTraversalError(member.linkname, directory)
                        secure_join(directory, posixpath.join(posixpath.dirname(member.name), member.linkname))
                    elif member.islnk():
                        secure_join(directory, member.linkname)
                    elif not (member.isfile() or member.isdir()):
                        logger.warning("Skipping special file '{}' in archive {}", member.name, url)
                        continue

                    total += member.size
                    if self.max_size is not None and total > self.max_size:
                        raise DataError(f"archive {url} extracts to more than {self.max_size} bytes")
                    members.append(member)

                tar.extractall(directory, members=members, filter="data")
        except tarfile.TarError as exc:
            raise DataError(f"failed to extract archive {url}: {exc}") from exc


def parse_checksum(checksum: str) -> tuple[str, str]:
    """
    Split a checksum into the hash algorithm and the lower-case hex digest. Bare digests are matched to an algorithm
    by their length.

    Raises:
        DataError: If the checksum can not be interpreted.
    """

    algorithm, sep, digest = checksum.strip().partition(":")
    if not sep:
        digest = algorithm
        algorithm = _ALGORITHMS_BY_LENGTH.get(len(digest), "")
    algorithm = algorithm.lower()
    if algorithm not in hashlib.algorithms_available or not digest:
        raise DataError(f"unsupported archive checksum {checksum!r}")
    return algorithm, digest.lower()
