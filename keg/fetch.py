import hashlib

from keg import config
from keg import filesystem as fs
from keg import log
from keg import utils
from keg.error import ChecksumMismatch
from keg.tools import Tools


class Fetcher(object):
    """
    Downloads and verifies formula source archives.

    Archives are kept in a download cache directory. A cached archive is
    reused as long as its digest matches the formula checksum, so fetching
    the same formula twice only downloads it once. An archive that fails
    verification is always removed.
    """

    def __init__(self, cachedir=None, tools=None):
        self.cachedir = fs.path.join(cachedir or config.get_cachedir(), "downloads")
        self.tools = tools or Tools()

    def cache_path(self, formula):
        """ Location of the formula's archive in the download cache. """
        urlhash = utils.sha1(formula.url)[:16]
        return fs.path.join(self.cachedir, f"{urlhash}--{formula.filename}")

    def digest(self, formula, path):
        """ Computes the digest of a file with the formula's checksum algorithm. """
        hashfn = getattr(hashlib, formula.checksum.algorithm)
        return self.tools.checksum_file(path, hashfn=hashfn)

    def verify(self, formula, path):
        """
        Raises ChecksumMismatch unless the file matches the formula checksum.

        The file is removed if verification fails.
        """
        expected = formula.checksum.digest
        actual = self.digest(formula, path)
        if actual != expected:
            fs.unlink(path, ignore_errors=True)
            raise ChecksumMismatch(formula.url, formula.checksum.algorithm, expected, actual)
        log.verbose("Verified {} {}: {}", formula.filename, formula.checksum.algorithm.upper(), actual)
        return actual

    def is_cached(self, formula):
        path = self.cache_path(formula)
        if not fs.path.isfile(path):
            return False
        if self.digest(formula, path) != formula.checksum.digest:
            log.warning("Discarding cached archive with mismatching checksum: {}", path)
            fs.unlink(path, ignore_errors=True)
            return False
        return True

    def fetch(self, formula):
        """
        Fetches and verifies a formula's source archive.

        Returns:
            Path to the verified archive in the download cache.

        Raises:
            FetchFailure: The archive could not be downloaded.
            ChecksumMismatch: The downloaded archive does not match.
        """
        path = self.cache_path(formula)
        if self.is_cached(formula):
            log.verbose("Already downloaded: {}", path)
            return path

        fs.makedirs(self.cachedir)
        incomplete = path + ".incomplete"
        log.info("Fetching {}", formula.url)
        self.tools.download(formula.url, incomplete)
        self.verify(formula, incomplete)
        fs.rename(incomplete, path)
        return path
