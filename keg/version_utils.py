import re


class version(object):
    """ A dotted numeric release version, e.g. ``1.3.0``. """

    def __init__(self, verstr):
        if type(verstr) is str:
            match = re.search(r"(?P<numbers>[\d]+(\.[\d]+)*)", verstr)
            if not match:
                raise ValueError(verstr)
            self.components = tuple(int(n) for n in match.group("numbers").split("."))
        elif type(verstr) is tuple:
            if len(verstr) < 1:
                raise ValueError(verstr)
            self.components = tuple(int(n) for n in verstr)
        else:
            raise ValueError(verstr)

    def _key(self):
        components = list(self.components)
        while len(components) > 1 and components[-1] == 0:
            components.pop()
        return tuple(components)

    def __str__(self):
        return ".".join(str(n) for n in self.components)

    def __repr__(self):
        return str(self)

    def __hash__(self):
        return hash(self._key())

    def __eq__(self, version):
        return self._key() == version._key()

    def __lt__(self, version):
        return self._key() < version._key()

    def __le__(self, version):
        return self < version or self == version

    def __gt__(self, version):
        return version < self

    def __ge__(self, version):
        return self > version or self == version


_ARCHIVE_EXTENSIONS = r"(\.tar(\.(gz|bz2|xz|zst))?|\.tgz|\.zip)$"


def version_from_url(url):
    """
    Derives a release version from an archive URL.

    The archive basename is expected to follow the ``<name>-<version>.<ext>``
    convention, e.g. ``libxo-1.3.0.tar.gz``. Returns None if no version
    can be found.
    """
    basename = url.rstrip("/").rsplit("/", 1)[-1]
    basename = re.sub(_ARCHIVE_EXTENSIONS, "", basename)
    match = re.search(r"[-_]v?(?P<version>\d+(\.\d+)*[a-z0-9.]*)$", basename)
    if not match:
        return None
    return match.group("version")
