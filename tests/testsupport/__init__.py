#!/usr/bin/env python

import hashlib
import io
import shutil
import tarfile
import unittest
from unittest import mock

from keg import config
from keg import filesystem as fs
from keg import log
from keg.formula import Formula, FormulaRegistry


log.set_level(log.ERROR)


def skip_unless_executable(*executables):
    missing = [exe for exe in executables if shutil.which(exe) is None]
    return unittest.skipIf(missing, "requires {}".format(", ".join(missing)))


def digest(path, algorithm="sha256"):
    with open(path, "rb") as f:
        return getattr(hashlib, algorithm)(f.read()).hexdigest()


class KegTest(unittest.TestCase):
    """
    Base class of keg tests.

    Every test gets a private scratch directory with its own cellar and
    cache, and an empty formula registry.
    """

    def setUp(self):
        self.tmpdir = fs.mkdtemp(prefix="keg-test-")
        self.addCleanup(fs.rmtree, self.tmpdir, ignore_errors=True)
        self.cellar = fs.path.join(self.tmpdir, "Cellar")
        self.cachedir = fs.path.join(self.tmpdir, "cache")
        self.registry = FormulaRegistry()

        for name, value in [
                ("get_cachedir", self.cachedir),
                ("get_cellar", self.cellar),
                ("get_logpath", fs.path.join(self.tmpdir, "logs"))]:
            patcher = mock.patch.object(config, name, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def path(self, *parts):
        return fs.path.join(self.tmpdir, *parts)

    def make_archive(self, name, version, files=None):
        """
        Creates a source tarball, ``<name>-<version>.tar.gz``.

        Files are given as a dictionary of relative path to content, or
        to a ``(content, mode)`` tuple. They are stored below a single
        ``<name>-<version>`` directory.
        """
        topdir = f"{name}-{version}"
        archive = self.path("archives", topdir + ".tar.gz")
        fs.makedirs(fs.path.dirname(archive))

        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo(topdir)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)

            for relpath, content in sorted((files or {"README": "hello\n"}).items()):
                content, mode = content if type(content) is tuple else (content, 0o644)
                data = content.encode()
                info = tarfile.TarInfo(fs.path.join(topdir, relpath))
                info.size = len(data)
                info.mode = mode
                tar.addfile(info, io.BytesIO(data))

        return archive

    def make_formula(self, name, version, archive=None, steps=None, depends_on=None,
                     algorithm="sha256", checksum=None, register=True):
        """ Creates a formula class for an archive and registers it. """
        archive = archive or self.make_archive(name, version)
        attrs = {
            "name": name,
            "version": version,
            "url": "file://" + archive,
            algorithm: checksum or digest(archive, algorithm),
            "depends_on": depends_on or {},
            "steps": steps or [["true"]],
        }
        cls = type(name.replace("-", "_").title(), (Formula,), attrs)
        if register:
            self.registry.add_formula_class(cls)
        return cls
