import os
from datetime import datetime, timezone

from keg import config
from keg import filesystem as fs
from keg import log
from keg import utils
from keg.builder import Builder
from keg.deps import RECEIPT, DependencyResolver, merge_environ
from keg.error import raise_error_if
from keg.fetch import Fetcher
from keg.formula import FormulaRegistry
from keg.tools import Tools
from keg.version import __version__


class Installer(object):
    """
    Installs formulas.

    The install of a formula is a linear pipeline:

    1. fetch the source archive and verify its checksum,
    2. resolve the formula's dependencies,
    3. extract the archive into a temporary build directory,
    4. run the install steps in the source tree.

    The first failing stage aborts the install. Formulas installed into
    their default prefix, ``<cellar>/<name>/<version>``, get an install
    receipt and are skipped by later installs unless forced. A failed
    install into the default prefix leaves no partial keg behind.
    """

    def __init__(self, registry=None, cellar=None, cachedir=None, force=False, keep_tmp=False):
        self.registry = registry or FormulaRegistry.get()
        self.cellar = fs.path.abspath(cellar or config.get_cellar())
        self.force = force
        self.keep_tmp = keep_tmp
        self.cachedir = fs.path.abspath(cachedir or config.get_cachedir())
        self.tools = Tools()
        self.fetcher = Fetcher(self.cachedir, tools=self.tools)
        self.resolver = DependencyResolver(
            self.registry, self.cellar, install=self._install_dependency, tools=self.tools)

    def default_prefix(self, formula):
        return fs.path.join(self.cellar, formula.name, formula.version)

    def receipt_path(self, formula):
        return fs.path.join(self.default_prefix(formula), RECEIPT)

    def is_installed(self, formula):
        return fs.path.isfile(self.receipt_path(formula))

    def receipt(self, formula):
        """ Returns the install receipt of a formula, or None if not installed. """
        if not self.is_installed(formula):
            return None
        return utils.fromjson(self.receipt_path(formula))

    def installed(self):
        """ Returns ``(name, version)`` pairs of formulas installed in the cellar. """
        if not fs.path.isdir(self.cellar):
            return []
        result = []
        for name in fs.listdir(self.cellar):
            namedir = fs.path.join(self.cellar, name)
            if not fs.path.isdir(namedir):
                continue
            for version in fs.listdir(namedir):
                if fs.path.isfile(fs.path.join(namedir, version, RECEIPT)):
                    result.append((name, version))
        return result

    def _lock(self, formula):
        lockdir = fs.path.join(self.cellar, ".locks")
        fs.makedirs(lockdir)
        return utils.LockFile(
            fs.path.join(lockdir, utils.canonical(formula.qualified_name) + ".lock"),
            log.info, "Waiting for another install of {} to finish", formula.qualified_name)

    def _install_dependency(self, formula, stack=()):
        return self.install(formula, stack=stack)

    @staticmethod
    def source_root(builddir):
        """ The single top-level directory of an extracted archive, if there is one. """
        entries = fs.listdir(builddir, hidden=True)
        if len(entries) == 1 and fs.path.isdir(fs.path.join(builddir, entries[0])):
            return fs.path.join(builddir, entries[0])
        return builddir

    def install(self, formula, prefix=None, stack=()):
        """
        Installs a formula.

        Args:
            formula: The Formula instance to install.
            prefix (str, optional): Install prefix. Defaults to the
                formula's directory in the cellar.

        Returns:
            The install prefix.

        Raises:
            FetchFailure, ChecksumMismatch, DependencyUnavailable,
            BuildStepFailed: The stage that failed. Later stages are
            not run.
        """
        default = prefix is None
        prefix = self.default_prefix(formula) if default else fs.path.abspath(prefix)

        if default and not self.force and self.is_installed(formula):
            log.info("{} is already installed in {}", formula.qualified_name, prefix)
            return prefix

        with self._lock(formula):
            # Another process may have installed it while we waited
            if default and not self.force and self.is_installed(formula):
                log.info("{} was installed in {}", formula.qualified_name, prefix)
                return prefix

            duration = utils.duration()
            log.info("Installing {} into {}", formula.qualified_name, prefix)

            archive = self.fetcher.fetch(formula)
            resolved = self.resolver.resolve(formula, stack)
            env = merge_environ(os.environ, DependencyResolver.environ(resolved))

            if default:
                fs.rmtree(prefix, ignore_errors=True)

            try:
                tmproot = fs.path.join(self.cachedir, "tmp")
                with self.tools.tmpdir(utils.canonical(formula.qualified_name), self.keep_tmp, tmproot) as builddir:
                    self.tools.extract(archive, builddir)
                    srcdir = self.source_root(builddir)
                    commands = Builder(formula, srcdir, prefix, env=env).run()
            except BaseException as e:
                if default:
                    fs.rmtree(prefix, ignore_errors=True)
                raise e

            if default:
                self._write_receipt(formula, prefix, resolved, commands)

            log.info("Installed {} in {} ({})", formula.qualified_name, prefix, duration)
            return prefix

    def _write_receipt(self, formula, prefix, resolved, commands):
        fs.makedirs(prefix)
        utils.tojson(fs.path.join(prefix, RECEIPT), {
            "name": formula.name,
            "version": formula.version,
            "url": formula.url,
            "checksum": {
                "algorithm": formula.checksum.algorithm,
                "digest": formula.checksum.digest,
            },
            "dependencies": [
                {"name": dep.name, "role": dep.dependency.role, "origin": dep.origin, "location": dep.location}
                for dep in resolved
            ],
            "steps": commands,
            "installed": datetime.now(timezone.utc).isoformat(),
            "keg": __version__,
        })

    def uninstall(self, formula):
        """ Removes a formula from its default prefix. """
        raise_error_if(
            not self.is_installed(formula),
            "{} is not installed", formula.qualified_name)
        with self._lock(formula):
            prefix = self.default_prefix(formula)
            fs.rmtree(prefix)
            namedir = fs.path.dirname(prefix)
            if not fs.listdir(namedir, hidden=True):
                fs.rmtree(namedir, ignore_errors=True)
            log.info("Uninstalled {}", formula.qualified_name)
            return prefix
