#!/usr/bin/env python

import subprocess
import sys
import time
import unittest
from unittest import mock

from keg import filesystem as fs
from keg import utils
from keg.error import BuildStepFailed, ChecksumMismatch, DependencyUnavailable, FetchFailure
from keg.installer import RECEIPT, Installer

from testsupport import KegTest, skip_unless_executable


CONFIGURE = """#!/bin/sh
for arg in "$@"; do
  case "$arg" in
    --prefix=*) prefix="${arg#--prefix=}" ;;
  esac
done
printf 'all:\\n\\techo built > built.txt\\ninstall:\\n\\tmkdir -p %s/share\\n\\tcp built.txt %s/share/hello.txt\\n' "$prefix" "$prefix" > Makefile
"""

CONCURRENT_INSTALL = """
import os, sys, time
from fasteners import process_lock

lock = process_lock.InterProcessLock(sys.argv[1])
lock.acquire()
open(sys.argv[2], "w").close()
time.sleep(1)
os.makedirs(os.path.dirname(sys.argv[3]), exist_ok=True)
with open(sys.argv[3], "w") as f:
    f.write("{}")
lock.release()
"""

MAKE_STEPS = [
    ["./configure", "--prefix={prefix}"],
    ["make"],
    ["make", "install"],
]


@skip_unless_executable("sh")
class InstallerTest(KegTest):
    def setUp(self):
        super().setUp()
        self.installer = Installer(self.registry, cellar=self.cellar, cachedir=self.cachedir)

    def make_autotools_formula(self, name="hello", version="1.0"):
        archive = self.make_archive(name, version, {
            "configure": (CONFIGURE, 0o755),
            "README": "hello\n",
        })
        return self.make_formula(name, version, archive=archive, steps=MAKE_STEPS)()

    def marker_steps(self, marker):
        return [f"mkdir -p {{prefix}} && touch {{prefix}}/{marker}"]

    @skip_unless_executable("make")
    def test_install(self):
        formula = self.make_autotools_formula()
        prefix = self.installer.install(formula)

        self.assertEqual(prefix, fs.path.join(self.cellar, "hello", "1.0"))
        with open(fs.path.join(prefix, "share", "hello.txt")) as f:
            self.assertEqual(f.read().strip(), "built")
        self.assertTrue(self.installer.is_installed(formula))
        self.assertEqual(self.installer.installed(), [("hello", "1.0")])

        receipt = self.installer.receipt(formula)
        self.assertEqual(receipt["name"], "hello")
        self.assertEqual(receipt["version"], "1.0")
        self.assertEqual(receipt["checksum"], {"algorithm": "sha256", "digest": formula.sha256})
        self.assertEqual(receipt["steps"], formula.install_steps(prefix))

    @skip_unless_executable("make")
    def test_install_custom_prefix(self):
        formula = self.make_autotools_formula()
        prefix = self.installer.install(formula, prefix=self.path("opt", "hello"))

        self.assertEqual(prefix, self.path("opt", "hello"))
        self.assertTrue(fs.path.exists(fs.path.join(prefix, "share", "hello.txt")))
        self.assertFalse(fs.path.exists(fs.path.join(prefix, RECEIPT)))
        self.assertFalse(self.installer.is_installed(formula))

    def test_build_directory_removed(self):
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("done"))()
        self.installer.install(formula)
        self.assertEqual(fs.listdir(fs.path.join(self.cachedir, "tmp")), [])

    def test_keep_build_directory(self):
        installer = Installer(self.registry, cellar=self.cellar, cachedir=self.cachedir, keep_tmp=True)
        formula = self.make_formula("hello", "1.0", steps=["touch built"])()
        installer.install(formula)

        builddirs = fs.listdir(fs.path.join(self.cachedir, "tmp"))
        self.assertEqual(len(builddirs), 1)
        srcdir = fs.path.join(self.cachedir, "tmp", builddirs[0], "hello-1.0")
        self.assertTrue(fs.path.exists(fs.path.join(srcdir, "README")))
        self.assertTrue(fs.path.exists(fs.path.join(srcdir, "built")))

    def test_already_installed(self):
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("done"))()
        self.installer.install(formula)

        with mock.patch.object(self.installer.fetcher, "fetch") as fetch:
            self.installer.install(formula)
            fetch.assert_not_called()

    def test_force(self):
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("done"))()
        self.installer.install(formula)
        self.installer.force = True

        with mock.patch.object(self.installer.fetcher, "fetch", wraps=self.installer.fetcher.fetch) as fetch:
            self.installer.install(formula)
            fetch.assert_called_once()

    def test_checksum_mismatch_stops_before_dependencies(self):
        formula = self.make_formula("hello", "1.0", checksum="0" * 64, steps=self.marker_steps("done"))()

        with mock.patch.object(self.installer.resolver, "resolve") as resolve:
            with self.assertRaises(ChecksumMismatch):
                self.installer.install(formula)
            resolve.assert_not_called()
        self.assertFalse(fs.path.exists(self.installer.default_prefix(formula)))

    def test_fetch_failure(self):
        archive = self.make_archive("hello", "1.0")
        formula = self.make_formula("hello", "1.0", archive=archive, steps=self.marker_steps("done"))()
        fs.unlink(archive)

        with self.assertRaises(FetchFailure):
            self.installer.install(formula)
        self.assertFalse(fs.path.exists(self.installer.default_prefix(formula)))

    def test_unavailable_dependency_runs_no_steps(self):
        formula = self.make_formula(
            "hello", "1.0",
            depends_on={"keg-no-such-tool": "build"},
            steps=self.marker_steps("done"))()

        with mock.patch("keg.installer.Builder") as builder:
            with self.assertRaises(DependencyUnavailable):
                self.installer.install(formula)
            builder.assert_not_called()
        self.assertFalse(fs.path.exists(self.installer.default_prefix(formula)))

    def test_failed_step(self):
        formula = self.make_formula("hello", "1.0", steps=[
            "mkdir -p {prefix} && touch {prefix}/first",
            "exit 2",
            "touch {prefix}/third",
        ])()

        with self.assertRaises(BuildStepFailed) as cm:
            self.installer.install(formula)
        self.assertEqual(cm.exception.step_index, 1)
        self.assertEqual(cm.exception.exit_code, 2)
        self.assertFalse(self.installer.is_installed(formula))
        self.assertFalse(fs.path.exists(self.installer.default_prefix(formula)))

    def test_failed_step_custom_prefix_is_kept(self):
        prefix = self.path("opt", "hello")
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("first") + ["false"])()

        with self.assertRaises(BuildStepFailed):
            self.installer.install(formula, prefix=prefix)
        self.assertTrue(fs.path.exists(fs.path.join(prefix, "first")))

    def test_dependency_installed_first(self):
        tool = (
            "mkdir -p {prefix}/bin && "
            "printf '#!/bin/sh\\necho from-tool > \"$1\"\\n' > {prefix}/bin/keg-test-tool && "
            "chmod +x {prefix}/bin/keg-test-tool"
        )
        self.make_formula("tool", "2.0", steps=[tool])
        formula = self.make_formula(
            "hello", "1.0",
            depends_on={"tool": "build"},
            steps=["mkdir -p {prefix}", "keg-test-tool {prefix}/out.txt"])()

        prefix = self.installer.install(formula)

        with open(fs.path.join(prefix, "out.txt")) as f:
            self.assertEqual(f.read().strip(), "from-tool")
        self.assertEqual(sorted(self.installer.installed()), [("hello", "1.0"), ("tool", "2.0")])
        receipt = utils.fromjson(fs.path.join(prefix, RECEIPT))
        self.assertEqual(receipt["dependencies"][0]["name"], "tool")
        self.assertEqual(receipt["dependencies"][0]["origin"], "formula")
        self.assertEqual(receipt["dependencies"][0]["location"], fs.path.join(self.cellar, "tool", "2.0"))

    def test_incomplete_dependency_is_reinstalled(self):
        self.make_formula("tool", "2.0", steps=self.marker_steps("tool-done"))
        stale = fs.path.join(self.cellar, "tool", "2.0")
        fs.makedirs(fs.path.join(stale, "bin"))
        formula = self.make_formula(
            "hello", "1.0", depends_on={"tool": "build"}, steps=self.marker_steps("done"))()

        self.installer.install(formula)

        self.assertTrue(fs.path.exists(fs.path.join(stale, "tool-done")))
        self.assertTrue(fs.path.exists(fs.path.join(stale, RECEIPT)))

    def test_install_holds_lock(self):
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("done"))()
        lockpath = fs.path.join(self.cellar, ".locks", "hello_1_0.lock")

        with mock.patch("keg.installer.utils.LockFile", wraps=utils.LockFile) as lockfile:
            self.installer.install(formula)
        self.assertEqual(lockfile.call_args[0][0], lockpath)
        self.assertTrue(fs.path.exists(lockpath))

    def test_waits_for_concurrent_install(self):
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("done"))()
        lockpath = fs.path.join(self.cellar, ".locks", "hello_1_0.lock")
        ready = self.path("locked")
        fs.makedirs(fs.path.dirname(lockpath))

        other = subprocess.Popen([
            sys.executable, "-c", CONCURRENT_INSTALL,
            lockpath, ready, self.installer.receipt_path(formula)])
        self.addCleanup(other.wait)

        for _ in range(200):
            if fs.path.exists(ready):
                break
            time.sleep(0.05)
        self.assertTrue(fs.path.exists(ready))

        with mock.patch.object(self.installer.fetcher, "fetch") as fetch:
            prefix = self.installer.install(formula)
            fetch.assert_not_called()

        self.assertEqual(other.wait(), 0)
        self.assertEqual(prefix, self.installer.default_prefix(formula))
        self.assertFalse(fs.path.exists(fs.path.join(prefix, "done")))

    def test_uninstall(self):
        formula = self.make_formula("hello", "1.0", steps=self.marker_steps("done"))()
        self.installer.install(formula)
        self.installer.uninstall(formula)

        self.assertFalse(self.installer.is_installed(formula))
        self.assertFalse(fs.path.exists(fs.path.join(self.cellar, "hello")))
        self.assertEqual(self.installer.installed(), [])

    def test_uninstall_not_installed(self):
        formula = self.make_formula("hello", "1.0")()
        with self.assertRaisesRegex(Exception, "not installed"):
            self.installer.uninstall(formula)


class SourceRootTest(KegTest):
    def test_single_directory(self):
        fs.makedirs(self.path("build", "hello-1.0"))
        self.assertEqual(Installer.source_root(self.path("build")), self.path("build", "hello-1.0"))

    def test_flat_archive(self):
        fs.makedirs(self.path("build", "src"))
        with open(self.path("build", "configure"), "w") as f:
            f.write("")
        self.assertEqual(Installer.source_root(self.path("build")), self.path("build"))


if __name__ == "__main__":
    unittest.main()
