#!/usr/bin/env python

import unittest
from unittest import mock

from keg import config
from keg import filesystem as fs
from keg.error import KegError
from keg.loader import FormulaLoader

from testsupport import KegTest


FORMULA_FILE = """
from keg import Formula


class _Gnu(Formula):
    homepage = "https://www.gnu.org/software/{name}/"
    steps = [
        ["./configure", "--prefix={prefix}"],
        ["make", "install"],
    ]


class Hello(_Gnu):
    url = "https://ftp.gnu.org/gnu/hello/hello-2.12.tar.gz"
    sha256 = "cf04af86dc085268c5f4470fbae49b18afbc221b78096aab842d934a76bad0ab"


class Sed(_Gnu):
    url = "https://ftp.gnu.org/gnu/sed/sed-4.9.tar.xz"
    sha256 = "6e226b732e1cd739464ad6862bd1a1aba42d7982922da7a53519631d24975181"
    depends_on = {"hello": "build"}
"""


class FormulaLoaderTest(KegTest):
    def setUp(self):
        super().setUp()
        self.loader = FormulaLoader(self.registry)

    def write(self, name, content):
        path = self.path("formulas", name)
        self.formuladir = self.path("formulas")
        fs.makedirs(self.formuladir)
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_load_file(self):
        path = self.write("gnu.py", FORMULA_FILE)
        classes = self.loader.load_file(path)

        self.assertEqual(sorted(cls.__name__ for cls in classes), ["Hello", "Sed"])
        self.assertEqual(self.registry.names(), ["hello", "sed"])
        self.assertEqual(self.registry.get_formula("sed").version, "4.9")

    def test_load_file_once(self):
        path = self.write("gnu.py", FORMULA_FILE)
        self.assertEqual(self.loader.load_file(path), self.loader.load_file(path))

    def test_load_directory(self):
        self.write("gnu.py", FORMULA_FILE)
        self.write("notes.txt", "not a formula")
        self.loader.load_path(self.formuladir)
        self.assertEqual(self.registry.versions("hello"), ["2.12"])

    def test_builtin(self):
        self.loader.load_builtin()
        self.assertEqual(self.registry.get_formula("libxo").version, "1.3.0")
        self.assertEqual(len(self.registry.versions("libxo")), 7)

    def test_load_configured_path(self):
        self.write("gnu.py", FORMULA_FILE)
        with mock.patch.object(config, "get_formulapath", return_value=[self.formuladir]):
            registry = self.loader.load()
        self.assertEqual(registry.names(), ["hello", "libxo", "sed"])

    def test_bad_extension(self):
        path = self.write("gnu.rb", FORMULA_FILE)
        with self.assertRaisesRegex(KegError, "extension"):
            self.loader.load_file(path)

    def test_missing_file(self):
        with self.assertRaisesRegex(KegError, "does not exist"):
            self.loader.load_file(self.path("missing.py"))

    def test_syntax_error(self):
        path = self.write("broken.py", "class Broken(:\n")
        with self.assertRaisesRegex(KegError, "Failed to load formula file"):
            self.loader.load_file(path)


if __name__ == "__main__":
    unittest.main()
