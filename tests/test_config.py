#!/usr/bin/env python

import unittest

from keg import config
from keg import filesystem as fs

from testsupport import KegTest


class ConfigTest(KegTest):
    def setUp(self):
        super().setUp()
        self.config = config.Config()
        self.global_ = self.config.add_file("global", self.path("config"))
        self.user = self.config.add_file("user", self.path("user"))
        self.cli = self.config.add_file("cli", None)

        with open(self.path("config"), "w") as f:
            f.write("[keg]\ncellar = /global/Cellar\ncolors = false\n\n[dependencies]\nlibtool = glibtoolize, libtoolize\n")
        self.config.load()

    def test_layers(self):
        self.assertEqual(self.config.get("keg", "cellar", None), "/global/Cellar")
        self.user.set("keg", "cellar", "/user/Cellar")
        self.assertEqual(self.config.get("keg", "cellar", None), "/user/Cellar")
        self.cli.set("keg", "cellar", "/cli/Cellar")
        self.assertEqual(self.config.get("keg", "cellar", None), "/cli/Cellar")
        self.assertEqual(self.config.get("keg", "cellar", None, alias="global"), "/global/Cellar")

    def test_default(self):
        self.assertEqual(self.config.get("keg", "cachedir", "/default"), "/default")
        self.assertEqual(self.config.get("nosection", "key", None), None)

    def test_items(self):
        self.assertEqual(self.config.items("global"), [
            ("dependencies", "libtool", "glibtoolize, libtoolize"),
            ("keg", "cellar", "/global/Cellar"),
            ("keg", "colors", "false"),
        ])

    def test_save_and_delete(self):
        self.config.set("keg", "cachedir", "/tmp/keg", alias="user")
        self.config.save()
        self.assertTrue(fs.path.exists(self.path("user")))

        reloaded = config.ConfigFile(self.path("user"))
        reloaded.load()
        self.assertEqual(reloaded.get("keg", "cachedir"), "/tmp/keg")

        self.assertEqual(self.config.delete("keg", "cachedir"), 1)
        self.assertEqual(self.config.get("keg", "cachedir", None), None)

    def test_split(self):
        self.assertEqual(config.split("keg.cellar"), ("keg", "cellar"))
        self.assertEqual(config.split("keg"), ("keg", None))


if __name__ == "__main__":
    unittest.main()
