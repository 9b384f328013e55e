import glob
import importlib
import inspect
import pkgutil
import sys
from importlib.machinery import SourceFileLoader
from types import ModuleType

from keg import config
from keg import filesystem as fs
from keg import log
from keg import utils
from keg.error import raise_error_if, raise_error_on_exception
from keg.formula import FormulaRegistry, is_formula


class FormulaFile(object):
    """ A Python file defining one or more formula classes. """

    def __init__(self, path):
        self.path = path
        self.formulas = []

    def load(self):
        """
        Executes the file and collects its formula classes.

        Every concrete subclass of :class:`~keg.formula.Formula` defined in
        the file is made available. Classes named with a leading underscore,
        or with ``abstract = True``, are treated as base classes.
        """
        name = "kegfile_{0}".format(utils.canonical(self.path))
        loader = SourceFileLoader(name, self.path)
        module = ModuleType(loader.name)
        module.__file__ = self.path
        sys.modules[loader.name] = module
        with raise_error_on_exception("Failed to load formula file '{}'", self.path):
            loader.exec_module(module)

        self.formulas = [
            cls for _, cls in inspect.getmembers(module, is_formula)
            if cls.__module__ == module.__name__
        ]
        log.verbose("Loaded: {0}", self.path)
        return self.formulas


@utils.Singleton
class FormulaLoader(object):
    """
    Populates the formula registry.

    Built-in formulas are imported from the :mod:`keg.formulas` package.
    Additional formula files are loaded from the directories listed in
    the ``keg.formulapath`` configuration key.
    """

    def __init__(self, registry=None):
        self._registry = registry or FormulaRegistry.get()
        self._files = {}
        self._builtin_loaded = False

    def load_builtin(self):
        if self._builtin_loaded:
            return
        import keg.formulas
        for info in pkgutil.iter_modules(keg.formulas.__path__):
            module = importlib.import_module("keg.formulas." + info.name)
            for _, cls in inspect.getmembers(module, is_formula):
                if cls.__module__ == module.__name__:
                    self._registry.add_formula_class(cls)
        self._builtin_loaded = True

    def load_file(self, path):
        """ Loads a single formula file and registers its formulas. """
        path = fs.path.abspath(path)
        if path in self._files:
            return self._files[path].formulas

        raise_error_if(not fs.path.isfile(path), "File does not exist: {}", path)
        _, ext = fs.path.splitext(path)
        raise_error_if(ext != ".py", "Invalid formula file extension: {}", ext)

        formula_file = FormulaFile(path)
        for cls in formula_file.load():
            self._registry.add_formula_class(cls)
        self._files[path] = formula_file
        return formula_file.formulas

    def load_path(self, searchpath):
        """ Loads a formula file, or all formula files in a directory. """
        if fs.path.isdir(searchpath):
            formulas = []
            for path in sorted(glob.glob(fs.path.join(searchpath, "*.py"))):
                formulas += self.load_file(path)
            return formulas
        return self.load_file(searchpath)

    def load(self):
        """ Loads built-in formulas and all configured formula paths. """
        self.load_builtin()
        for searchpath in config.get_formulapath():
            self.load_path(searchpath)
        return self._registry
