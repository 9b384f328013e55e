import re
import shlex
from collections import namedtuple

from keg import utils
from keg.error import KegError, raise_error, raise_error_if, raise_error_on_exception
from keg.version_utils import version as Version, version_from_url


Checksum = namedtuple("Checksum", ["algorithm", "digest"])
"""
A digest used to verify a downloaded archive.

The algorithm is a :mod:`hashlib` name, ``sha1`` or ``sha256``.
"""


_DIGEST_LENGTHS = {
    "sha1": 40,
    "sha256": 64,
}


class Dependency(namedtuple("Dependency", ["name", "role"])):
    """ A package required by a formula.

    Build dependencies are only needed while the formula is being built.
    Runtime dependencies must remain installed alongside the formula.
    """

    BUILD = "build"
    RUN = "run"

    @property
    def is_build(self):
        return self.role == Dependency.BUILD

    def __str__(self):
        return f"{self.name} ({self.role})"


class Step(object):
    """
    A single install command template.

    A step is either a complete shell command string or an argument vector.
    Argument vectors are quoted into a single shell command when rendered.
    Templates may reference ``{prefix}`` and any attribute of the formula,
    such as ``{name}`` and ``{version}``.
    """

    def __init__(self, command):
        raise_error_if(
            not command,
            "Install step must not be empty")
        if utils.is_str(command):
            self._argv = None
            self._command = command
        else:
            self._argv = tuple(str(arg) for arg in command)
            self._command = None

    @property
    def template(self):
        """ The unrendered command as one string. """
        if self._argv is None:
            return self._command
        return " ".join(self._argv)

    @property
    def argv(self):
        """ The unrendered argument vector, or None for a command string. """
        return self._argv

    def render(self, formula, prefix):
        """ Substitutes placeholders and returns a shell command string. """
        if self._argv is None:
            return utils.expand(self._command, prefix=prefix, _instance=formula)
        argv = [utils.expand(arg, prefix=prefix, _instance=formula) for arg in self._argv]
        return " ".join(_quote(arg) for arg in argv)

    def __eq__(self, other):
        return isinstance(other, Step) and \
            self._argv == other._argv and self._command == other._command

    def __hash__(self):
        return hash((self._argv, self._command))

    def __repr__(self):
        return f"Step({self._command!r})" if self._argv is None else f"Step({list(self._argv)!r})"


def _quote(arg):
    # Leading ./ and = assignments read better unquoted
    if re.match(r"^[\w@%+=:,./-]+$", arg):
        return arg
    return shlex.quote(arg)


class Formula(object):
    """
    A declarative package build descriptor.

    Each released version of a package is described by its own subclass.
    Subclasses declare their metadata as class attributes:

    .. code-block:: python

        class Libxo130(Formula):
            name = "libxo"
            version = "1.3.0"
            homepage = "https://github.com/Juniper/libxo"
            url = "https://github.com/Juniper/libxo/releases/download/{version}/libxo-{version}.tar.gz"
            sha1 = "0cceb5f35fb057db31d44fadf85123dd81a051c2"
            depends_on = {"libtool": "build"}
            steps = [
                ["./configure", "--disable-dependency-tracking", "--prefix={prefix}"],
                ["make"],
                ["make", "install"],
            ]

    Instances are read-only.
    """

    abstract = True
    """ Abstract formulas are base classes and are never registered. """

    name = None
    """ Package name. Defaults to the lowercase class name. """

    version = None
    """ Release version. Derived from the URL when not declared. """

    homepage = None
    """ Informational project URL. """

    url = None
    """ Source archive URL. May reference ``{name}`` and ``{version}``. """

    sha1 = None
    """ Expected SHA1 digest of the source archive (legacy). """

    sha256 = None
    """ Expected SHA256 digest of the source archive. """

    depends_on = {}
    """ Dependencies, mapping package name to role: ``"build"`` or ``"run"``. """

    steps = []
    """ Ordered install step templates, see :class:`Step`. """

    def __init__(self):
        cls = self.__class__
        name = cls.name or cls.__name__.lower()
        url = cls.url and utils.expand(cls.url, name=name, version=cls.version or "", ignore_errors=True)
        version = cls.version or (url and version_from_url(url))
        url = cls.url and utils.expand(cls.url, name=name, version=version or "", ignore_errors=True)
        attrs = {
            "name": name,
            "version": version,
            "homepage": cls.homepage,
            "url": url,
            "sha1": cls.sha1,
            "sha256": cls.sha256,
            "depends_on": tuple(
                Dependency(dep, role) for dep, role in (cls.depends_on or {}).items()),
            "steps": tuple(Step(step) for step in utils.as_list(cls.steps)),
        }
        for key, value in attrs.items():
            object.__setattr__(self, key, value)

    def __setattr__(self, name, value):
        raise KegError(f"Formula '{self.qualified_name}' is read-only")

    def __delattr__(self, name):
        raise KegError(f"Formula '{self.qualified_name}' is read-only")

    @property
    def qualified_name(self):
        """ The formula name and version: ``name@version``. """
        return utils.format_formula_name(self.name, self.version)

    @property
    def checksum(self):
        """ The expected archive :class:`Checksum`. """
        if self.sha256:
            return Checksum("sha256", self.sha256.lower())
        if self.sha1:
            return Checksum("sha1", self.sha1.lower())
        return None

    @property
    def filename(self):
        """ Basename of the source archive. """
        return self.url.rstrip("/").rsplit("/", 1)[-1]

    @property
    def build_dependencies(self):
        return [dep for dep in self.depends_on if dep.is_build]

    @property
    def runtime_dependencies(self):
        return [dep for dep in self.depends_on if not dep.is_build]

    def install_steps(self, prefix):
        """ Returns the install commands with ``{prefix}`` substituted. """
        raise_error_if(not prefix, "An install prefix is required")
        return [step.render(self, prefix) for step in self.steps]

    def validate(self):
        """ Raises a KegError if the descriptor is incomplete. """
        raise_error_if(not self.url, "Formula '{}' has no source URL", self.qualified_name)
        raise_error_if(not self.version, "Formula '{}' has no version and none could be derived from '{}'",
                       self.name, self.url)
        with raise_error_on_exception("Formula '{}' has a malformed version", self.qualified_name):
            Version(self.version)
        raise_error_if(self.sha1 and self.sha256,
                       "Formula '{}' declares more than one checksum", self.qualified_name)
        checksum = self.checksum
        raise_error_if(checksum is None, "Formula '{}' has no checksum", self.qualified_name)
        raise_error_if(
            not re.match(r"^[0-9a-f]{%d}$" % _DIGEST_LENGTHS[checksum.algorithm], checksum.digest),
            "Formula '{}' has a malformed {} digest: {}",
            self.qualified_name, checksum.algorithm, checksum.digest)
        raise_error_if(not self.steps, "Formula '{}' has no install steps", self.qualified_name)
        for step in self.steps:
            with raise_error_on_exception(
                    "Formula '{}' has an invalid install step '{}'", self.qualified_name, step.template):
                step.render(self, "/prefix")
        for dep in self.depends_on:
            raise_error_if(
                dep.role not in [Dependency.BUILD, Dependency.RUN],
                "Formula '{}' has unknown role '{}' for dependency '{}'",
                self.qualified_name, dep.role, dep.name)
            raise_error_if(
                dep.name == self.name,
                "Formula '{}' depends on itself", self.qualified_name)

    def __str__(self):
        return self.qualified_name

    def __repr__(self):
        return f"<Formula {self.qualified_name}>"


def is_abstract(cls):
    return cls.__dict__.get("abstract", False) or cls.__name__.startswith("_")


def is_formula(cls):
    return isinstance(cls, type) and issubclass(cls, Formula) and not is_abstract(cls)


@utils.Singleton
class FormulaRegistry(object):
    """ Index of formula classes by name and version. """

    def __init__(self):
        self.formulas = {}

    def add_formula_class(self, cls):
        """ Validates and registers a formula class. Returns the class. """
        raise_error_if(not is_formula(cls), "Not a concrete formula class: {}", cls)
        formula = cls()
        formula.validate()
        versions = self.formulas.setdefault(formula.name, {})
        existing = versions.get(formula.version)
        raise_error_if(
            existing is not None and existing is not cls,
            "Formula '{}' is already defined by {}",
            formula.qualified_name, existing.__qualname__ if existing else None)
        versions[formula.version] = cls
        return cls

    def get_formula_class(self, name, version=None):
        versions = self.formulas.get(name)
        raise_error_if(not versions, "No such formula: {}", name)
        if version is None:
            version = self.versions(name)[-1]
        cls = versions.get(version)
        if cls is None:
            raise_error("No such version of formula '{}': {} (available: {})",
                        name, version, ", ".join(self.versions(name)))
        return cls

    def get_formula(self, name, version=None):
        """
        Returns a formula instance.

        ``name`` may be given as ``name@version``. Without a version,
        the highest registered version is returned.
        """
        if version is None:
            name, version = utils.parse_formula_name(name)
        return self.get_formula_class(name, version)()

    def has_formula(self, name):
        return name in self.formulas

    def names(self):
        return sorted(self.formulas.keys())

    def versions(self, name):
        """ Registered versions of a formula, lowest first. """
        return sorted(self.formulas.get(name, {}).keys(), key=Version)

    def get_formula_classes(self):
        return [cls
                for name in self.names()
                for cls in (self.formulas[name][version] for version in self.versions(name))]
