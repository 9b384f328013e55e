from keg import config
from keg import filesystem as fs
from keg import log
from keg import utils
from keg.error import DependencyUnavailable, KegError
from keg.tools import Tools


# Executables probed on PATH when a dependency isn't provided by a formula
_SYSTEM_EXECUTABLES = {
    "autoconf": ["autoconf"],
    "automake": ["automake"],
    "libtool": ["libtoolize", "glibtoolize", "libtool"],
    "pkg-config": ["pkg-config", "pkgconf"],
}

# Written into a default prefix once its install completed
RECEIPT = "INSTALL_RECEIPT.json"

# Search path variables contributed by an installed prefix
_PREFIX_PATHS = [
    ("PATH", "bin"),
    ("ACLOCAL_PATH", fs.path.join("share", "aclocal")),
    ("PKG_CONFIG_PATH", fs.path.join("lib", "pkgconfig")),
]


class ResolvedDependency(object):
    """ A dependency that is available to the build. """

    FORMULA = "formula"
    SYSTEM = "system"

    def __init__(self, dependency, origin, location, environ=None):
        self.dependency = dependency
        self.origin = origin
        self.location = location
        self.environ = environ or {}

    @property
    def name(self):
        return self.dependency.name

    def __str__(self):
        return f"{self.name} ({self.origin}: {self.location})"


def system_executables(name):
    """ Executables that indicate a dependency is installed on the host. """
    configured = config.getlist("dependencies", name)
    return configured or _SYSTEM_EXECUTABLES.get(name, [name])


def prefix_environ(prefix):
    """ Search path variables for an install prefix, for existing directories only. """
    environ = {}
    for key, subdir in _PREFIX_PATHS:
        path = fs.path.join(prefix, subdir)
        if fs.path.isdir(path):
            environ.setdefault(key, []).append(path)
    return environ


def merge_environ(env, additions):
    """ Prepends search path additions to an environment dictionary. """
    env = dict(env)
    for key, paths in additions.items():
        current = env.get(key)
        env[key] = fs.pathsep.join(paths + ([current] if current else []))
    return env


class DependencyResolver(object):
    """
    Makes the dependencies of a formula available to its build.

    A dependency is resolved, in order, from:

    1. a registered formula of the same name already installed in the cellar,
    2. a registered formula installed on demand through ``install``,
    3. executables found on the host PATH, if ``keg.system_dependencies``
       is enabled.

    Anything else raises DependencyUnavailable.
    """

    def __init__(self, registry, cellar, install=None, tools=None):
        self.registry = registry
        self.cellar = cellar
        self.install = install
        self.tools = tools or Tools()

    def _installed_prefix(self, formula):
        prefix = fs.path.join(self.cellar, formula.name, formula.version)
        return prefix if fs.path.isfile(fs.path.join(prefix, RECEIPT)) else None

    def _resolve_formula(self, dependency, stack):
        formula = self.registry.get_formula(dependency.name)
        if formula.name in [utils.parse_formula_name(name)[0] for name in stack]:
            raise DependencyUnavailable(
                dependency.name,
                "dependency cycle: " + " -> ".join(list(stack) + [formula.qualified_name]))

        prefix = self._installed_prefix(formula)
        if prefix is None:
            if self.install is None:
                raise DependencyUnavailable(dependency.name, f"{formula.qualified_name} is not installed")
            log.info("Installing dependency {}", formula.qualified_name)
            try:
                prefix = self.install(formula, stack=stack)
            except DependencyUnavailable:
                raise
            except KegError as e:
                raise DependencyUnavailable(dependency.name, str(e))

        return ResolvedDependency(
            dependency, ResolvedDependency.FORMULA, prefix, prefix_environ(prefix))

    def _resolve_system(self, dependency):
        for executable in system_executables(dependency.name):
            path = self.tools.which(executable)
            if path:
                return ResolvedDependency(
                    dependency, ResolvedDependency.SYSTEM, path,
                    {"PATH": [fs.path.dirname(path)]})
        return None

    def resolve_one(self, dependency, stack=()):
        if self.registry.has_formula(dependency.name):
            return self._resolve_formula(dependency, stack)

        if config.use_system_dependencies():
            resolved = self._resolve_system(dependency)
            if resolved is not None:
                return resolved
            raise DependencyUnavailable(
                dependency.name,
                "no formula and none of [{}] found on PATH".format(
                    ", ".join(system_executables(dependency.name))))

        raise DependencyUnavailable(dependency.name, "no formula and system dependencies are disabled")

    def resolve(self, formula, stack=()):
        """
        Resolves all dependencies of a formula.

        Returns:
            A list of ResolvedDependency.

        Raises:
            DependencyUnavailable: The first dependency that can't be resolved.
        """
        stack = tuple(stack) + (formula.qualified_name,)
        resolved = []
        for dependency in formula.depends_on:
            dep = self.resolve_one(dependency, stack)
            log.verbose("Dependency {}", dep)
            resolved.append(dep)
        return resolved

    @staticmethod
    def environ(resolved):
        """ Combined search path additions of resolved dependencies. """
        environ = {}
        for dep in resolved:
            for key, paths in dep.environ.items():
                for path in paths:
                    if path not in environ.setdefault(key, []):
                        environ[key].append(path)
        return environ
