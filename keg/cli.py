import click
import os
import sys

from keg import colors
from keg import config
from keg import filesystem as fs
from keg import log
from keg import __version__
from keg import utils
from keg.error import raise_error, raise_error_if
from keg.fetch import Fetcher
from keg.formula import FormulaRegistry
from keg.installer import Installer
from keg.loader import FormulaLoader

debug_enabled = False
workdir = os.getcwd()


class KegGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        verbose = ctx.params.get("verbose") or 0
        if cmd_name in ["cat", "steps"]:
            log.set_level(log.ERROR)
        elif verbose >= 3:
            log.set_level(log.EXCEPTION)
        elif verbose >= 2:
            log.set_level(log.DEBUG)
        elif verbose >= 1:
            log.set_level(log.VERBOSE)

        config_files = ctx.params.get("config_file") or []
        for config_file in config_files:
            log.verbose("Config: {0}", config_file)
            config.load_or_set(config_file)

        return click.Group.get_command(self, ctx, cmd_name)


@click.group(cls=KegGroup)
@click.version_option(__version__)
@click.option("-v", "--verbose", count=True, help="Verbose output (repeat to raise verbosity).")
@click.option("-c", "--config", "config_file", multiple=True, type=str,
              help="Load a configuration file or set a configuration key.")
@click.option("-C", "--chdir", type=str,
              help="Change working directory before executing command.")
@click.option("-d", "--debugger", is_flag=True,
              help="Attach debugger on exception.")
@click.pass_context
def cli(ctx, verbose, config_file, chdir, debugger):
    """
    A formula based source package installer.

    Formulas describe how a released version of a package is fetched,
    verified and built. Every version of a package is a formula of its
    own, addressed as NAME@VERSION. The highest version is used when
    only NAME is given:

      $ keg install libxo            # Installs the latest libxo

      $ keg install libxo@0.6.2      # Installs libxo 0.6.2

    Packages are installed into the cellar, by default ~/.keg/Cellar,
    unless another prefix is given.
    """

    global debug_enabled
    debug_enabled = debugger

    if ctx.invoked_subcommand not in ["cat", "config", "steps"]:
        log.start_file_log()

    if chdir:
        global workdir
        workdir = chdir
        os.chdir(workdir)

    log.verbose("Keg version: {}", __version__)
    log.verbose("Keg command: {}", " ".join([fs.path.basename(sys.argv[0])] + sys.argv[1:]))
    log.verbose("Keg install path: {}", fs.path.dirname(__file__))
    log.verbose("Keg workdir: {}", workdir)

    if ctx.invoked_subcommand in ["config"]:
        return

    ctx.ensure_object(dict)
    ctx.obj["registry"] = FormulaLoader.get().load()


def _get_formula(ctx, name):
    return ctx.obj["registry"].get_formula(name)


def _autocomplete_formulas(ctx, args, incomplete):
    registry = FormulaLoader.get().load()
    names = [utils.format_formula_name(cls.name, version)
             for cls in registry.get_formula_classes()
             for version in [cls().version]]
    return [name for name in registry.names() + names if name.startswith(incomplete)]


def _installer(**kwargs):
    return Installer(FormulaRegistry.get(), **kwargs)


@cli.command(name="list")
@click.argument("name", type=str, required=False, shell_complete=_autocomplete_formulas)
@click.option("-i", "--installed", is_flag=True, help="Only list installed formulas.")
@click.pass_context
def _list(ctx, name=None, installed=False):
    """
    List formulas.

    By default, every known formula is listed as NAME@VERSION, sorted by
    name and version. When NAME is given, only versions of that formula
    are listed.
    """

    registry = ctx.obj["registry"]
    raise_error_if(name and not registry.has_formula(name), "No such formula: {}", name)

    if installed:
        for fname, version in sorted(_installer().installed()):
            if not name or name == fname:
                print(utils.format_formula_name(fname, version))
        return

    for fname in [name] if name else registry.names():
        for version in registry.versions(fname):
            print(utils.format_formula_name(fname, version))


@cli.command()
@click.argument("formula", shell_complete=_autocomplete_formulas)
@click.pass_context
def info(ctx, formula):
    """
    View information about a formula.

    Displays the source archive, checksum, dependencies and
    install steps of a formula, and where it is installed.
    """

    formula = _get_formula(ctx, formula)
    installer = _installer()
    registry = ctx.obj["registry"]

    print()
    print("  {0}".format(colors.formula(formula.name, formula.version)))
    print()
    print("    {0:<15}   {1}".format("Homepage", formula.homepage or "-"))
    print("    {0:<15}   {1}".format("URL", formula.url))
    print("    {0:<15}   {1}".format(formula.checksum.algorithm.upper(), formula.checksum.digest))
    print("    {0:<15}   {1}".format("Versions", ", ".join(registry.versions(formula.name))))
    print()
    print("  Dependencies")
    for dep in formula.depends_on:
        print("    {0:<15}   {1}".format(dep.name, dep.role))
    if not formula.depends_on:
        print("    None")
    print()
    print("  Install steps")
    for step in formula.steps:
        print("    {0}".format(step.template))
    print()
    print("  Installed")
    if installer.is_installed(formula):
        print("    {0}".format(colors.green(installer.default_prefix(formula))))
    else:
        print("    False")
    print()


@cli.command()
@click.argument("formula", shell_complete=_autocomplete_formulas)
@click.option("-p", "--prefix", type=str, help="Install prefix substituted in the steps.")
@click.pass_context
def steps(ctx, formula, prefix):
    """
    Print the install commands of a formula.

    The commands are printed one per line as they would be run by
    install, with the install prefix substituted.
    """
    formula = _get_formula(ctx, formula)
    prefix = fs.path.abspath(prefix) if prefix else _installer().default_prefix(formula)
    for command in formula.install_steps(prefix):
        print(command)


@cli.command()
@click.argument("formula", nargs=-1, required=True, shell_complete=_autocomplete_formulas)
@click.pass_context
def fetch(ctx, formula):
    """
    Download and verify source archives.

    Archives are stored in the download cache and are not downloaded
    again as long as they match the formula checksum. The digest and
    path of each verified archive is printed.
    """
    fetcher = Fetcher()
    for name in formula:
        descriptor = _get_formula(ctx, name)
        path = fetcher.fetch(descriptor)
        print("{}  {}".format(fetcher.digest(descriptor, path), path))


@cli.command()
@click.argument("formula", nargs=-1, required=True, shell_complete=_autocomplete_formulas)
@click.option("-p", "--prefix", type=str, help="Install into PREFIX instead of the cellar.")
@click.option("-f", "--force", is_flag=True, default=False, help="Reinstall already installed formulas.")
@click.option("-k", "--keep-tmp", is_flag=True, default=False, help="Keep the build directory.")
@click.pass_context
def install(ctx, formula, prefix, force, keep_tmp):
    """
    Install formulas.

    The source archive of each FORMULA is downloaded and verified,
    its dependencies are resolved, and its install steps are run in
    order. Installation stops at the first failure.

    Missing dependencies that have formulas of their own are installed
    into the cellar first. Other dependencies must be found on the host.
    """
    raise_error_if(prefix and len(formula) > 1, "--prefix can only be used with a single formula")

    installer = _installer(force=force, keep_tmp=keep_tmp)
    for name in formula:
        installer.install(_get_formula(ctx, name), prefix=prefix)


@cli.command()
@click.argument("formula", nargs=-1, required=True, shell_complete=_autocomplete_formulas)
@click.pass_context
def uninstall(ctx, formula):
    """
    Remove installed formulas from the cellar.
    """
    installer = _installer()
    for name in formula:
        installer.uninstall(_get_formula(ctx, name))


def _ruby_string(arg):
    arg = arg.replace("\\", "\\\\").replace('"', '\\"').replace("#", "\\#")
    return '"' + arg.replace("{prefix}", "#{prefix}") + '"'


def _ruby_steps(formula):
    return [", ".join(_ruby_string(arg) for arg in (step.argv or [step.template]))
            for step in formula.steps]


@cli.command()
@click.argument("formula", shell_complete=_autocomplete_formulas)
@click.pass_context
def cat(ctx, formula):
    """
    Print a formula as a Homebrew Ruby formula.
    """
    formula = _get_formula(ctx, formula)
    print(utils.render(
        "formula.rb.template",
        keg_version=__version__,
        classname=formula.name.replace("-", "_").title().replace("_", ""),
        formula=formula,
        steps=_ruby_steps(formula)), end="")


@cli.command(name="config")
@click.option("-l", "--list", is_flag=True,
              help="List all configuration keys and values.")
@click.option("-d", "--delete", is_flag=True,
              help="Delete configuration key.")
@click.option("-g", "--global", "global_", is_flag=True,
              help="List, set or get configuration keys in the global config.")
@click.option("-u", "--user", is_flag=True,
              help="List, set or get configuration keys in the user config.")
@click.argument("key", type=str, nargs=1, required=False)
@click.argument("value", type=str, nargs=1, required=False)
@click.pass_context
def _config(ctx, list, delete, global_, user, key, value):
    """
    Configure keg.

    Key strings are constructed from the configuration section and the
    option separated by a dot.

    Values are read from the global configuration file, the user
    configuration file and from temporary configuration passed on the
    command line, in increasing order of priority. New values are
    written to the user configuration unless --global is given.

    To assign a value to a key:

      $ keg config keg.cellar /opt/keg/Cellar

    To list existing keys:

      $ keg config -l

    To delete an existing key:

      $ keg config -d keg.cellar

    To pass temporary configuration:

      $ keg -c keg.system_dependencies=false install libxo

    """

    if delete and not key:
        raise click.UsageError("--delete requires KEY")

    if not key and not list:
        print(ctx.get_help())
        sys.exit(1)

    if global_ and user:
        raise click.UsageError("--global and --user are mutually exclusive")

    alias = None

    if global_:
        alias = "global"
    if user:
        alias = "user"

    if list:
        for section, option, value in config.items(alias):
            if option:
                print("{}.{} = {}".format(section, option, value))
            else:
                print(section)
    elif delete:
        raise_error_if(config.delete(key, alias) <= 0,
                       "No such key: {}", key)
        config.save()
    elif key:
        section, opt = config.split(key)
        if value:
            raise_error_if(opt is None, "Invalid configuration key: {}".format(key))
            config.set(section, opt, value, alias)
            try:
                config.save()
            except Exception as e:
                log.exception()
                raise_error("Failed to write configuration file: {}".format(e))
        elif opt:
            value = config.get(section, opt, alias=alias)
            raise_error_if(value is None, "No such key: {}".format(key))
            print("{} = {}".format(key, value))
        else:
            print(section)
