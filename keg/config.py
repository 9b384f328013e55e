from configparser import ConfigParser, NoOptionError, NoSectionError
import os

from keg import filesystem as fs
from keg import utils
from keg.error import raise_error_if


_workdir = os.getcwd()


if os.getenv("KEG_CONFIG_PATH"):
    location = fs.path.join(os.getenv("KEG_CONFIG_PATH"), "config")
    location_user = fs.path.join(os.getenv("KEG_CONFIG_PATH"), "user")
else:
    location = fs.path.join(fs.userhome(), ".config", "keg", "config")
    location_user = fs.path.join(fs.userhome(), ".config", "keg", "user")


class ConfigFile(ConfigParser):
    def __init__(self, location, *args, **kwargs):
        super().__init__(*args, interpolation=None, **kwargs)
        self._location = location

    def load(self):
        if self._location:
            super().read(self._location)
            if not self.has_section("keg"):
                self.add_section("keg")

    def save(self, path=None):
        if self._location is None and path is None:
            return
        location = path or self._location
        dirname = fs.path.dirname(location)
        if dirname:
            fs.makedirs(dirname)
        with open(location, 'w') as configfile:
            super().write(configfile)

    def delete(self, section, key):
        if key is None:
            return self.remove_section(section)
        try:
            success = self.remove_option(section, key)
            if success and len(self[section].items()) <= 0:
                self.remove_section(section)
            return success
        except NoSectionError:
            return False

    def set(self, section, key, value):
        if not self.has_section(section):
            self.add_section(section)
        super().set(section, key, value)


class Config(object):
    def __init__(self):
        self._configs = []

    def configs(self, alias=None):
        return [config for name, config in self._configs if not alias or name == alias]

    def add_file(self, alias, location):
        file = ConfigFile(location)
        self._configs.append((alias, file))
        return file

    def get(self, section, key, default, alias=None):
        for config in reversed(self.configs(alias)):
            try:
                return config.get(section, key)
            except (NoOptionError, NoSectionError):
                continue
        return default

    def set(self, section, key, value, alias=None):
        count = 0
        for config in self.configs(alias):
            config.set(section, key, value)
            count += 1
        return count

    def delete(self, section, key, alias=None):
        count = 0
        for config in self.configs(alias):
            count += int(config.delete(section, key))
        return count

    def sections(self, alias=None):
        s = []
        for config in self.configs(alias):
            s += config.sections()
        return sorted({*s})

    def options(self, section, alias=None):
        o = {}
        for config in self.configs(alias):
            if config.has_section(section):
                o.update(config[section].items())
        return sorted(o.items())

    def items(self, alias=None):
        result = []
        for section in self.sections(alias):
            options = self.options(section, alias)
            if not options:
                result.append((section, None, None))
            for option, value in options:
                result.append((section, option, value))
        return result

    def load(self):
        for config in self.configs():
            config.load()

    def save(self):
        for name, config in self._configs:
            config.save()


_config = Config()
_config.add_file("global", location)
_config.add_file("user", location_user)
# CLI configs are last in the chain and take precedence
_config.add_file("cli", None)
_config.load()


def get(section, key, default=None, expand=True, alias=None):
    val = _config.get(section, key, default, alias)
    return utils.expand(val, ignore_errors=True) if expand and isinstance(val, str) else val


def getint(section, key, default=None, alias=None):
    value = get(section, key, default=default, alias=alias)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            raise_error_if(True, "Config: value '{0}' invalid for '{1}.{2}', expected integer", value, section, key)
    return None


def getboolean(section, key, default=None, alias=None):
    value = get(section, key, default=default, alias=alias)
    return value is not None and str(value).lower() in ["true", "yes", "on", "1"]


def getlist(section, key, default=None, alias=None, separator=","):
    value = get(section, key, default=None, alias=alias)
    if value is None:
        return utils.as_list(default)
    return [item.strip() for item in value.split(separator) if item.strip()]


def get_keghome():
    return fs.path.join(fs.userhome(), ".keg")


def get_logpath():
    return get("keg", "logpath", fs.path.join(get_keghome(), "logs"))


def get_cachedir():
    return get("keg", "cachedir", fs.path.join(fs.userhome(), ".cache", "keg"))


def get_cellar():
    """ Root directory of default install prefixes, ``<cellar>/<name>/<version>``. """
    return get("keg", "cellar", fs.path.join(get_keghome(), "Cellar"))


def get_formulapath():
    return getlist("keg", "formulapath", separator=os.pathsep)


def get_command_timeout():
    return getint("keg", "command_timeout", 0)


def use_system_dependencies():
    return getboolean("keg", "system_dependencies", True)


def get_workdir():
    return _workdir


def set(section, key, value, alias=None):
    _config.set(section, key, value, alias or "user")


def load_or_set(file_or_str):
    if fs.path.exists(file_or_str):
        _config.add_file("cli", file_or_str)
        _config.load()
    else:
        key_value = file_or_str.split("=", 1)
        raise_error_if(len(key_value) <= 1, "Syntax error in configuration: '{}'".format(file_or_str))
        section_key = key_value[0].split(".", 1)
        raise_error_if(len(section_key) <= 1, "Syntax error in configuration: '{}'".format(file_or_str))
        _config.set(section_key[0], section_key[1], key_value[1], alias="cli")


def save():
    _config.save()


def delete(key, alias=None):
    section, option = split(key)
    return _config.delete(section, option, alias)


def sections(alias=None):
    return _config.sections(alias)


def items(alias=None):
    return _config.items(alias)


def options(section, alias=None):
    return _config.options(section, alias)


def split(string):
    try:
        section, key = string.split(".", 1)
    except ValueError:
        section, key = string, None
    return section, key
