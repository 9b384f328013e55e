import contextlib
import re
import time
from functools import wraps
from string import Formatter
import os
from fasteners import process_lock
import hashlib
import json
import signal


def is_str(s):
    return type(s) is str


def as_list(t):
    if t is None:
        return []
    return [t] if type(t) is str or not is_iterable(t) else list(t)


def is_iterable(x):
    try:
        iter(x)
    except TypeError:
        return False
    else:
        return True


def call_and_catch(f, *args, **kwargs):
    try:
        return f(*args, **kwargs)
    except KeyboardInterrupt as e:
        raise e
    except Exception:
        return None


def parse_formula_name(name):
    """ Splits ``name[@version]`` into its name and optional version. """
    match = re.match(r"^(?P<name>[^@\s]+)(@(?P<version>[^@\s]+))?$", name)
    if not match:
        from keg.error import raise_error
        raise_error("Illegal formula name: {}", name)
    return match["name"], match["version"]


def format_formula_name(name, version=None):
    return f"{name}@{version}" if version else name


def canonical(s):
    return "".join([c if c.isalnum() else '_' for c in s])


class _SafeDict(object):
    def __init__(self, values, ignore_errors=False):
        self.values = values
        self.errors = not ignore_errors

    def _envget(self, key):
        if key.startswith("ENV|"):
            return os.environ.get(key[4:])
        if key == "environ":
            return os.environ
        return None

    def __getitem__(self, key):
        value = self.values.get(key)
        if value is None:
            value = call_and_catch(getattr, self.values.get("_instance", object()), key)
        if value is None:
            value = self._envget(key)
        if type(value) in [list, tuple]:
            value = " ".join(value)
        if value is not None:
            return value
        if self.errors:
            raise KeyError(key)
        return "{" + key + "}"


class KegFormatter(Formatter):
    def convert_field(self, value, conversion):
        if conversion == "u":
            return str(value).upper()
        elif conversion == "l":
            return str(value).lower()
        elif conversion == "c":
            return value()
        elif conversion == "j":
            return " ".join(value)
        return super().convert_field(value, conversion)


def expand(string, *args, **kwargs):
    ignore_errors = kwargs.get("ignore_errors") or False
    return KegFormatter().vformat(str(string), args, _SafeDict(kwargs, ignore_errors))


class duration(object):
    def __init__(self):
        self._time = time.time()

    def __str__(self):
        elapsed = self.seconds
        if elapsed >= 3600:
            return time.strftime("%Hh %Mmin %Ss", time.gmtime(elapsed))
        if elapsed >= 60:
            return time.strftime("%Mmin %Ss", time.gmtime(elapsed))
        return time.strftime("%Ss", time.gmtime(elapsed))

    @property
    def seconds(self):
        return time.time() - self._time


class SignalHandler(object):
    def __init__(self, signum):
        self.original_handler = signal.signal(signum, self._handler)
        self.handlers = []

    def _handler(self, signum, frame):
        for handler in self.handlers:
            handler.add_signal(signum, frame)
        if not self.handlers and self.original_handler:
            self.original_handler(signum, frame)

    def new_monitor(self):
        class Finalizer(object):
            def __init__(self, handler):
                self.handler = handler
                self.signals = []

            def add_signal(self, signum, frame):
                self.signals.append((signum, frame))

            def __call__(self):
                self.handler.handlers.remove(self)
                for signum, frame in self.signals:
                    self.handler.original_handler(signum, frame)

        finalizer = Finalizer(self)
        self.handlers.append(finalizer)
        return finalizer


sigint_handler = SignalHandler(signal.SIGINT)


@contextlib.contextmanager
def delayed_interrupt():
    """ A context manager that delays SIGINT until after the code block. """

    finalize = sigint_handler.new_monitor()
    try:
        yield
    finally:
        finalize()


def delay_interrupt(func):
    @wraps(func)
    def _f(*args, **kwargs):
        with delayed_interrupt():
            return func(*args, **kwargs)
    return _f


def Singleton(cls):
    cls._instance = None

    @staticmethod
    def get(*args, **kwargs):
        if not cls._instance:
            cls._instance = cls(*args, **kwargs)
        return cls._instance

    cls.get = get
    return cls


class LockFile(object):
    """ Exclusive inter-process lock held until closed. """

    def __init__(self, path, logfunc=None, *args, **kwargs):
        self._file = process_lock.InterProcessLock(path)
        if not self._file.acquire(blocking=False):
            if logfunc is not None:
                logfunc(*args, **kwargs)
            self._file.acquire()

    def close(self):
        self._file.release()

    def __enter__(self, *args, **kwargs):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()


def sha1(string):
    sha = hashlib.sha1()
    sha.update(string.encode())
    return sha.hexdigest()


def fromjson(filepath, ignore_errors=False):
    try:
        with open(filepath) as f:
            return json.loads(f.read())
    except Exception as e:
        if ignore_errors:
            return {}
        raise e


def tojson(filepath, data, ignore_errors=False, indent=2):
    try:
        with open(filepath, "w") as f:
            f.write(json.dumps(data, indent=indent))
    except Exception as e:
        if ignore_errors:
            return
        raise e


def render(template, **kwargs):
    from jinja2 import Environment, PackageLoader
    env = Environment(
        loader=PackageLoader("keg"),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True)
    template = env.get_template(template)
    return template.render(**kwargs)


def shorten(string, count=30):
    if len(string) > count:
        keep = int(count / 2 - 1)
        if keep <= 0:
            keep = 1
        return string[:keep] + "..." + string[-keep + 1:]
    return string
