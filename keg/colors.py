import sys

from colorama import Fore, Style
from keg import config


_tty = sys.stdout.isatty() and sys.stderr.isatty()


def enabled():
    return _tty and config.getboolean("keg", "colors", True)


def _style(s, *codes):
    return "".join(codes) + s + Style.RESET_ALL if enabled() else s


def red(s):
    return _style(s, Fore.RED, Style.BRIGHT)


def yellow(s):
    return _style(s, Fore.YELLOW, Style.BRIGHT)


def green(s):
    return _style(s, Fore.GREEN, Style.BRIGHT)


def bright(s):
    return _style(s, Style.BRIGHT)


def formula(name, version=None):
    """ Highlights a formula name, dimming the version suffix. """
    if version is None:
        return bright(name)
    return bright(name) + _style("@" + version, Style.DIM)
