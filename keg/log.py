import glob
import os
import sys
import tqdm
if os.name == "nt":
    # FIXME: Workaround to make tqdm behave correctly on Windows
    import colorama
    colorama.deinit()  # Undo the work of tqdm
    os.system("")      # Hack to enable vt100
import traceback
from datetime import datetime
import logging

from keg import config
from keg.error import KegError
from keg import filesystem as fs
from keg import colors
from keg import utils


################################################################################

EXCEPTION = 5
DEBUG = 10
VERBOSE = 15
STDOUT = 18
INFO = 20
WARNING = 30
ERROR = 40
STDERR = 45

logging.addLevelName(VERBOSE, "VERBOSE")
logging.addLevelName(STDOUT, "STDOUT")
logging.addLevelName(STDERR, "STDERR")
logging.addLevelName(EXCEPTION, "EXCEPT")
logging.addLevelName(WARNING, "WARNING")
logging.addLevelName(INFO, "INFO")
logging.addLevelName(ERROR, "ERROR")
logging.addLevelName(DEBUG, "DEBUG")

logging.raiseExceptions = False


class Formatter(logging.Formatter):
    def __init__(self, fmt, *args, **kwargs):
        super(Formatter, self).__init__(*args, **kwargs)
        self.fmt = fmt

    def format(self, record):
        try:
            record.message = record.msg.format(*record.args)
        except Exception:
            record.message = record.msg
        record.asctime = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")
        return self.fmt.format(
            levelname=record.levelname,
            message=record.message,
            asctime=record.asctime
        )


class ConsoleFormatter(logging.Formatter):
    def __init__(self, fmt_prefix, fmt_noprefix, *args, **kwargs):
        super(ConsoleFormatter, self).__init__(*args, **kwargs)
        self.fmt_prefix = fmt_prefix
        self.fmt_noprefix = fmt_noprefix

    def format(self, record):
        try:
            msg = record.msg.format(*record.args)
        except Exception:
            msg = record.msg
        if record.levelno >= STDERR:
            pass
        elif record.levelno >= ERROR:
            msg = colors.red(msg)
        elif record.levelno >= WARNING:
            msg = colors.yellow(msg)
        record.message = msg

        # Command output is printed verbatim
        if record.levelno in [STDOUT, STDERR]:
            fmt = self.fmt_noprefix
        else:
            fmt = self.fmt_prefix

        return fmt.format(
            levelname=record.levelname,
            message=record.message,
        )


class Filter(logging.Filter):
    def __init__(self, filterfn):
        self.filterfn = filterfn

    def filter(self, record):
        return self.filterfn(record)


class TqdmStream(object):
    def __init__(self, stream):
        self.stream = stream

    def write(self, msg):
        with tqdm.tqdm.external_write_mode(file=self.stream, nolock=False):
            self.stream.write(msg)

    def flush(self):
        getattr(self.stream, 'flush', lambda: None)()


# create keg logger and protect its methods against interrupts
_logger = logging.getLogger('keg')
_logger.setLevel(EXCEPTION)
_logger.propagate = False
_logger.handle = utils.delay_interrupt(_logger.handle)
_logger.log = utils.delay_interrupt(_logger.log)


_console_formatter = ConsoleFormatter('[{levelname:>7}] {message}', '{message}')

if sys.stdout.isatty() and sys.stderr.isatty():
    _stdout = logging.StreamHandler(TqdmStream(sys.stdout))
else:
    _stdout = logging.StreamHandler(sys.stdout)
_stdout.setFormatter(_console_formatter)
_stdout.addFilter(Filter(lambda r: r.levelno < ERROR))
_stdout.addFilter(Filter(lambda r: r.levelno != EXCEPTION))

if sys.stdout.isatty() and sys.stderr.isatty():
    _stderr = logging.StreamHandler(TqdmStream(sys.stdout))
else:
    _stderr = logging.StreamHandler(sys.stderr)
_stderr.setFormatter(_console_formatter)
_stderr.addFilter(Filter(lambda r: r.levelno >= ERROR or r.levelno == EXCEPTION))

_logger.addHandler(_stdout)
_logger.addHandler(_stderr)

_file_formatter = Formatter('{asctime} [{levelname:>7}] {message}')
_file = None


def start_file_log():
    """ Starts logging to a new timestamped file, removing the oldest files. """
    global _file

    if _file is not None:
        return _file.baseFilename

    logpath = config.get_logpath()
    logcount = config.getint("keg", "logcount", os.environ.get("KEG_LOGCOUNT", 100))
    fs.makedirs(logpath)

    logfiles = list(sorted(glob.glob(fs.path.join(logpath, "*T*.log"))))
    if len(logfiles) >= logcount:
        for file in logfiles[:len(logfiles) - logcount + 1]:
            fs.unlink(file, ignore_errors=True)

    current_time = datetime.now().strftime("%Y-%m-%dT%H%M%S.%f")
    _file = logging.FileHandler(fs.path.join(logpath, f"{current_time}.log"))
    _file.setLevel(EXCEPTION)
    _file.setFormatter(_file_formatter)
    _logger.addHandler(_file)
    return _file.baseFilename


def info(fmt, *args, **kwargs):
    _logger.log(INFO, fmt, *args, **kwargs)


def warning(fmt, *args, **kwargs):
    _logger.log(WARNING, fmt, *args, **kwargs)


def verbose(fmt, *args, **kwargs):
    _logger.log(VERBOSE, fmt, *args, **kwargs)


def debug(fmt, *args, **kwargs):
    _logger.log(DEBUG, fmt, *args, **kwargs)


def error(fmt, *args, **kwargs):
    _logger.log(ERROR, fmt, *args, **kwargs)


def _escape(line):
    return line.replace("{", "{{").replace("}", "}}")


def stdout(line):
    _logger.log(STDOUT, _escape(line))


def stderr(line):
    _logger.log(STDERR, _escape(line))


def format_exception_msg(exc):
    if isinstance(exc, KegError):
        return str(exc)

    te = traceback.TracebackException.from_exception(exc)

    if isinstance(exc, SyntaxError):
        filename = fs.path.relpath(
            te.filename,
            fs.path.commonprefix([os.getcwd(), te.filename]))
        return "SyntaxError: {} ({}, line {})".format(
            (te.text or "").strip(),
            filename,
            te.lineno)

    if not te.stack:
        return "{}: {}".format(type(exc).__name__, str(exc))

    filename = fs.path.relpath(
        te.stack[-1].filename,
        fs.path.commonprefix([os.getcwd(), te.stack[-1].filename]))
    return "{}: {} ({}, line {}, in {})".format(
        type(exc).__name__,
        str(exc) or te.stack[-1].line,
        filename,
        te.stack[-1].lineno,
        te.stack[-1].name)


def exception(exc=None, error=True):
    if exc:
        if error:
            _logger.log(ERROR, _escape(format_exception_msg(exc)))

        tb = traceback.format_exception(type(exc), value=exc, tb=exc.__traceback__)
        installdir = fs.path.dirname(__file__)
        if any(map(lambda frame: installdir not in frame, tb[1:-1])):
            while len(tb) > 2 and installdir in tb[1]:
                del tb[1]
        backtrace = "".join(tb).splitlines()
    else:
        backtrace = traceback.format_exc().splitlines()

    for line in backtrace:
        _logger.log(EXCEPTION, _escape(line.strip()))


class _Progress(object):
    def __init__(self, msg):
        verbose(msg)

    def __enter__(self):
        return self

    def __exit__(self, type, value, tb):
        pass

    def update(self, *args, **kwargs):
        pass


def progress(desc, count, unit):
    """ Returns a progress bar, or a plain log line when not interactive. """
    if count:
        bar_format = '{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}]'
    else:
        bar_format = '{desc}{n_fmt}{unit} [{elapsed}]'
    if is_interactive() and not is_verbose():
        p = tqdm.tqdm(total=count, unit=unit, unit_scale=True, bar_format=bar_format, dynamic_ncols=True)
        p.set_description("[   INFO] " + desc)
        return p
    return _Progress(desc)


_level = INFO


def set_level(level):
    """ Set the log level for terminal output. """

    if level not in [
        DEBUG,
        ERROR,
        EXCEPTION,
        INFO,
        STDERR,
        STDOUT,
        VERBOSE,
        WARNING,
    ]:
        raise ValueError("invalid log level")

    global _level
    _level = level
    _stdout.setLevel(level)
    _stderr.setLevel(level)


def is_verbose():
    return _stdout.level <= VERBOSE


def is_interactive():
    return sys.stdout.isatty() and sys.stderr.isatty()


set_level(STDOUT)
