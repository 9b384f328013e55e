import bz2file
import copy
import hashlib
import os
import shutil
import subprocess
import sys
import tarfile
import threading
import time
import zipfile
import zstandard
if os.name != "nt":
    import termios
from contextlib import contextmanager
from psutil import NoSuchProcess, Process
from requests import RequestException, Session
from requests.auth import HTTPBasicAuth
from urllib.parse import unquote, urlparse, urlunparse

from keg import config
from keg import filesystem as fs
from keg import log
from keg import utils
from keg.error import FetchFailure, KegCommandError, KegTimeoutError
from keg.error import raise_error, raise_error_if


http_session = Session()


SUPPORTED_ARCHIVE_TYPES = [".tar", ".tar.bz2", ".tar.gz", ".tgz", ".tar.xz", ".tar.zst", ".zip"]


class Reader(threading.Thread):
    def __init__(self, stream, output=None, logbuf=None):
        super(Reader, self).__init__()
        self.output = output
        self.stream = stream
        self.logbuf = logbuf if logbuf is not None else []
        self.start()

    def run(self):
        line = ""
        try:
            for line in iter(self.stream.readline, b''):
                line = line.rstrip().decode(errors='ignore')
                if self.output:
                    self.output(line)
                self.logbuf.append((self, line))
        except Exception as e:
            if self.output:
                self.output(str(e))
            self.logbuf.append((self, line))


def _terminate(pid, kill=False):
    try:
        process = Process(pid)
        for chld in process.children(recursive=True):
            chld.kill() if kill else chld.terminate()
        process.kill() if kill else process.terminate()
    except NoSuchProcess:
        pass


def _run(cmd, cwd, env, *args, **kwargs):
    output = kwargs.get("output")
    output_on_error = kwargs.get("output_on_error")
    output = output if output is not None else True
    output = False if output_on_error else output
    shell = kwargs.get("shell", True)
    timeout = kwargs.get("timeout", config.get_command_timeout())
    timeout = timeout if type(timeout) is int and timeout > 0 else None

    log.debug("Running: '{0}' (CWD: {1})", cmd, cwd)
    timedout = False
    p = None
    stdout = stderr = None
    logbuf = []
    try:
        with utils.delayed_interrupt():
            p = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                shell=shell,
                cwd=cwd,
                env=env,
            )

            stdout = Reader(p.stdout, output=log.stdout if output else None, logbuf=logbuf)
            stderr = Reader(p.stderr, output=log.stderr if output else None, logbuf=logbuf)

        deadline = time.time() + timeout if timeout is not None else None
        while True:
            remaining = None if deadline is None else max(0, deadline - time.time())
            try:
                p.wait(timeout=remaining)
                break
            except KeyboardInterrupt:
                continue

    except subprocess.TimeoutExpired:
        timedout = True
        try:
            _terminate(p.pid)
            p.wait(10)
        except subprocess.TimeoutExpired:
            _terminate(p.pid, kill=True)
            p.wait()

    finally:
        if stdout is not None:
            stdout.join()
        if stderr is not None:
            stderr.join()
        if p is not None:
            p.stdin.close()
            p.stdout.close()
            p.stderr.close()

    if p.returncode != 0 and output_on_error:
        for reader, line in logbuf:
            if reader is stdout:
                log.stdout(line)
            else:
                log.stderr(line)

    stdoutbuf = [line for reader, line in logbuf if reader is stdout]
    stderrbuf = [line for reader, line in logbuf if reader is stderr]

    cmdstr = " ".join(cmd) if type(cmd) is list else cmd
    if timedout:
        raise KegTimeoutError("Command timeout: {0}".format(cmdstr))
    if p.returncode != 0:
        raise KegCommandError(
            "Command failed: {0}".format(cmdstr),
            stdoutbuf, stderrbuf, p.returncode)
    return "\n".join(stdoutbuf)


class ZipFile(zipfile.ZipFile):
    """ ZipFile customization that preserves file permissions. """

    def extract(self, member, path=None, pwd=None):
        out_path = super().extract(member, path, pwd)

        # Restore permissions, if UNIX permissions are available
        info = self.getinfo(member)
        attr = info.external_attr >> 16
        if attr != 0:
            os.chmod(out_path, attr)

        return out_path

    def extractall(self, path=None, members=None, pwd=None):
        if members is None:
            members = self.namelist()

        for member in members:
            self.extract(member, path, pwd)


def _extractall(tar, pathname):
    if hasattr(tarfile, "data_filter"):
        tar.extractall(pathname, filter="data")
    else:
        tar.extractall(pathname)


class Tools(object):
    """ A collection of useful tools.

    Any {keyword} arguments, or macros, found in strings passed to
    tool functions are automatically expanded to the value of the
    associated formula's attributes. Relative paths are made absolute
    by prepending the current working directory.
    """

    def __init__(self, formula=None, cwd=None, env=None):
        self._cwd = fs.path.normpath(fs.path.join(config.get_workdir(), cwd or config.get_workdir()))
        self._env = copy.deepcopy(env or dict(os.environ))
        self._formula = formula

    def checksum_file(self, filelist, concat=False, hashfn=hashlib.sha1, filterfn=None):
        """ Calculate a checksum of one or multiple files.

        Args:
            filelist (str,list): One or multiple files.
            concat (boolean): Concatenate files and return a single digest. If False,
                a list with one digest for each file is returned. Default: False.
            hashfn: The hash algorithm used. Any type which provides an update() and
                hexdigest() method is accepted. Default: hashlib.sha1
            filterfn: An optional data filter function. It is called repeatedly
                with each block of data read from files as its only argument.
                It should return the data to be included in the checksum.
                Default: None

        Returns:
            A list of checksum digests, or a single digest if files where concatenated.
        """
        files = [self.expand_path(fname) for fname in utils.as_list(filelist)]
        filterfn = filterfn or (lambda data: data)
        result = []
        checksum = hashfn()

        for fname in files:
            with open(fname, "rb") as f:
                for block in iter(lambda: f.read(0x10000), b''):
                    checksum.update(bytes(filterfn(block)))
                result.append(checksum.hexdigest())
            if not concat:
                checksum = hashfn()

        return result[-1] if concat or type(filelist) is str else result

    @contextmanager
    def cwd(self, pathname, *args):
        """ Change the current working directory to the specified path.

        This function doesn't change the working directory of the keg
        process. It only changes the working directory for tools within
        the tools object.

        Args:
            pathname (str): Path to change to.

        Example:

            .. code-block:: python

                with tools.cwd("subdir") as cwd:
                    print(cwd)
        """
        path = self.expand_path(fs.path.join(str(pathname), *args))
        prev = self._cwd
        try:
            raise_error_if(
                not fs.path.exists(path) or not fs.path.isdir(path),
                "failed to change directory to '{0}'", path)
            self._cwd = path
            yield fs.path.normpath(self._cwd)
        finally:
            self._cwd = prev

    def download(self, url, pathname, auth=None, **kwargs):
        """
        Downloads a file.

        HTTP and HTTPS URLs are fetched with requests. ``file://`` URLs
        and plain paths are copied from the local filesystem.

        Basic authentication is supported by including the credentials in the URL.
        Alternatively, the auth parameter can be used to provide an authentication
        object that is passed to the requests.get() function.

        Throws a FetchFailure exception on failure. Any partially written
        destination file is removed.

        Args:
           url (str): URL to the file to be downloaded.
           pathname (str): Name/path of destination file.
           kwargs (optional): Addidional keyword arguments passed on
               directly ``requests.get()``.

        """

        url = self.expand(url)
        pathname = self.expand_path(pathname)
        url_parsed = urlparse(url)

        if url_parsed.scheme in ["", "file"]:
            return self._download_local(url, pathname)

        if url_parsed.scheme not in ["http", "https"] or not url_parsed.netloc:
            raise FetchFailure(url, "unsupported URL")

        if auth is None and url_parsed.username and url_parsed.password:
            auth = HTTPBasicAuth(url_parsed.username, url_parsed.password)

        # Redact password from URL if present
        if url_parsed.password:
            url_parsed = url_parsed._replace(netloc=url_parsed.netloc.replace(url_parsed.password, "****"))

        url_cleaned = urlunparse(url_parsed)

        try:
            response = http_session.get(url, stream=True, auth=auth, **kwargs)
            if response.status_code != 200:
                raise FetchFailure(url_cleaned, f"status {response.status_code}")

            name = fs.path.basename(pathname)
            size = int(response.headers.get('content-length', 0))
            with log.progress("Downloading {0}".format(utils.shorten(name)), size, "B") as pbar:
                log.verbose("{} -> {}", url_cleaned, pathname)
                with open(pathname, 'wb') as out_file:
                    for data in response.iter_content(chunk_size=4096):
                        out_file.write(data)
                        pbar.update(len(data))
            actual_size = self.file_size(pathname)
            if size != 0 and size != actual_size:
                raise FetchFailure(url_cleaned, f"truncated to {actual_size}/{size} bytes")
        except RequestException as e:
            utils.call_and_catch(self.unlink, pathname)
            raise FetchFailure(url_cleaned, str(e))
        except BaseException as e:
            utils.call_and_catch(self.unlink, pathname)
            raise e

        return pathname

    def _download_local(self, url, pathname):
        url_parsed = urlparse(url)
        source = unquote(url_parsed.path) if url_parsed.scheme == "file" else url
        source = self.expand_path(source)
        if not fs.path.isfile(source):
            raise FetchFailure(url, "no such file")
        log.verbose("{} -> {}", source, pathname)
        try:
            fs.copy(source, pathname)
        except OSError as e:
            utils.call_and_catch(self.unlink, pathname)
            raise FetchFailure(url, str(e))
        return pathname

    def expand(self, string, *args, **kwargs):
        """ Expands keyword arguments/macros in a format string.

        This function is identical to ``str.format()`` but it
        automatically collects keyword arguments from the attributes
        of the formula the tools object was created for.

        Example:

            .. code-block:: python

                tools = Tools(formula)
                print(tools.expand("{name}-{version}.tar.gz"))  # "libxo-1.3.0.tar.gz"

        """
        if self._formula is not None:
            kwargs.setdefault("_instance", self._formula)
        return utils.expand(string, *args, **kwargs)

    def expand_path(self, pathname, *args, **kwargs):
        """ Expands keyword arguments/macros in a pathname format string.

        The function also makes relative paths absolute by prepending the
        current working directory.
        """

        if type(pathname) is list:
            return [self.expand_path(path) for path in pathname]

        path = fs.path.join(self.getcwd(), self.expand(pathname, *args, **kwargs))
        # Ensure to retain any trailing path separator which is used as
        # indicator of directory paths
        psep = fs.sep if path[-1] in fs.anysep else ""
        return fs.path.normpath(path) + psep

    def extract(self, filename, pathname):
        """ Extracts files in an archive.

        Supported formats are:

        - tar
        - tar.bz2
        - tar.gz
        - tar.xz
        - tar.zst
        - zip

        Args:
            filename (str): Name/path of archive file to be extracted.
            pathname (str): Destination path for extracted files.

        """
        filename = self.expand_path(filename)
        filepath = self.expand_path(pathname)

        raise_error_if(
            not any(filename.endswith(ext) for ext in SUPPORTED_ARCHIVE_TYPES),
            "unknown archive type '{0}'", fs.path.basename(filename))

        try:
            fs.makedirs(filepath)
            if filename.endswith(".zip"):
                with ZipFile(filename, 'r') as zip:
                    zip.extractall(filepath)
            elif filename.endswith(".tar"):
                with tarfile.open(filename, 'r') as tar:
                    _extractall(tar, filepath)
            elif filename.endswith(".tar.gz") or filename.endswith(".tgz"):
                with tarfile.open(filename, 'r:gz') as tar:
                    _extractall(tar, filepath)
            elif filename.endswith(".tar.bz2"):
                # bz2file module for multistream support
                with bz2file.open(filename) as bz2:
                    with tarfile.open(fileobj=bz2) as tar:
                        _extractall(tar, filepath)
            elif filename.endswith(".tar.xz"):
                with tarfile.open(filename, 'r:xz') as tar:
                    _extractall(tar, filepath)
            elif filename.endswith(".tar.zst"):
                with open(filename, 'rb') as zstd_file:
                    decompressor = zstandard.ZstdDecompressor()
                    with decompressor.stream_reader(zstd_file) as stream:
                        with tarfile.open(mode="r|", fileobj=stream) as tar:
                            _extractall(tar, filepath)
        except (OSError, EOFError, tarfile.TarError, zipfile.BadZipFile, zstandard.ZstdError) as e:
            log.exception()
            raise_error("failed to extract archive '{0}': {1}", filename, str(e))

    def file_size(self, pathname):
        """ Determines the size of a file, in bytes. """
        pathname = self.expand_path(pathname)
        try:
            stat = os.stat(pathname)
        except OSError:
            raise_error("file not found '{0}'", pathname)
        else:
            return stat.st_size

    def getcwd(self):
        """ Returns the current working directory. """
        return fs.path.normpath(self._cwd)

    def run(self, cmd, *args, **kwargs):
        """
        Runs a command in a shell interpreter.

        A KegCommandError exception is raised on failure.

        Args:
            cmd (str): Command format string.
            args: Positional arguments for the command format string.
            kwargs: Keyword arguments for the command format string.
            expand (boolean, optional): Expand macros in the command
                string. Default: True.
            output (boolean, optional): By default, the executed command's
                output will be written to the console. Set to ``False`` to
                disable all output.
            output_on_error (boolean, optional): If ``True``, no output is
                written to the console unless the command fails.
                The default is ``False``.
            shell (boolean, optional): Use a shell to run the command.
                Default: True.
            timeout (int, optional): Timeout in seconds. The command will
                first be terminated if the timeout expires. If the command
                refuses to terminate, it will be killed after an additional
                10 seconds have passed. Default: ``keg.command_timeout``.

        Example:

            .. code-block:: python

                tools.run("make -j{0} install", 4)

        """
        kwargs.setdefault("shell", True)
        if kwargs.pop("expand", True):
            cmd = self.expand(cmd, *args, **kwargs)

        stdi, stdo, stde = None, None, None
        try:
            try:
                stdi = termios.tcgetattr(sys.stdin.fileno())
                stdo = termios.tcgetattr(sys.stdout.fileno())
                stde = termios.tcgetattr(sys.stderr.fileno())
            except KeyboardInterrupt as e:
                raise e
            except Exception:
                pass

            return _run(cmd, self._cwd, self._env, *args, **kwargs)

        finally:
            if stdi:
                termios.tcsetattr(sys.stdin.fileno(), termios.TCSANOW, stdi)
            if stdo:
                termios.tcsetattr(sys.stdout.fileno(), termios.TCSANOW, stdo)
            if stde:
                termios.tcsetattr(sys.stderr.fileno(), termios.TCSANOW, stde)

    @contextmanager
    def tmpdir(self, name=None, keep=False, root=None):
        """ Creates a temporary directory.

        The directory is only valid within a context and it is removed
        immediately upon leaving the context, unless ``keep`` is set.
        It is created below ``root``, by default the ``tmp`` directory
        of the cache.

        Example:

            .. code-block:: python

                with tools.tmpdir("libxo") as tmp:
                    tools.extract("libxo-1.3.0.tar.gz", tmp)

        """
        dirname = None
        buildroot = root or fs.path.join(config.get_cachedir(), "tmp")
        try:
            fs.makedirs(buildroot)
            dirname = fs.mkdtemp(prefix=(name or "tmpdir") + "-", dir=buildroot)
            yield fs.path.normpath(dirname)
        finally:
            if dirname and not keep:
                fs.rmtree(dirname, ignore_errors=True)
            elif dirname:
                log.info("Kept build directory: {}", dirname)

    def unlink(self, pathname, *args, **kwargs):
        """Removes a file from disk.

        To remove directories, use :func:`~keg.tools.Tools.rmtree`.
        """
        ignore_errors = kwargs.pop("ignore_errors", False)
        pathname = self.expand_path(pathname, *args, **kwargs)
        return fs.unlink(pathname, ignore_errors=ignore_errors)

    def which(self, executable):
        """ Find executable in PATH.

        Args:
            executable (str): Name of executable to be found.

        Returns:
            str: Full path to the executable.
        """
        executable = self.expand(executable)
        return shutil.which(executable, path=self._env.get("PATH"))
