class KegError(Exception):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)


class KegCommandError(KegError):
    def __init__(self, what, stdout=[], stderr=[], returncode=None, *args, **kwargs):
        super().__init__(what, *args, **kwargs)
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


class KegTimeoutError(KegError):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

    def __str__(self):
        return super().__str__() or "Timeout"


class FetchFailure(KegError):
    """ The source archive could not be downloaded. """

    def __init__(self, url, reason):
        super().__init__(f"Failed to fetch '{url}': {reason}")
        self.url = url
        self.reason = reason


class ChecksumMismatch(KegError):
    """ The downloaded archive does not match the formula checksum. """

    def __init__(self, url, algorithm, expected, actual):
        super().__init__(
            f"{algorithm.upper()} mismatch for '{url}': expected {expected}, got {actual}")
        self.url = url
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual


class DependencyUnavailable(KegError):
    """ A dependency could not be resolved or installed. """

    def __init__(self, name, reason):
        super().__init__(f"Dependency '{name}' is unavailable: {reason}")
        self.name = name
        self.reason = reason


class BuildStepFailed(KegError):
    """ An install step exited with a non-zero status. ``step_index`` is zero-based. """

    def __init__(self, step_index, exit_code, command):
        super().__init__(
            f"Install step {step_index + 1} failed with exit status {exit_code}: {command}")
        self.step_index = step_index
        self.exit_code = exit_code
        self.command = command


def raise_error(msg, *args, **kwargs):
    raise KegError(msg.format(*args, **kwargs))


def raise_error_if(condition, *args, **kwargs):
    if condition:
        raise_error(*args, **kwargs)


class raise_error_on_exception(object):
    def __init__(self, message, *args, **kwargs):
        self.message = message
        self.args = args
        self.kwargs = kwargs

    def __enter__(self):
        return self

    def __exit__(self, type, value, tb):
        if value is not None and not isinstance(value, KegError):
            raise_error(self.message + ": {}", *self.args, str(value), **self.kwargs)
