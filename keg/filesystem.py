import os
import errno
import ntpath
import posixpath
import shutil
import tempfile


path = os.path
sep = os.sep
anysep = [posixpath.sep, ntpath.sep]
pathsep = os.pathsep


def userhome():
    return os.path.expanduser("~")


def makedirs(path):
    try:
        os.makedirs(path)
    except OSError as e:
        if e.errno != errno.EEXIST:
            raise


mkdtemp = tempfile.mkdtemp


def rename(old, new):
    return os.replace(old, new)


def rmtree(path, ignore_errors=False, onerror=None):
    def _onerror(func, path, exc_info):
        if os.path.isdir(path):
            try:
                os.rmdir(path)
            except OSError:
                pass
            else:
                return
        if not ignore_errors:
            _, exc, _ = exc_info
            raise exc

    if ignore_errors and not os.path.exists(path):
        return
    shutil.rmtree(path, onerror=onerror or _onerror)


def unlink(path, ignore_errors=False, tree=False):
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            if tree:
                rmtree(path, ignore_errors=ignore_errors)
            else:
                os.rmdir(path)
        else:
            os.unlink(path)
    except Exception as e:
        if not ignore_errors:
            raise e


def copy(src, dst, metadata=True):
    dstdir = os.path.dirname(dst)
    if dstdir and not os.path.isdir(dstdir):
        makedirs(dstdir)

    copyfn = shutil.copy2 if metadata else shutil.copy
    if not os.path.isdir(src):
        return copyfn(src, dst)
    return shutil.copytree(src, dst, dirs_exist_ok=True, copy_function=copyfn)


def listdir(path, hidden=False):
    return sorted([name for name in os.listdir(path) if hidden or name[0] != "."])

