#!/usr/bin/python
import os
import sys

from keg import cli
from keg import log


def start_pdb(sig, frame):
    import pdb
    pdb.Pdb().set_trace(frame)


def _post_mortem():
    if cli.debug_enabled:
        import pdb
        extype, value, tb = sys.exc_info()
        pdb.post_mortem(tb)


def main():
    if os.name == "posix":
        import signal
        signal.signal(signal.SIGUSR1, start_pdb)

    try:
        cli.cli(obj=dict())
    except KeyboardInterrupt:
        log.warning("Interrupted by user")
        _post_mortem()
        sys.exit(1)
    except Exception as e:
        log.exception(e, error=True)
        _post_mortem()
        sys.exit(1)


if __name__ == "__main__":
    main()
