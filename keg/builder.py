from keg import log
from keg.error import BuildStepFailed, KegCommandError
from keg.tools import Tools


class Builder(object):
    """
    Runs the install steps of a formula in a source tree.

    Steps run one at a time, in order, as shell commands. A step only
    runs if every step before it exited with status zero.
    """

    def __init__(self, formula, srcdir, prefix, env=None):
        self.formula = formula
        self.srcdir = srcdir
        self.prefix = prefix
        self.tools = Tools(formula, cwd=srcdir, env=env)

    def commands(self):
        return self.formula.install_steps(self.prefix)

    def run(self):
        """
        Runs all install steps.

        Raises:
            BuildStepFailed: A step exited with a non-zero status. No
                further steps are run.
        """
        commands = self.commands()
        with self.tools.cwd(self.srcdir):
            for index, command in enumerate(commands):
                log.info("[{}/{}] {}", index + 1, len(commands), command)
                try:
                    self.tools.run(command, expand=False)
                except KegCommandError as e:
                    raise BuildStepFailed(index, e.returncode, command) from e
        return commands
