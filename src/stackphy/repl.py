"""
Interactive read-eval-print loop.

Each input line is executed against one persistent interpreter, so
variables, functions and the stack carry over between lines. Lines that
open a function definition, array or stack comment without closing it
are buffered until the construct is complete.
"""

import sys
from typing import List, Optional, TextIO

from . import __version__
from .errors import DslError
from .runtime.interpreter import Interpreter, execute, RECURSION_MESSAGE

PROMPT = "stackphy> "
CONTINUATION_PROMPT = "...       "

REPL_BANNER = f"stackphy {__version__} - type :help for commands, :quit to exit"

# Parse errors that mean "keep reading"
_INCOMPLETE_CODES = frozenset({"E104", "E105", "E106"})


class Repl:
    """Line-oriented shell over a single Interpreter."""

    def __init__(self, interpreter: Optional[Interpreter] = None,
                 stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.interpreter = interpreter or Interpreter()
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._buffer: List[str] = []
        self._running = False

    def _print(self, text: str = "") -> None:
        print(text, file=self.stdout)

    def _read_line(self) -> Optional[str]:
        prompt = CONTINUATION_PROMPT if self._buffer else PROMPT
        self.stdout.write(prompt)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            return None
        return line.rstrip("\n")

    def run(self) -> int:
        """Loop until :quit or end of input. Returns an exit code."""
        self._print(REPL_BANNER)
        self._running = True
        while self._running:
            try:
                line = self._read_line()
            except KeyboardInterrupt:
                self._print()
                self._buffer.clear()
                continue
            if line is None:
                self._print()
                break
            self.handle_line(line)
        return 0

    def handle_line(self, line: str) -> None:
        """Process one line of input (a command or program text)."""
        stripped = line.strip()
        if not self._buffer:
            if not stripped:
                return
            if stripped.startswith(":") and len(stripped) > 1 and not stripped[1].isspace():
                self._dispatch(stripped)
                return
        self._buffer.append(line)
        self._evaluate("\n".join(self._buffer))

    def _evaluate(self, source: str) -> None:
        try:
            result = execute(source, "<repl>", self.interpreter)
        except RecursionError:
            self._buffer.clear()
            self._print(f"Error: {RECURSION_MESSAGE}")
            return
        if result.success:
            self._buffer.clear()
            if not self.interpreter.stack.is_empty():
                self._print(str(self.interpreter.stack))
            return
        if result.error.code in _INCOMPLETE_CODES:
            return
        self._buffer.clear()
        self._report(result.error)

    def _report(self, error: DslError) -> None:
        self._print(error.diagnostic.format())

    def _dispatch(self, line: str) -> None:
        parts = line[1:].split()
        name, args = parts[0], parts[1:]
        method = getattr(self, f"cmd_{name}", None)
        if method is None:
            self._print(f"Unknown command: :{name}. Type :help")
            return
        method(args)

    # ----- commands -----

    def cmd_help(self, _args: List[str]) -> None:
        self._print("Commands:")
        self._print("  :stack          show the stack (bottom first)")
        self._print("  :vars           list bound variables")
        self._print("  :reset          clear the stack, variables and functions")
        self._print("  :help           show this help")
        self._print("  :quit / :exit   leave the REPL")
        self._print("Anything else is executed as stackphy code.")

    def cmd_stack(self, _args: List[str]) -> None:
        self._print(str(self.interpreter.stack))

    def cmd_vars(self, _args: List[str]) -> None:
        variables = self.interpreter.environment.variables
        if not variables:
            self._print("(no variables)")
            return
        for variable in variables.values():
            suffix = " (observed)" if variable.has_observed_data else ""
            self._print(f"  {variable}{suffix}")

    def cmd_reset(self, _args: List[str]) -> None:
        self.interpreter.reset()
        self._buffer.clear()
        self._print("Environment cleared.")

    def cmd_quit(self, _args: List[str]) -> None:
        self._running = False

    cmd_exit = cmd_quit


def run_repl(seed: Optional[int] = None) -> int:
    """Start an interactive session on stdin/stdout."""
    return Repl(Interpreter(seed=seed)).run()
