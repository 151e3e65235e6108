"""Interactive terminal prompts."""

import re
from collections.abc import Callable, Sequence

from InquirerPy import inquirer
from InquirerPy.base.control import Choice

from .exceptions import OperationCancelled

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._/-]+$")

ESCAPE_SKIP = {"skip": [{"key": "escape"}]}


def is_valid_name(value: str) -> bool:
    """Worktree and branch names: letters, digits, ``.``, ``_``, ``/`` and ``-``."""
    return bool(value) and bool(NAME_PATTERN.match(value))


class Prompter:
    """Thin layer over InquirerPy.

    Ctrl-C at any prompt raises :class:`OperationCancelled`. Prompts created
    with ``skippable=True`` return None when the user presses Escape.
    """

    def select(self, message: str, choices: Sequence[tuple[str, str]],
               default: str | None = None) -> str:
        """Pick one of ``choices``, given as ``(value, label)`` pairs."""
        prompt = inquirer.select(
            message=message,
            choices=[Choice(value=value, name=label) for value, label in choices],
            default=default,
        )
        return self._execute(prompt)

    def text(self, message: str, default: str = "",
             validate: Callable[[str], bool] | None = None,
             invalid_message: str = "Invalid input",
             skippable: bool = False) -> str | None:
        prompt = inquirer.text(
            message=message,
            default=default,
            validate=validate,
            invalid_message=invalid_message,
            mandatory=not skippable,
            keybindings=ESCAPE_SKIP if skippable else None,
        )
        return self._execute(prompt)

    def confirm(self, message: str, default: bool = True) -> bool:
        return bool(self._execute(inquirer.confirm(message=message, default=default)))

    def search(self, message: str, choices: Sequence[tuple[str, str]]) -> str:
        """Fuzzy-searchable selection; Escape or Ctrl-C cancels."""
        prompt = inquirer.fuzzy(
            message=message,
            choices=[Choice(value=value, name=label) for value, label in choices],
            mandatory=False,
            keybindings=ESCAPE_SKIP,
        )
        result = self._execute(prompt)
        if result is None:
            raise OperationCancelled("Done")
        return result

    @staticmethod
    def _execute(prompt):
        try:
            return prompt.execute()
        except KeyboardInterrupt as e:
            raise OperationCancelled() from e
