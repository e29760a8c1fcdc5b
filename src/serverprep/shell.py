"""Helpers for building remote shell scripts.

Scripts are opaque text sent to ``bash -l``. Every configuration or secret
value that ends up inside one goes through this module: ``render`` quotes
values for the shell, ``escape_double_quoted`` prepares text that has to sit
inside a ``"..."`` argument, and the ``sql_*`` helpers produce MySQL literals.
"""

from __future__ import annotations

import shlex
import textwrap
from dataclasses import dataclass
from typing import Any

# Characters that keep their special meaning inside double quotes.
_DOUBLE_QUOTE_SPECIALS = ("\\", '"', "$", "`")


@dataclass(frozen=True)
class Trusted:
    """A fragment that is already valid shell text and must not be quoted."""

    text: str

    def __str__(self) -> str:
        return self.text


def quote(value: Any) -> str:
    """Quote a value as a single shell word."""
    if isinstance(value, Trusted):
        return value.text
    return shlex.quote(str(value))


def render(template: str, **values: Any) -> str:
    """Fill ``{name}`` placeholders in a script template with quoted values.

    Literal braces in the template are written as ``{{`` and ``}}``. Leading
    indentation is removed so templates can be written inline.

    >>> render("sudo chown {user} {path}", user="deploy", path="/var/www/my app")
    "sudo chown deploy '/var/www/my app'"
    """
    quoted = {name: quote(value) for name, value in values.items()}
    return textwrap.dedent(template).strip("\n").format(**quoted)


def escape_double_quoted(text: str) -> str:
    r"""Escape text for use between double quotes in bash.

    >>> escape_double_quoted('p"$1')
    'p\\"\\$1'
    """
    for char in _DOUBLE_QUOTE_SPECIALS:
        text = text.replace(char, "\\" + char)
    return text


def sql_string(value: str) -> str:
    """A MySQL single-quoted string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def sql_identifier(name: str) -> str:
    """A MySQL backtick-quoted identifier."""
    return "`" + name.replace("`", "``") + "`"


def mysql_command(sql: str) -> str:
    """Wrap SQL statements in a ``sudo mysql -e "..."`` command."""
    return f'sudo mysql -e "{escape_double_quoted(sql.strip())}"'
