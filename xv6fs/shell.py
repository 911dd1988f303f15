"""Parser for the shell's command language: words, redirections, pipes, lists, '&'.

Grammar, loosest binding first::

    line  := pipe ('&')* [';' line]
    pipe  := exec ['|' pipe]
    exec  := '(' line ')' redirs  |  redirs (word redirs)*
    redirs:= (('<' | '>' | '>>') word)*
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .syscalls import OpenMode

MAXARGS = 10
WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"

__all__ = [
    "MAXARGS",
    "BackCmd",
    "Command",
    "ExecCmd",
    "ListCmd",
    "PipeCmd",
    "RedirCmd",
    "ShellSyntaxError",
    "parse_command",
]


class ShellSyntaxError(Exception):
    """A command line the shell cannot parse."""


@dataclass
class ExecCmd:
    """Run a program with arguments; an empty argv does nothing."""

    argv: list[str] = field(default_factory=list)


@dataclass
class RedirCmd:
    """Run cmd with descriptor fd reopened on file in the given mode."""

    cmd: Command
    file: str
    mode: int
    fd: int


@dataclass
class PipeCmd:
    """Connect left's standard output to right's standard input."""

    left: Command
    right: Command


@dataclass
class ListCmd:
    """Run left, wait for it, then run right."""

    left: Command
    right: Command


@dataclass
class BackCmd:
    """Run cmd without waiting for it."""

    cmd: Command


Command = Union[ExecCmd, RedirCmd, PipeCmd, ListCmd, BackCmd]


class _Scanner:
    """Tokenizer over one command line."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _skip_space(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in WHITESPACE:
            self.pos += 1

    def peek(self, toks: str) -> bool:
        """Skip blanks; report whether the next character is one of toks."""
        self._skip_space()
        return self.pos < len(self.text) and self.text[self.pos] in toks

    def next_token(self) -> tuple[str, str]:
        """Return (kind, text): kind is '' at end, 'a' for a word, '+' for '>>'."""
        self._skip_space()
        start = self.pos
        text = self.text
        if start >= len(text):
            kind = ""
        elif text[start] in "|();&<":
            kind = text[start]
            self.pos += 1
        elif text[start] == ">":
            self.pos += 1
            kind = ">"
            if self.pos < len(text) and text[self.pos] == ">":
                kind = "+"
                self.pos += 1
        else:
            kind = "a"
            while self.pos < len(text) and text[self.pos] not in WHITESPACE + SYMBOLS:
                self.pos += 1
        token = text[start : self.pos]
        self._skip_space()
        return kind, token

    @property
    def rest(self) -> str:
        return self.text[self.pos :]


def _parse_line(sc: _Scanner) -> Command:
    cmd = _parse_pipe(sc)
    while sc.peek("&"):
        sc.next_token()
        cmd = BackCmd(cmd)
    if sc.peek(";"):
        sc.next_token()
        cmd = ListCmd(cmd, _parse_line(sc))
    return cmd


def _parse_pipe(sc: _Scanner) -> Command:
    cmd = _parse_exec(sc)
    if sc.peek("|"):
        sc.next_token()
        cmd = PipeCmd(cmd, _parse_pipe(sc))
    return cmd


def _parse_redirs(cmd: Command, sc: _Scanner) -> Command:
    while sc.peek("<>"):
        tok, _ = sc.next_token()
        kind, name = sc.next_token()
        if kind != "a":
            raise ShellSyntaxError("missing file for redirection")
        if tok == "<":
            cmd = RedirCmd(cmd, name, OpenMode.RDONLY, 0)
        else:  # '>' and '>>' open the same way
            cmd = RedirCmd(cmd, name, OpenMode.WRONLY | OpenMode.CREATE, 1)
    return cmd


def _parse_block(sc: _Scanner) -> Command:
    if not sc.peek("("):
        raise ShellSyntaxError("parseblock")
    sc.next_token()
    cmd = _parse_line(sc)
    if not sc.peek(")"):
        raise ShellSyntaxError("syntax - missing )")
    sc.next_token()
    return _parse_redirs(cmd, sc)


def _parse_exec(sc: _Scanner) -> Command:
    if sc.peek("("):
        return _parse_block(sc)
    exec_cmd = ExecCmd()
    ret = _parse_redirs(exec_cmd, sc)
    while not sc.peek("|)&;"):
        kind, word = sc.next_token()
        if kind == "":
            break
        if kind != "a":
            raise ShellSyntaxError("syntax")
        exec_cmd.argv.append(word)
        if len(exec_cmd.argv) >= MAXARGS:
            raise ShellSyntaxError("too many args")
        ret = _parse_redirs(ret, sc)
    return ret


def parse_command(line: str) -> Command:
    """Parse one command line into a command tree."""
    line = line.split("\0", 1)[0]
    sc = _Scanner(line)
    cmd = _parse_line(sc)
    sc.peek("")
    if sc.pos != len(line):
        raise ShellSyntaxError(f"leftovers: {sc.rest}")
    return cmd