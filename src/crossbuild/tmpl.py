"""Flag and name templating.

Implements the subset of Go's text/template syntax that build configs use:
field chains (`{{ .Version }}`, `{{ .Env.FOO }}`), function calls
(`{{ time "20060102" }}`), string and number literals, pipelines
(`{{ .Os | toupper }}`) and `{{-`/`-}}` whitespace trimming. Error messages follow
text/template wording, e.g.::

    template: tmpl:1: unexpected "}" in operand
    template: tmpl:1:6: executing "tmpl" at <.Env.NOPE>: map has no entry for key "NOPE"

Missing map keys are always an error (text/template's missingkey=error).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from crossbuild.errors import TemplateError
from crossbuild.helpers import short_commit

if TYPE_CHECKING:
    from crossbuild.artifact import Artifact
    from crossbuild.context import Context

TEMPLATE_NAME = "tmpl"
DEFAULT_TAG = "v0.0.0"

# --- Lexer ---

_LEFT = "{{"
_RIGHT = "}}"
_SPACE = " \t\r\n"
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}
_DIGITS = "0123456789"

_T_TEXT = "text"
_T_LEFT = "left"
_T_RIGHT = "right"
_T_SPACE = "space"
_T_FIELD = "field"
_T_DOT = "dot"
_T_IDENT = "ident"
_T_STRING = "string"
_T_NUMBER = "number"
_T_PIPE = "pipe"
_T_CHAR = "char"
_T_ERROR = "error"
_T_EOF = "EOF"


@dataclass
class _Token:
    typ: str
    val: str
    pos: int

    def describe(self) -> str:
        if self.typ == _T_EOF:
            return "EOF"
        if len(self.val) > 10:
            return _quote(self.val[:10]) + "..."
        return _quote(self.val)


def _quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'


class _ParseError(Exception):
    def __init__(self, msg: str, pos: int) -> None:
        super().__init__(msg)
        self.pos = pos


def _is_ident_char(c: str) -> bool:
    return c.isalnum() or c == "_"


def _lex(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    n = len(text)
    while i < n:
        start = text.find(_LEFT, i)
        if start < 0:
            tokens.append(_Token(_T_TEXT, text[i:], i))
            break
        chunk = text[i:start]
        inner = start + len(_LEFT)
        if text.startswith("-", inner) and inner + 1 < n and text[inner + 1] in _SPACE:
            chunk = chunk.rstrip(_SPACE)
            inner += 1
        if chunk:
            tokens.append(_Token(_T_TEXT, chunk, i))
        tokens.append(_Token(_T_LEFT, _LEFT, start))
        i = _lex_action(text, inner, tokens)
        if i < 0:
            break
    tokens.append(_Token(_T_EOF, "", n))
    return tokens


def _lex_action(text: str, i: int, tokens: list[_Token]) -> int:
    """Lex inside {{ }} starting at i.

    Returns the index past the right delimiter, or -1 after an error token.

    Errors are emitted as tokens so the parser reports whichever problem comes first.
    """
    n = len(text)
    trim_right = " -" + _RIGHT
    while True:
        if i >= n:
            tokens.append(_Token(_T_ERROR, "unclosed action", i))
            return -1
        if text.startswith(trim_right, i):
            tokens.append(_Token(_T_RIGHT, _RIGHT, i + 2))
            i += len(trim_right)
            while i < n and text[i] in _SPACE:
                i += 1
            return i
        if text.startswith(_RIGHT, i):
            tokens.append(_Token(_T_RIGHT, _RIGHT, i))
            return i + len(_RIGHT)
        c = text[i]
        if c in _SPACE:
            j = i + 1
            while j < n and text[j] in _SPACE and not text.startswith(trim_right, j):
                j += 1
            tokens.append(_Token(_T_SPACE, text[i:j], i))
            i = j
        elif c == ".":
            j = i + 1
            while j < n and _is_ident_char(text[j]):
                j += 1
            if j == i + 1:
                tokens.append(_Token(_T_DOT, ".", i))
            else:
                tokens.append(_Token(_T_FIELD, text[i:j], i))
            i = j
        elif c == '"':
            j = i + 1
            buf: list[str] = []
            while j < n and text[j] != "\n":
                ch = text[j]
                if ch == "\\" and j + 1 < n:
                    buf.append(_ESCAPES.get(text[j + 1], text[j + 1]))
                    j += 2
                    continue
                if ch == '"':
                    break
                buf.append(ch)
                j += 1
            else:
                tokens.append(_Token(_T_ERROR, "unterminated quoted string", i))
                return -1
            tokens.append(_Token(_T_STRING, "".join(buf), i))
            i = j + 1
        elif c == "`":
            j = text.find("`", i + 1)
            if j < 0:
                tokens.append(_Token(_T_ERROR, "unterminated raw quoted string", i))
                return -1
            tokens.append(_Token(_T_STRING, text[i + 1 : j], i))
            i = j + 1
        elif c in _DIGITS or (c in "+-" and i + 1 < n and text[i + 1] in _DIGITS):
            j = i + 1
            while j < n and (text[j] in _DIGITS or text[j] == "."):
                j += 1
            tokens.append(_Token(_T_NUMBER, text[i:j], i))
            i = j
        elif c.isalpha() or c == "_":
            j = i + 1
            while j < n and _is_ident_char(text[j]):
                j += 1
            tokens.append(_Token(_T_IDENT, text[i:j], i))
            i = j
        elif c == "|":
            tokens.append(_Token(_T_PIPE, c, i))
            i += 1
        elif c.isascii() and c.isprintable():
            tokens.append(_Token(_T_CHAR, c, i))
            i += 1
        else:
            msg = f"unrecognized character in action: U+{ord(c):04X} {c!r}"
            tokens.append(_Token(_T_ERROR, msg, i))
            return -1


# --- Parser ---


@dataclass
class _Node:
    pos: int


@dataclass
class _Text(_Node):
    text: str


@dataclass
class _Field(_Node):
    names: tuple[str, ...]

    def __str__(self) -> str:
        return "".join("." + name for name in self.names)


@dataclass
class _Dot(_Node):
    def __str__(self) -> str:
        return "."


@dataclass
class _Ident(_Node):
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class _Literal(_Node):
    value: Any
    source: str

    def __str__(self) -> str:
        return self.source


@dataclass
class _Command(_Node):
    args: list[_Node] = field(default_factory=list)


@dataclass
class _Action(_Node):
    commands: list[_Command] = field(default_factory=list)


class _Parser:
    def __init__(self, tokens: list[_Token], funcs: Mapping[str, Any]) -> None:
        self.tokens = tokens
        self.i = 0
        self.funcs = funcs

    def next(self) -> _Token:
        tok = self.tokens[self.i]
        if tok.typ == _T_ERROR:
            raise _ParseError(tok.val, tok.pos)
        self.i += 1
        return tok

    def backup(self) -> None:
        self.i -= 1

    def peek(self) -> _Token:
        return self.tokens[self.i]

    def peek_non_space(self) -> _Token:
        while self.peek().typ == _T_SPACE:
            self.i += 1
        return self.peek()

    def unexpected(self, tok: _Token, context: str) -> _ParseError:
        return _ParseError(f"unexpected {tok.describe()} in {context}", tok.pos)

    def parse(self) -> list[_Node]:
        nodes: list[_Node] = []
        while True:
            tok = self.next()
            if tok.typ == _T_EOF:
                return nodes
            if tok.typ == _T_TEXT:
                nodes.append(_Text(tok.pos, tok.val))
            elif tok.typ == _T_LEFT:
                nodes.append(self.action(tok))
            else:
                raise self.unexpected(tok, "input")

    def action(self, left: _Token) -> _Action:
        action = _Action(left.pos)
        while True:
            cmd = self.command()
            if not cmd.args:
                raise _ParseError("missing value for command", cmd.pos)
            action.commands.append(cmd)
            tok = self.next()
            if tok.typ == _T_RIGHT:
                return action
            # only a pipe can end a command without ending the action
            if tok.typ != _T_PIPE:
                raise self.unexpected(tok, "command")

    def command(self) -> _Command:
        cmd = _Command(self.peek_non_space().pos)
        while True:
            self.peek_non_space()
            operand = self.operand()
            if operand is not None:
                cmd.args.append(operand)
            tok = self.next()
            if tok.typ == _T_SPACE:
                continue
            if tok.typ in (_T_RIGHT, _T_PIPE):
                self.backup()
                return cmd
            if tok.typ == _T_EOF:
                raise _ParseError("unclosed action", tok.pos)
            raise self.unexpected(tok, "operand")

    def operand(self) -> _Node | None:
        tok = self.next()
        if tok.typ == _T_FIELD:
            names = [tok.val[1:]]
            pos = tok.pos
            while self.peek().typ == _T_FIELD:
                chained = self.next()
                if len(names) == 1:
                    pos = chained.pos
                names.append(chained.val[1:])
            return _Field(pos, tuple(names))
        if tok.typ == _T_DOT:
            return _Dot(tok.pos)
        if tok.typ == _T_IDENT:
            if tok.val not in self.funcs:
                raise _ParseError(f"function {_quote(tok.val)} not defined", tok.pos)
            return _Ident(tok.pos, tok.val)
        if tok.typ == _T_STRING:
            return _Literal(tok.pos, tok.val, _quote(tok.val))
        if tok.typ == _T_NUMBER:
            try:
                value: Any = float(tok.val) if "." in tok.val else int(tok.val)
            except ValueError:
                msg = f"illegal number syntax: {_quote(tok.val)}"
                raise _ParseError(msg, tok.pos) from None
            return _Literal(tok.pos, value, tok.val)
        self.backup()
        return None


# --- Execution ---


class _ExecError(Exception):
    def __init__(self, node: _Node, msg: str) -> None:
        super().__init__(msg)
        self.node = node


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _printable(value: Any) -> str:
    if value is None:
        return "<no value>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return "map[" + " ".join(f"{k}:{_printable(value[k])}" for k in sorted(value)) + "]"
    return str(value)


def _location(text: str, pos: int) -> tuple[int, int]:
    line = text.count("\n", 0, pos) + 1
    col = pos - (text.rfind("\n", 0, pos) + 1)
    return line, col


class _Executor:
    def __init__(
        self,
        data: Mapping[str, Any],
        funcs: Mapping[str, tuple[Callable[..., Any], int]],
    ) -> None:
        self.data = data
        self.funcs = funcs

    def run(self, nodes: list[_Node]) -> str:
        out: list[str] = []
        for node in nodes:
            if isinstance(node, _Text):
                out.append(node.text)
            elif isinstance(node, _Action):
                out.append(_printable(self.action(node)))
        return "".join(out)

    def action(self, action: _Action) -> Any:
        value: Any = None
        piped = False
        for cmd in action.commands:
            value = self.command(cmd, value if piped else _NOTHING)
            piped = True
        return value

    def command(self, cmd: _Command, final: Any) -> Any:
        first = cmd.args[0]
        if isinstance(first, _Ident):
            args = [self.arg(a) for a in cmd.args[1:]]
            if final is not _NOTHING:
                args.append(final)
            return self.call(first, args)
        if len(cmd.args) > 1 or final is not _NOTHING:
            raise _ExecError(first, f"can't give argument to non-function {first}")
        return self.arg(first)

    def arg(self, node: _Node) -> Any:
        if isinstance(node, _Field):
            return self.field(node)
        if isinstance(node, _Dot):
            return self.data
        if isinstance(node, _Literal):
            return node.value
        if isinstance(node, _Ident):
            return self.call(node, [])
        raise _ExecError(node, f"can't handle {node}")

    def field(self, node: _Field) -> Any:
        cur: Any = self.data
        for name in node.names:
            if isinstance(cur, Mapping):
                if name not in cur:
                    raise _ExecError(node, f"map has no entry for key {_quote(name)}")
                cur = cur[name]
            else:
                raise _ExecError(node, f"can't evaluate field {name} in type {_type_name(cur)}")
        return cur

    def call(self, node: _Ident, args: list[Any]) -> Any:
        fn, arity = self.funcs[node.name]
        if len(args) != arity:
            raise _ExecError(
                node, f"wrong number of args for {node.name}: want {arity} got {len(args)}"
            )
        try:
            return fn(*args)
        except (TypeError, ValueError) as e:
            raise _ExecError(node, f"error calling {node.name}: {e}") from e


_NOTHING = object()


# --- Go time layouts ---

_GO_LAYOUT = (
    ("January", "%B"),
    ("Monday", "%A"),
    ("-0700", "%z"),
    ("2006", "%Y"),
    ("Jan", "%b"),
    ("Mon", "%a"),
    ("MST", "%Z"),
    ("01", "%m"),
    ("02", "%d"),
    ("03", "%I"),
    ("04", "%M"),
    ("05", "%S"),
    ("06", "%y"),
    ("15", "%H"),
    ("PM", "%p"),
)


def go_layout_to_strftime(layout: str) -> str:
    """Translate a Go reference-time layout (e.g. 2006-01-02) into a strftime format."""
    out: list[str] = []
    i = 0
    while i < len(layout):
        for token, directive in _GO_LAYOUT:
            if layout.startswith(token, i):
                out.append(directive)
                i += len(token)
                break
        else:
            out.append("%%" if layout[i] == "%" else layout[i])
            i += 1
    return "".join(out)


def format_time(layout: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime(go_layout_to_strftime(str(layout)))


# --- Public API ---


def compile_template(text: str, funcs: Mapping[str, Any]) -> list[_Node]:
    """Parse text into nodes. Raises TemplateError with text/template wording."""
    try:
        return _Parser(_lex(text), funcs).parse()
    except _ParseError as e:
        line, _ = _location(text, e.pos)
        raise TemplateError(f"template: {TEMPLATE_NAME}:{line}: {e}") from None


def execute(
    text: str,
    data: Mapping[str, Any],
    funcs: Mapping[str, tuple[Callable[..., Any], int]],
) -> str:
    nodes = compile_template(text, funcs)
    try:
        return _Executor(data, funcs).run(nodes)
    except _ExecError as e:
        line, col = _location(text, e.node.pos)
        msg = (
            f"template: {TEMPLATE_NAME}:{line}:{col}: executing {_quote(TEMPLATE_NAME)} "
            f"at <{e.node}>: {e}"
        )
        raise TemplateError(msg) from None


class Template:
    """Renders templates against a fixed set of fields built from a Context.

    Fields: Version, Tag, Commit, ShortCommit, FullCommit, Date, Timestamp,
    ProjectName, Env, and once with_artifact is applied: Os, Arch, Arm, Binary,
    ArtifactName. Functions: time, tolower, toupper, trim.
    """

    def __init__(self, ctx: Context) -> None:
        tag = ctx.git.current_tag or DEFAULT_TAG
        self.fields: dict[str, Any] = {
            "ProjectName": ctx.config.project_name,
            "Version": ctx.version,
            "Tag": tag,
            "Commit": ctx.git.commit,
            "ShortCommit": short_commit(ctx.git.commit),
            "FullCommit": ctx.git.commit,
            "Date": ctx.date.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "Timestamp": int(ctx.date.timestamp()),
            "Env": dict(ctx.env),
        }
        self.funcs: dict[str, tuple[Callable[..., Any], int]] = {
            "time": (lambda layout: format_time(layout), 1),
            "tolower": (lambda s: str(s).lower(), 1),
            "toupper": (lambda s: str(s).upper(), 1),
            "trim": (lambda s: str(s).strip(), 1),
        }

    def with_env(self, env: Mapping[str, str]) -> Template:
        """Overlay env on top of the context env for .Env lookups."""
        self.fields["Env"] = {**self.fields["Env"], **env}
        return self

    def with_artifact(self, artifact: Artifact) -> Template:
        self.fields.update(
            {
                "Os": artifact.goos,
                "Arch": artifact.goarch,
                "Arm": artifact.goarm,
                "Binary": str(artifact.extra.get("Binary", "")),
                "ArtifactName": artifact.name,
            }
        )
        return self

    def apply(self, text: str) -> str:
        return execute(text, self.fields, self.funcs)
