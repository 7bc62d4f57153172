"""Heuristic help-text parser.

Turns one blob of `--help` (or man-page) output into a `ParsedHelp`. The
parser walks the text line by line with a small state machine driven by
section headers ("Flags:", "Available Commands:", "OPTIONS", ...) and, in each
state, tries an ordered list of line extractors. Each extractor recognises one
dialect and can be called on its own:

- `extract_bulleted_flag`   `--output (string)` (man-page bullets; the
                            description is on the next line)
- `extract_long_flag`       `-o, --output <file>   Write to file`
- `extract_short_flag`      `-C <path>   Run as if started in <path>`
- `extract_bulleted_command` `+o s3`
- `extract_command`         `  apply       Apply a configuration`

Parsing is pure: every table below is an immutable constant (or data passed to
`SectionParser` at construction time) and all per-call state lives in locals,
so the same text always yields an equal `ParsedHelp`. The parser never raises;
empty or unrecognisable input yields an empty result.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, replace
from typing import Final

from .models import (
    DEFAULT_VALUE_TYPE,
    Flag,
    FlagSection,
    ParsedHelp,
    Positional,
    unique_flags,
)


class ParserState(enum.Enum):
    NONE = "none"
    USAGE = "usage"
    DESCRIPTION = "description"
    FLAGS = "flags"
    COMMANDS = "commands"
    EXAMPLES = "examples"
    ALIASES = "aliases"


STOP_WORDS: Final[frozenset[str]] = frozenset(
    {"true", "false", "none", "all", "on", "off", "yes", "no", "default"}
)

# Usage-line words that stand for "some options" rather than a real argument.
PLACEHOLDER_WORDS: Final[frozenset[str]] = frozenset(
    {"OPTION", "OPTIONS", "OPTS", "FLAGS", "FLAG", "ARGS", "ARG", "COMMAND", "SUBCOMMAND"}
)

SECTION_KEYWORDS: Final[tuple[tuple[str, ParserState], ...]] = (
    ("global flags", ParserState.FLAGS),
    ("global options", ParserState.FLAGS),
    ("optional arguments", ParserState.FLAGS),
    ("flags", ParserState.FLAGS),
    ("options", ParserState.FLAGS),
    ("available commands", ParserState.COMMANDS),
    ("management commands", ParserState.COMMANDS),
    ("available services", ParserState.COMMANDS),
    ("subcommands", ParserState.COMMANDS),
    ("commands", ParserState.COMMANDS),
    ("usage", ParserState.USAGE),
    ("use", ParserState.USAGE),
    ("synopsis", ParserState.USAGE),
    ("description", ParserState.DESCRIPTION),
    ("examples", ParserState.EXAMPLES),
    ("example", ParserState.EXAMPLES),
    ("aliases", ParserState.ALIASES),
)

# Keywords that only count as a header on an exact match ("Use:" but not
# "Useful links:").
EXACT_ONLY_KEYWORDS: Final[frozenset[str]] = frozenset({"use"})

# Man-page section titles that only appear as bare upper-case headers.
MAN_SECTION_KEYWORDS: Final[tuple[tuple[str, ParserState], ...]] = (
    ("name", ParserState.DESCRIPTION),
)

# Flag headers that name no particular group and therefore start no section.
GENERIC_FLAG_HEADERS: Final[frozenset[str]] = frozenset(
    {
        "flags",
        "flag",
        "options",
        "option",
        "global flags",
        "global options",
        "optional arguments",
    }
)

MAX_AFFIX_HEADER_LEN: Final[int] = 30
PREAMBLE_LINES: Final[int] = 3
DESCRIPTION_WINDOW: Final[int] = 10
MIN_SECTION_FLAGS: Final[int] = 2

_URL_RE: Final = re.compile(r"https?://[^\s<>\"'()\[\]]+")
_PAREN_SUFFIX_RE: Final = re.compile(r"\s*\([^)]*\)$")
_MAN_SECTION_RE: Final = re.compile(r"^[A-Z][A-Z0-9 -]*[A-Z0-9]$")
_MAN_HEADER_RE: Final = re.compile(r"^[A-Za-z0-9_.:-]+\([0-9]?[A-Za-z0-9]*\)")
_MAN_REFERENCE_RE: Final = re.compile(r"\([A-Za-z0-9]*\)$")
_FLAG_START_RE: Final = re.compile(r"^\s*--?[A-Za-z0-9]")
_AVAILABILITY_MARKER_RE: Final = re.compile(r"^[A-Z]\s{2,}(?=\S)")

_BULLETED_FLAG_RE: Final = re.compile(
    r"^\s*(?P<name>--[A-Za-z0-9][A-Za-z0-9_.-]*)\s+\((?P<type>[^()]+)\)\s*$"
)

_LONG_FLAG_RE: Final = re.compile(
    r"""
    ^\s*
    (?:-(?P<short>[A-Za-z0-9?])(?:\s*,\s*|\s*/\s*|\s+))?
    (?P<name>--[A-Za-z0-9][A-Za-z0-9_.-]*)
    (?:
        \[=(?P<optional>[^\]\s]+)\]                 # --color[=WHEN]
      | [=\s]?<(?P<angle>[^<>]+)>                   # --log <path>, --dir=<path>
      | \s?\[(?P<square>[^\[\]]+)\]                 # --depth [int]
      | [=\s](?P<upper>[A-Z][A-Z0-9_-]*)(?=\s|$)    # --output FILE, --output=FILE
      | =(?P<eqword>[A-Za-z][\w.-]*)(?=\s|$)        # --format=json
      | \s(?P<word>[A-Za-z][\w.-]*)(?=\s{2,}|$)     # --kubeconfig string
    )?
    (?:\s+(?P<desc>\S.*))?
    $
    """,
    re.VERBOSE,
)

_SHORT_FLAG_RE: Final = re.compile(
    r"""
    ^\s*
    -(?P<short>[A-Za-z0-9?])
    (?:
        [=\s]?<(?P<angle>[^<>]+)>
      | \s\[(?P<square>[^\[\]]+)\]
      | \s(?P<upper>[A-Z][A-Z0-9_-]*)(?=\s|$)
    )?
    (?:\s+(?P<desc>\S.*))?
    $
    """,
    re.VERBOSE,
)

_BULLETED_COMMAND_RE: Final = re.compile(r"^\s*\+?o\s+(?P<name>[a-z][a-z0-9_.-]*)\s*$")

_COMMAND_RE: Final = re.compile(
    r"^[ \t]{1,8}(?P<name>[a-z][a-z0-9_.:-]*?)\*?:?"
    r"(?:\s*,\s*[a-z][\w.-]*)*"
    r"(?:\s{2,}(?P<desc>\S.*))?$"
)

_USAGE_TOKEN_RE: Final = re.compile(
    r"\[(?P<optional>[^\[\]]+)\](?:\.\.\.)?|<(?P<required>[^<>]+)>"
)
_OPTION_BEFORE_RE: Final = re.compile(r"(?:^|[\s\[|(])--?[A-Za-z0-9][\w.-]*[ =]?$")
_POSITIONAL_NAME_RE: Final = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")


def _clean_description(text: str | None) -> str:
    if not text:
        return ""
    return _AVAILABILITY_MARKER_RE.sub("", text.strip()).strip()


def _normalize_type(raw: str | None) -> str:
    if not raw:
        return DEFAULT_VALUE_TYPE
    value = raw.strip().strip("<>").strip()
    if not value:
        return DEFAULT_VALUE_TYPE
    if value.isupper():
        return value.lower()
    return value


def extract_bulleted_flag(line: str) -> Flag | None:
    """`--output (string)`; the caller supplies the description later."""
    m = _BULLETED_FLAG_RE.match(line)
    if not m:
        return None
    value_type = m.group("type").strip()
    if value_type.lower() == "boolean":
        value_type = DEFAULT_VALUE_TYPE
    return Flag(name=m.group("name"), value_type=value_type or DEFAULT_VALUE_TYPE)


def extract_long_flag(line: str) -> Flag | None:
    m = _LONG_FLAG_RE.match(line)
    if not m:
        return None
    raw_type = next(
        (
            m.group(slot)
            for slot in ("optional", "angle", "square", "upper", "eqword", "word")
            if m.group(slot)
        ),
        None,
    )
    return Flag(
        name=m.group("name"),
        short_name=m.group("short") or "",
        value_type=_normalize_type(raw_type),
        description=_clean_description(m.group("desc")),
    )


def extract_short_flag(line: str) -> Flag | None:
    m = _SHORT_FLAG_RE.match(line)
    if not m:
        return None
    raw_type = m.group("angle") or m.group("square") or m.group("upper")
    return Flag(
        name=f"-{m.group('short')}",
        value_type=_normalize_type(raw_type),
        description=_clean_description(m.group("desc")),
    )


def extract_bulleted_command(line: str) -> str | None:
    m = _BULLETED_COMMAND_RE.match(line)
    return m.group("name") if m else None


def extract_command(line: str, *, require_description: bool = False) -> str | None:
    """An indented lowercase word, optionally followed by a description."""
    m = _COMMAND_RE.match(line.rstrip())
    if not m:
        return None
    if require_description and not m.group("desc"):
        return None
    return m.group("name")


FLAG_EXTRACTORS: Final = (extract_long_flag, extract_short_flag)
COMMAND_EXTRACTORS: Final = (extract_bulleted_command, extract_command)


def scan_positionals(
    usage_line: str, *, placeholders: frozenset[str] = PLACEHOLDER_WORDS
) -> list[Positional]:
    """Find `<required>` and `[optional]` arguments in one usage line.

    Option values (`-o <file>`, `--dir=<path>`), option groups
    (`[-v | --verbose]`) and placeholder words (`[OPTION]...`) are skipped.
    """
    out: list[Positional] = []
    for m in _USAGE_TOKEN_RE.finditer(usage_line):
        if m.group("optional") is not None:
            raw, required = m.group("optional"), False
        else:
            before = usage_line[: m.start()]
            if before.endswith("=") or _OPTION_BEFORE_RE.search(before):
                continue
            raw, required = m.group("required"), True

        name = raw.strip()
        if name.startswith("-") or "=" in name or "|" in name:
            continue
        name = name.removesuffix("...").strip("<>").removesuffix("...").strip()
        if not _POSITIONAL_NAME_RE.match(name):
            continue
        if name.upper() in placeholders:
            continue
        out.append(Positional(name=name, required=required))
    return out


@dataclass(slots=True)
class _Collector:
    """Mutable scratch space for one `parse` call."""

    description: str = ""
    docs_url: str = ""
    flags: list[Flag] = field(default_factory=list)
    subcommands: list[str] = field(default_factory=list)
    usage_lines: list[str] = field(default_factory=list)
    sections: dict[str, list[Flag]] = field(default_factory=dict)

    def add_flag(self, flag: Flag, section: str) -> None:
        if all(existing.name != flag.name for existing in self.flags):
            self.flags.append(flag)
        if section:
            members = self.sections.setdefault(section, [])
            if all(existing.name != flag.name for existing in members):
                members.append(flag)


@dataclass(frozen=True, slots=True)
class SectionParser:
    """Stateless help-text parser; configuration is fixed at construction."""

    stop_words: frozenset[str] = STOP_WORDS
    placeholder_words: frozenset[str] = PLACEHOLDER_WORDS
    section_keywords: tuple[tuple[str, ParserState], ...] = SECTION_KEYWORDS

    def _lookup_keyword(self, key: str) -> ParserState | None:
        for keyword, state in self.section_keywords:
            if key == keyword:
                return state
        if len(key) > MAX_AFFIX_HEADER_LEN:
            return None
        for keyword, state in self.section_keywords:
            if keyword in EXACT_ONLY_KEYWORDS:
                continue
            if key.endswith(" " + keyword) or key.startswith(keyword + " "):
                return state
        return None

    def match_header(self, line: str) -> tuple[ParserState, str] | None:
        """Classify a section header line as `(state, title)`, else None."""
        stripped = line.strip()
        if not stripped or stripped.startswith("-"):
            return None

        if stripped.endswith(":"):
            title = stripped[:-1].strip()
            key = _PAREN_SUFFIX_RE.sub("", title).strip().lower()
            state = self._lookup_keyword(key) if key else None
            if state is None:
                return None
            return state, title

        # Man-page style: an unindented all-caps title such as "OPTIONS".
        if line[:1].isspace() or not _MAN_SECTION_RE.match(stripped):
            return None
        key = stripped.lower()
        for keyword, state in MAN_SECTION_KEYWORDS:
            if key == keyword:
                return state, stripped
        state = self._lookup_keyword(key)
        return (state or ParserState.NONE), stripped

    def _extract_flag(self, line: str) -> Flag | None:
        for extractor in FLAG_EXTRACTORS:
            flag = extractor(line)
            if flag is not None:
                return flag
        return None

    def _accept_subcommand(self, collected: _Collector, name: str | None) -> None:
        if not name or name in self.stop_words:
            return
        if name not in collected.subcommands:
            collected.subcommands.append(name)

    def parse(self, text: str) -> ParsedHelp:
        collected = _Collector()
        state = ParserState.NONE
        section = ""
        pending: tuple[Flag, str] | None = None

        for index, raw_line in enumerate((text or "").splitlines()):
            line = raw_line.rstrip()
            stripped = line.strip()

            if not collected.docs_url:
                url = _URL_RE.search(line)
                if url:
                    collected.docs_url = url.group(0).rstrip(".,;:")

            if not stripped:
                continue

            header = self.match_header(line)

            if pending is not None:
                flag, pending_section = pending
                pending = None
                if header is None and not _FLAG_START_RE.match(stripped):
                    collected.add_flag(
                        replace(flag, description=_clean_description(stripped)),
                        pending_section,
                    )
                    continue
                collected.add_flag(flag, pending_section)

            lower = stripped.lower()
            if lower.startswith("usage:"):
                state, section = ParserState.USAGE, ""
                rest = stripped[len("usage:") :].strip()
                if rest:
                    collected.usage_lines.append(rest)
                continue

            if header is not None:
                state, title = header
                section = ""
                if (
                    state is ParserState.FLAGS
                    and title.lower() not in GENERIC_FLAG_HEADERS
                    and not title.isupper()
                ):
                    section = title
                continue

            indented = line[:1].isspace()
            if (
                not indented
                and not stripped.startswith("-")
                and (index >= PREAMBLE_LINES or state is ParserState.USAGE)
                and not _MAN_REFERENCE_RE.search(stripped)
            ):
                state, section = ParserState.NONE, ""

            if (
                not collected.description
                and index < DESCRIPTION_WINDOW
                and state in (ParserState.NONE, ParserState.DESCRIPTION)
                and not stripped.startswith("-")
                and not _MAN_HEADER_RE.match(stripped)
            ):
                collected.description = stripped
                continue

            if state in (ParserState.EXAMPLES, ParserState.ALIASES):
                continue

            if state is ParserState.COMMANDS:
                for extractor in COMMAND_EXTRACTORS:
                    name = extractor(line)
                    if name:
                        self._accept_subcommand(collected, name)
                        break
                continue

            if state is ParserState.USAGE and indented:
                collected.usage_lines.append(stripped)

            bulleted = extract_bulleted_flag(line)
            if bulleted is not None:
                pending = (bulleted, section if state is ParserState.FLAGS else "")
                continue

            flag = self._extract_flag(line)
            if flag is not None:
                collected.add_flag(flag, section if state is ParserState.FLAGS else "")
                continue

            # Tools that list commands before (or without) any header: only
            # accept lines that look like "name  description".
            if state in (ParserState.NONE, ParserState.USAGE):
                self._accept_subcommand(
                    collected, extract_command(line, require_description=True)
                )

        if pending is not None:
            collected.add_flag(*pending)

        positionals: list[Positional] = []
        for usage_line in collected.usage_lines:
            for positional in scan_positionals(
                usage_line, placeholders=self.placeholder_words
            ):
                if all(p.name != positional.name for p in positionals):
                    positionals.append(positional)

        return ParsedHelp(
            description=collected.description,
            flags=unique_flags(collected.flags),
            positionals=tuple(positionals),
            subcommands=tuple(collected.subcommands),
            docs_url=collected.docs_url,
            sections=tuple(
                FlagSection(name=name, flags=tuple(members))
                for name, members in collected.sections.items()
                if len(members) >= MIN_SECTION_FLAGS
            ),
        )


DEFAULT_PARSER: Final[SectionParser] = SectionParser()


def parse_help(text: str) -> ParsedHelp:
    """Parse help text with the default keyword and stop-word tables."""
    return DEFAULT_PARSER.parse(text)
