"""Secret redaction for text sent to model providers.

Secrets come from two places: environment variables with secret-like names,
and user-defined entries in ``secrets.json`` (global and project level).

Two inverse transforms are provided:

* ``redact`` replaces secret spans in outbound text. ``obfuscate`` entries
  become indexed placeholders (``<<$env:S0>>``), ``replace`` entries become a
  one-way mask.
* ``restore`` walks structured tool-call arguments and swaps placeholders back
  for the real values before a command is executed locally.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

from agentshell.core.exceptions import SecretPatternError

SecretType = Literal["plain", "regex"]
SecretMode = Literal["obfuscate", "replace"]
SecretOrigin = Literal["env", "global", "project"]

PLACEHOLDER_RE = re.compile(r"<<\$env:S(0|[1-9][0-9]*)>>")
# Splits text into (plain, placeholder, plain, ...) segments
_PLACEHOLDER_SPLIT_RE = re.compile(r"(<<\$env:S(?:0|[1-9][0-9]*)>>)")

_REGEX_LITERAL_RE = re.compile(r"^/((?:[^\\/]|\\.)*)/([gimsuy]*)$")
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
_SUPPORTED_FLAGS = set("gimsu")

ENV_SECRET_NAME_RE = re.compile(
    r"(?:^|_)(?:API_?KEY|KEY|SECRET|TOKEN|PASSWORD|PASSWD|CREDENTIALS?)$"
)
MIN_ENV_SECRET_LENGTH = 8


def placeholder(index: int) -> str:
    """Build the placeholder token for a secret index."""
    return f"<<$env:S{index}>>"


@dataclass
class SecretEntry:
    """A secret to hide from the model."""

    content: str
    type: SecretType = "plain"
    mode: SecretMode = "obfuscate"
    replacement: str | None = None
    flags: str | None = None
    origin: SecretOrigin = "env"

    VALID_TYPES: ClassVar[set[str]] = {"plain", "regex"}
    VALID_MODES: ClassVar[set[str]] = {"obfuscate", "replace"}

    def __post_init__(self) -> None:
        """Validate entry fields."""
        if not self.content:
            raise SecretPatternError("Secret content must not be empty", key="content")
        if self.type not in self.VALID_TYPES:
            raise SecretPatternError(f"Unknown secret type: {self.type}", key="type")
        if self.mode not in self.VALID_MODES:
            raise SecretPatternError(f"Unknown secret mode: {self.mode}", key="mode")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], origin: SecretOrigin) -> "SecretEntry":
        """Create an entry from a secrets.json object."""
        return cls(
            content=data["content"],
            type=data.get("type", "plain"),
            mode=data.get("mode", "obfuscate"),
            replacement=data.get("replacement"),
            flags=data.get("flags"),
            origin=origin,
        )


@dataclass(frozen=True)
class CompiledRegex:
    """A compiled secret pattern with its resolved flag string."""

    pattern: re.Pattern[str]
    flags: str

    @property
    def is_global(self) -> bool:
        return "g" in self.flags


def compile_secret_regex(pattern: str, flags: str | None = None) -> CompiledRegex:
    """Compile a secret regex, always scanning globally.

    ``pattern`` may be written as a delimiter literal (``/bearer\\s+\\w+/i``);
    its flags are merged with ``flags``.

    Raises:
        SecretPatternError: On unsupported flags or an invalid pattern
    """
    resolved_pattern = pattern
    resolved_flags = flags or ""

    literal = _REGEX_LITERAL_RE.match(pattern)
    if literal:
        resolved_pattern = literal.group(1)
        resolved_flags += literal.group(2)

    # Union, first-seen order, global always on
    merged = "".join(dict.fromkeys(resolved_flags + "g"))
    unsupported = set(merged) - _SUPPORTED_FLAGS
    if unsupported:
        raise SecretPatternError(
            f"Unsupported regex flags: {''.join(sorted(unsupported))}",
            pattern=pattern,
        )

    re_flags = 0
    for flag in merged:
        re_flags |= _FLAG_MAP.get(flag, 0)

    try:
        compiled = re.compile(resolved_pattern, re_flags)
    except re.error as e:
        raise SecretPatternError(f"Invalid secret pattern: {e}", pattern=pattern) from e

    return CompiledRegex(pattern=compiled, flags=merged)


def collect_env_secrets(env: Mapping[str, str]) -> list[SecretEntry]:
    """Pick environment variables that look like credentials.

    Sorted by variable name so placeholder indices are stable across runs.
    """
    entries = []
    for name in sorted(env):
        value = env[name]
        if len(value) < MIN_ENV_SECRET_LENGTH:
            continue
        if not ENV_SECRET_NAME_RE.search(name.upper()):
            continue
        entries.append(SecretEntry(content=value, origin="env"))
    return entries


@dataclass
class CompiledSecret:
    """A secret entry ready for matching."""

    entry: SecretEntry
    index: int | None = None
    regex: CompiledRegex | None = None

    @property
    def mode(self) -> SecretMode:
        return self.entry.mode

    def mask(self, value: str) -> str:
        if self.entry.replacement is not None:
            return self.entry.replacement
        return "*" * len(value)


@dataclass
class SecretMatcherSet:
    """Compiled secrets in merge order.

    Matching runs in ``match_order``: plain values first, longest first, so a
    secret containing another one is replaced whole; regex entries follow in
    merge order. Plain obfuscated entries own their index from compile time.
    Values found by obfuscating regex entries are assigned the next free index
    the first time they are seen; once assigned, an index never changes meaning.
    """

    secrets: list[CompiledSecret] = field(default_factory=list)
    _values: dict[int, str] = field(default_factory=dict, repr=False)
    _indices: dict[str, int] = field(default_factory=dict, repr=False)
    match_order: list[CompiledSecret] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        for secret in self.secrets:
            if secret.index is not None:
                self._values[secret.index] = secret.entry.content
                self._indices[secret.entry.content] = secret.index
        plain = [s for s in self.secrets if s.regex is None]
        self.match_order = sorted(plain, key=lambda s: -len(s.entry.content)) + [
            s for s in self.secrets if s.regex is not None
        ]

    def __len__(self) -> int:
        return len(self.secrets)

    @property
    def placeholder_count(self) -> int:
        return len(self._values)

    def value_for(self, index: int) -> str | None:
        return self._values.get(index)

    def index_for(self, value: str) -> int:
        """Index for an obfuscated value, allocating one if unseen."""
        index = self._indices.get(value)
        if index is None:
            index = len(self._values)
            self._values[index] = value
            self._indices[value] = index
        return index

    def redact(self, text: str) -> str:
        return redact(text, self)

    def restore(self, value: Any) -> Any:
        return restore(value, self)


def compile_secrets(
    env_entries: Iterable[SecretEntry] = (),
    global_entries: Iterable[SecretEntry] = (),
    project_entries: Iterable[SecretEntry] = (),
) -> SecretMatcherSet:
    """Merge entries from all sources and compile them.

    Later sources override earlier ones with the same ``content`` but keep
    the earlier merge position, so environment secrets are always compiled
    first and their indices do not shift when files add overrides.

    Raises:
        SecretPatternError: If any regex entry fails to compile
    """
    merged: dict[str, SecretEntry] = {}
    for source in (env_entries, global_entries, project_entries):
        for entry in source:
            merged[entry.content] = entry

    compiled = []
    next_index = 0
    for entry in merged.values():
        if entry.type == "regex":
            compiled.append(
                CompiledSecret(entry=entry, regex=compile_secret_regex(entry.content, entry.flags))
            )
        elif entry.mode == "obfuscate":
            compiled.append(CompiledSecret(entry=entry, index=next_index))
            next_index += 1
        else:
            compiled.append(CompiledSecret(entry=entry))

    return SecretMatcherSet(secrets=compiled)


def _substitute(segment: str, secret: CompiledSecret, matchers: SecretMatcherSet) -> str:
    if secret.regex is not None:

        def _replace(match: re.Match[str]) -> str:
            value = match.group(0)
            if not value:
                return value
            if secret.mode == "obfuscate":
                return placeholder(matchers.index_for(value))
            return secret.mask(value)

        return secret.regex.pattern.sub(_replace, segment)

    content = secret.entry.content
    if content not in segment:
        return segment
    if secret.mode == "obfuscate":
        return segment.replace(content, placeholder(secret.index))  # type: ignore[arg-type]
    return segment.replace(content, secret.mask(content))


def redact(text: str, matchers: SecretMatcherSet) -> str:
    """Replace every secret occurrence in ``text``.

    Matchers run in ``SecretMatcherSet.match_order``. Existing placeholder
    tokens are never rescanned, so a later pattern cannot corrupt an earlier
    substitution.
    """
    if not text or not matchers.secrets:
        return text

    for secret in matchers.match_order:
        parts = _PLACEHOLDER_SPLIT_RE.split(text)
        # Even indices are plain text, odd indices are placeholders
        text = "".join(
            part if i % 2 else _substitute(part, secret, matchers) for i, part in enumerate(parts)
        )
    return text


def redact_value(value: Any, matchers: SecretMatcherSet) -> Any:
    """Deep-redact strings inside mappings and sequences."""
    if isinstance(value, str):
        return redact(value, matchers)
    if isinstance(value, Mapping):
        return {k: redact_value(v, matchers) for k, v in value.items()}
    if isinstance(value, list):
        return [redact_value(v, matchers) for v in value]
    if isinstance(value, tuple):
        return tuple(redact_value(v, matchers) for v in value)
    return value


def restore_text(text: str, matchers: SecretMatcherSet) -> str:
    """Swap known placeholders in ``text`` for their original values."""
    if "<<$env:S" not in text:
        return text

    def _replace(match: re.Match[str]) -> str:
        original = matchers.value_for(int(match.group(1)))
        return match.group(0) if original is None else original

    return PLACEHOLDER_RE.sub(_replace, text)


def restore(value: Any, matchers: SecretMatcherSet) -> Any:
    """Deep-restore placeholders inside an arbitrary structured value.

    Unknown placeholder indices and non-string leaves pass through unchanged.
    The input is never mutated.
    """
    if isinstance(value, str):
        return restore_text(value, matchers)
    if isinstance(value, Mapping):
        return {k: restore(v, matchers) for k, v in value.items()}
    if isinstance(value, list):
        return [restore(v, matchers) for v in value]
    if isinstance(value, tuple):
        return tuple(restore(v, matchers) for v in value)
    return value


def load_matcher_set(
    env: Mapping[str, str],
    levels: Mapping[str, Iterable[Mapping[str, Any]]],
) -> SecretMatcherSet:
    """Build a matcher set from an env snapshot and raw secrets.json levels."""
    return compile_secrets(
        collect_env_secrets(env),
        [SecretEntry.from_dict(d, "global") for d in levels.get("global", [])],
        [SecretEntry.from_dict(d, "project") for d in levels.get("project", [])],
    )
