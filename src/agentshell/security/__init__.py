"""Security components for agentshell.

Provides secret collection, compilation, redaction and restoration.
"""

from agentshell.security.secrets import (
    PLACEHOLDER_RE,
    CompiledRegex,
    CompiledSecret,
    SecretEntry,
    SecretMatcherSet,
    collect_env_secrets,
    compile_secret_regex,
    compile_secrets,
    load_matcher_set,
    placeholder,
    redact,
    redact_value,
    restore,
    restore_text,
)

__all__ = [
    "PLACEHOLDER_RE",
    "CompiledRegex",
    "CompiledSecret",
    "SecretEntry",
    "SecretMatcherSet",
    "collect_env_secrets",
    "compile_secret_regex",
    "compile_secrets",
    "load_matcher_set",
    "placeholder",
    "redact",
    "redact_value",
    "restore",
    "restore_text",
]
