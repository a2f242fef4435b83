"""
Mapping-expression scanner.

Mapping templates may invoke other mappings, for example
``{{ executeMapping(12, value) }}`` or ``{{ executeMapping('child-map') }}``.
This module finds those calls without parsing or executing the template.

A call is ``<function>(<arg>[, <anything except ')'>])`` where ``<arg>`` is
a single- or double-quoted string (backslash escapes allowed) or a bare run
of digits.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

DEFAULT_FUNCTIONS = ("executeMapping",)


@dataclass(frozen=True)
class MappingCall:
    """One mapping call found in a template string."""

    function: str
    argument: str
    quote: str | None
    start: int  # Span of the argument, quotes included
    end: int


@lru_cache(maxsize=32)
def _call_pattern(functions: tuple[str, ...]) -> re.Pattern:
    names = "|".join(re.escape(name) for name in functions)
    return re.compile(
        r"\b(?P<function>" + names + r")\(\s*"
        r"(?P<arg>"
        r"(?P<quote>['\"])(?P<quoted>(?:\\.|(?!(?P=quote)).)*)(?P=quote)"
        r"|(?P<bare>\d+)"
        r")"
        r"\s*(?:,[^)]*)?\)",
        re.DOTALL,
    )


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value, flags=re.DOTALL)


def find_mapping_calls(
    text: str, functions: Iterable[str] = DEFAULT_FUNCTIONS
) -> list[MappingCall]:
    """Find every mapping call in a template string.

    Args:
        text: Template string
        functions: Function names that invoke a mapping

    Returns:
        Calls in order of appearance (empty when there are none)
    """
    if not isinstance(text, str) or not text:
        return []

    calls = []
    for match in _call_pattern(tuple(functions)).finditer(text):
        quote = match.group("quote")
        argument = _unescape(match.group("quoted")) if quote else match.group("bare")
        calls.append(
            MappingCall(
                function=match.group("function"),
                argument=argument,
                quote=quote,
                start=match.start("arg"),
                end=match.end("arg"),
            )
        )
    return calls


def _iter_strings(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_strings(item)


def scan_mapping_body(body: Any, functions: Iterable[str] = DEFAULT_FUNCTIONS) -> list[str]:
    """Collect mapping call arguments from every string in a mapping body.

    Nested dicts and lists are walked. Duplicates are kept in order of
    appearance; callers dedupe.
    """
    functions = tuple(functions)
    return [
        call.argument for text in _iter_strings(body) for call in find_mapping_calls(text, functions)
    ]


def rewrite_mapping_calls(
    text: str,
    replace: Callable[[str], Any],
    functions: Iterable[str] = DEFAULT_FUNCTIONS,
) -> str:
    """Rewrite the argument of every mapping call in a string.

    ``replace`` receives the unquoted argument and returns the new value, or
    None to leave the call unchanged. Numeric results are written as bare
    digits and anything else as a double-quoted string.
    """
    calls = find_mapping_calls(text, functions)
    if not calls:
        return text

    parts = []
    cursor = 0
    for call in calls:
        new_value = replace(call.argument)
        if new_value is None:
            continue
        new_value = str(new_value)
        if new_value.isdigit():
            rendered = new_value
        else:
            rendered = '"' + new_value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        parts.append(text[cursor : call.start])
        parts.append(rendered)
        cursor = call.end
    parts.append(text[cursor:])
    return "".join(parts)


def rewrite_mapping_body(
    body: Any,
    replace: Callable[[str], Any],
    functions: Iterable[str] = DEFAULT_FUNCTIONS,
) -> Any:
    """Apply rewrite_mapping_calls to every string in a mapping body."""
    functions = tuple(functions)
    if isinstance(body, str):
        return rewrite_mapping_calls(body, replace, functions)
    if isinstance(body, dict):
        return {key: rewrite_mapping_body(value, replace, functions) for key, value in body.items()}
    if isinstance(body, list):
        return [rewrite_mapping_body(item, replace, functions) for item in body]
    return body
