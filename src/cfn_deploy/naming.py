"""
CloudFormation compatible stack names.
"""
import re

MAX_STACK_NAME_LENGTH = 64
UNKNOWN_STACK_NAME = "Unknown"
DIGIT_PREFIX = "Stack-"

_ILLEGAL_CHARS_RE = re.compile(r"[^A-Za-z0-9-]")
_DASH_RUN_RE = re.compile(r"-{2,}")


def normalize_stack_name(raw: str) -> str:
    """
    (Re-)format any string into a legal stack name.

    Illegal characters become dashes, dash runs collapse, boundary dashes are
    stripped and the first character is uppercased. Never fails: an empty
    result becomes "Unknown" and overly long names are cut at 64 characters.
    Applying it to its own output returns the same string.
    """
    name = _ILLEGAL_CHARS_RE.sub("-", raw or "")
    name = _DASH_RUN_RE.sub("-", name).strip("-")
    if not name:
        return UNKNOWN_STACK_NAME
    if not name[0].isalpha():
        # stack names must start with a letter
        name = DIGIT_PREFIX + name
    name = name[0].upper() + name[1:]
    if len(name) > MAX_STACK_NAME_LENGTH:
        name = name[:MAX_STACK_NAME_LENGTH].rstrip("-")
    return name
