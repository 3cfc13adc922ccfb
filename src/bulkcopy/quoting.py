"""
Quoting rules for elements of PostgreSQL array and row literals.

An element is left bare unless it could be misread by the array/row parser:
empty strings, leading or trailing whitespace, and any of the characters
``" \\ { } ( ) ,`` force double quotes, inside which ``"`` and ``\\`` are
backslash-escaped.
"""

__all__ = [
    'needs_quoting',
    'escape_quotes',
    'quote_and_escape',
    'unquote',
]

SPECIAL_CHARS = frozenset('"\\{}(),')


def needs_quoting(s: str) -> bool:
    """Check whether an element must be quoted inside an array or row literal.
    """
    if not s:
        # an unquoted empty element is indistinguishable from a missing one
        return True
    if s[0].isspace() or s[-1].isspace():
        return True
    return any(c in SPECIAL_CHARS for c in s)


def escape_quotes(s: str) -> str:
    """Backslash-escape double quotes and backslashes.
    """
    return s.replace('\\', '\\\\').replace('"', '\\"')


def quote_and_escape(s: str) -> str:
    """Return the element unchanged, or quoted and escaped if needed.

    >>> quote_and_escape('plain')
    'plain'
    >>> quote_and_escape('x,y')
    '"x,y"'
    >>> quote_and_escape('')
    '""'
    """
    if not needs_quoting(s):
        return s
    return '"' + escape_quotes(s) + '"'


def unquote(s: str) -> str:
    """Invert quote_and_escape.
    """
    if len(s) < 2 or s[0] != '"' or s[-1] != '"':
        return s
    chars = []
    escaped = False
    for c in s[1:-1]:
        if c == '\\' and not escaped:
            escaped = True
            continue
        chars.append(c)
        escaped = False
    return ''.join(chars)
