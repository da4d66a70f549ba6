"""Placeholder substitution for ``{name}`` tokens."""
import re

PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def substitute(text, values):
    """Replace every ``{key}`` whose key is in ``values`` in a single pass.

    Unknown placeholders are left untouched, so literal braces in JSON bodies
    survive.
    """
    if not text:
        return text

    def repl(match):
        key = match.group(1)
        if key in values:
            return str(values[key])
        return match.group(0)

    return PLACEHOLDER.sub(repl, text)


def unresolved(text):
    """Placeholder names still present in ``text``."""
    return sorted(set(PLACEHOLDER.findall(text or "")))
