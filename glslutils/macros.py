import re
from collections import namedtuple
import logging
_logger = logging.getLogger(__name__)


MAX_EXPANSION_PASSES = 100


# params is None for object-like macros, a tuple (possibly empty) for function-like ones
Macro = namedtuple('Macro', ('name', 'params', 'value', 'line'))
Diagnostic = namedtuple('Diagnostic', ('line', 'message'))


def word_pattern(name):
    """Returns a compiled pattern matching `name` as a whole word."""
    return re.compile(r'\b%s\b' % re.escape(name))


def sort_macros(macros):
    """Longest name first, so that FOOBAR is expanded before FOO can touch it."""
    return sorted(macros.values(), key=lambda macro: len(macro.name), reverse=True)


def substitute_object_macros(text, macros, max_passes=MAX_EXPANSION_PASSES):
    """
    Replaces object-like macros in `text` until nothing changes.

    Returns the resulting text and whether a fixpoint was reached within `max_passes`.
    Function-like macros are left alone.
    """
    object_macros = [macro for macro in sort_macros(macros) if macro.params is None]
    for _ in range(max_passes):
        changed = False
        for macro in object_macros:
            expanded = _substitute_object_macro(text, macro)
            if expanded != text:
                text = expanded
                changed = True
        if not changed:
            return text, True
    return text, False


def _substitute_object_macro(text, macro):
    return word_pattern(macro.name).sub(lambda m: macro.value, text)


def collect_arguments(text, start):
    """
    Collects the arguments of a function-like macro invocation.

    `start` is the index just past the opening parenthesis. Arguments are split
    on commas at nesting depth 1, so MAX(MIN(a, b), c) yields ['MIN(a, b)', 'c'].
    Returns (arguments, end) where `end` is the index just past the matching
    closing parenthesis, or (None, None) if the parentheses never balance.
    """
    arguments = []
    current = []
    depth = 1
    i = start
    while i < len(text):
        char = text[i]
        if char == '(':
            depth += 1
            current.append(char)
        elif char == ')':
            depth -= 1
            if depth == 0:
                argument = ''.join(current).strip()
                if argument or arguments:
                    arguments.append(argument)
                break
            current.append(char)
        elif char == ',' and depth == 1:
            arguments.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    if depth != 0:
        return None, None
    return [argument for argument in arguments if argument], i + 1


def substitute_parameters(macro, arguments):
    """Replaces every parameter of `macro` in its value by the matching argument, all at once."""
    if not macro.params:
        return macro.value
    replacements = dict(zip(macro.params, arguments))
    pattern = re.compile(r'\b(%s)\b' % '|'.join(re.escape(param)
                                                  for param in sorted(macro.params, key=len, reverse=True)))
    return pattern.sub(lambda m: replacements[m.group(1)], macro.value)


def _line_of(text, index, line_mapping):
    line = text.count('\n', 0, index) + 1
    return line_mapping.get(line, line)


def _expand_invocations(text, macro, line_mapping, errors):
    invocation = re.compile(r'\b%s\s*\(' % re.escape(macro.name))
    pos = 0
    while True:
        match = invocation.search(text, pos)
        if match is None:
            return text
        arguments, end = collect_arguments(text, match.end())
        if arguments is None:
            errors.append(Diagnostic(_line_of(text, match.start(), line_mapping),
                                     'Unmatched parentheses in macro invocation: %s' % macro.name))
            pos = match.end()
            continue
        if len(arguments) != len(macro.params):
            errors.append(Diagnostic(_line_of(text, match.start(), line_mapping),
                                     'Macro %s expects %d arguments, got %d' % (macro.name, len(macro.params), len(arguments))))
            pos = match.end()
            continue
        # an invocation spanning lines collapses onto its first line; the consumed
        # newlines follow the expansion so the line count is unchanged
        expanded = substitute_parameters(macro, arguments).replace('\n', ' ')
        expanded += '\n' * text.count('\n', match.start(), end)
        text = text[:match.start()] + expanded + text[end:]
        pos = match.start() + len(expanded)


def expand_macros(text, macros, line_mapping, errors, max_passes=MAX_EXPANSION_PASSES):
    """
    Expands every macro in `text` until a pass changes nothing.

    Works over the whole text rather than line by line, so function-like
    invocations may span several lines. Problems are appended to `errors`
    with their original line numbers (looked up in `line_mapping`); the
    expansion carries on past them. Gives up after `max_passes` passes, which
    is what stops circular definitions such as A -> B -> A.

    A broken invocation is left in place and seen again on every pass, so
    only the invocation errors of the last pass are reported: one per
    occurrence still broken in the final text.
    """
    ordered = sort_macros(macros)
    invocation_errors = []
    for npass in range(max_passes):
        changed = False
        invocation_errors = []
        for macro in ordered:
            if macro.params is None:
                expanded = _substitute_object_macro(text, macro)
            else:
                expanded = _expand_invocations(text, macro, line_mapping, invocation_errors)
            if expanded != text:
                text = expanded
                changed = True
        if not changed:
            _logger.debug('macro expansion settled after %d passes', npass + 1)
            errors.extend(invocation_errors)
            break
    else:
        _logger.warning('macro expansion did not settle after %d passes', max_passes)
        errors.extend(invocation_errors)
        errors.append(Diagnostic(0, 'Macro expansion exceeded maximum recursion depth (possible circular definition)'))
    return text
