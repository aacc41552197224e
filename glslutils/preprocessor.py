"""
GLSL preprocessor: line splicing, #define / #undef, conditional compilation
(#ifdef, #ifndef, #if, #elif, #else, #endif) and macro expansion.

Every directive and every line of a skipped branch is replaced by a blank line,
so the output has one line per logical input line and the driver's error line
numbers can be mapped back through the returned line mapping.
"""
import re
from collections import namedtuple
import logging

from glslutils.macros import Macro, Diagnostic, expand_macros
from glslutils.expression import evaluate_condition, ExpressionError


_logger = logging.getLogger(__name__)


PreprocessorResult = namedtuple('PreprocessorResult', ('code', 'line_mapping', 'errors'))


class RE(object):
    IDENTIFIER = re.compile(r'[A-Za-z_]\w*$')
    FUNCTION_MACRO = re.compile(r'(?P<name>[A-Za-z_]\w*)\((?P<params>[^)]*)\)\s*(?P<value>.*)$')
    CONSTANT_MACRO = re.compile(r'(?P<name>[A-Za-z_]\w*)\s+(?P<value>.*)$')
    FLAG_MACRO = re.compile(r'(?P<name>[A-Za-z_]\w*)$')
    DEFINE_NAME = re.compile(r'\s*#\s*define\s+(?P<name>[A-Za-z_]\w*)')


def splice_lines(source):
    """
    Joins lines ending with a backslash onto the line that follows.

    Returns the spliced text and a dict mapping each spliced line to the
    original line it starts on (both 1-indexed).
    """
    lines = source.split('\n')
    spliced = []
    line_mapping = {}
    i = 0
    while i < len(lines):
        line = lines[i]
        first_line = i + 1
        while line.rstrip().endswith('\\'):
            line = line.rstrip()[:-1]
            if i + 1 >= len(lines):
                break
            i += 1
            line += lines[i]
        spliced.append(line)
        line_mapping[len(spliced)] = first_line
        i += 1
    return '\n'.join(spliced), line_mapping


def parse_define(content, line):
    """
    Parses the text after #define into a Macro, or returns None if it is malformed.

        PI 3.14159                        object-like
        MAX(a, b) ((a) > (b) ? (a) : (b)) function-like (no space before the parenthesis)
        DEBUG                             flag, value '1'
    """
    m = RE.FUNCTION_MACRO.match(content)
    if m:
        params = tuple(param.strip() for param in m.group('params').split(',') if param.strip())
        if not all(RE.IDENTIFIER.match(param) for param in params):
            return None
        return Macro(m.group('name'), params, m.group('value').strip(), line)
    m = RE.CONSTANT_MACRO.match(content)
    if m:
        return Macro(m.group('name'), None, m.group('value').strip(), line)
    m = RE.FLAG_MACRO.match(content)
    if m:
        return Macro(m.group('name'), None, '1', line)
    return None


def split_directive(trimmed):
    """Splits a trimmed '#keyword rest' line into ('keyword', 'rest')."""
    body = trimmed[1:].lstrip()
    i = 0
    while i < len(body) and (body[i].isalnum() or body[i] == '_'):
        i += 1
    return body[:i], body[i:].strip()


class _ConditionalFrame(object):
    __slots__ = ('is_active', 'has_matched', 'start_line')

    def __init__(self, is_active, has_matched, start_line):
        self.is_active = is_active
        self.has_matched = has_matched
        self.start_line = start_line

    def __repr__(self):
        return '_ConditionalFrame(is_active=%s, has_matched=%s, start_line=%d)' % (
            self.is_active, self.has_matched, self.start_line)


class DirectiveProcessor(object):
    """
    State of one preprocessing run: the macro table, the stack of open
    conditionals, the output lines with their original line numbers and the
    diagnostics collected so far.
    """
    def __init__(self, macros=None):
        self.macros = dict(macros) if macros else {}
        self.stack = []
        self.output = []
        self.line_mapping = {}
        self.errors = []

    def is_live(self):
        return all(frame.is_active for frame in self.stack)

    def is_parent_live(self):
        return all(frame.is_active for frame in self.stack[:-1])

    def error(self, line, message):
        _logger.debug('line %d: %s', line, message)
        self.errors.append(Diagnostic(line, message))

    def emit(self, text, line):
        self.output.append(text)
        self.line_mapping[len(self.output)] = line

    def process(self, spliced_code, splice_mapping):
        for i, line in enumerate(spliced_code.split('\n')):
            original_line = splice_mapping.get(i + 1, i + 1)
            trimmed = line.strip()
            if trimmed.startswith('#'):
                keyword, rest = split_directive(trimmed)
                handler = getattr(self, '_directive_' + keyword, None) if keyword else None
                if handler is not None:
                    handler(rest, original_line)
                    self.emit('', original_line)
                    continue
            # ordinary code and directives meant for the GLSL compiler itself (#version, #extension, ...)
            self.emit(line if self.is_live() else '', original_line)
        for frame in self.stack:
            self.error(frame.start_line, 'Unclosed conditional directive (missing #endif)')
        return '\n'.join(self.output)

    def _directive_define(self, rest, line):
        if not self.is_live():
            return
        macro = parse_define(rest, line)
        if macro is None:
            self.error(line, 'Invalid #define syntax: %s' % rest)
            return
        if macro.name in self.macros:
            _logger.debug('line %d: redefining %s (previously defined on line %d)',
                          line, macro.name, self.macros[macro.name].line)
        self.macros[macro.name] = macro

    def _directive_undef(self, rest, line):
        if not self.is_live():
            return
        name = rest.split()[0] if rest else ''
        if not RE.IDENTIFIER.match(name):
            self.error(line, 'Invalid #undef syntax: %s' % rest)
            return
        self.macros.pop(name, None)

    def _push_defined_test(self, rest, line, negate):
        name = rest.split()[0] if rest else ''
        matched = (name in self.macros) != negate
        self.stack.append(_ConditionalFrame(self.is_live() and matched, matched, line))
        _logger.debug('pushed %s', self.stack[-1])

    def _directive_ifdef(self, rest, line):
        self._push_defined_test(rest, line, False)

    def _directive_ifndef(self, rest, line):
        self._push_defined_test(rest, line, True)

    def _evaluate(self, expression, line):
        try:
            return evaluate_condition(expression, self.macros)
        except ExpressionError as err:
            self.error(line, 'Invalid expression in #if: %s (%s)' % (expression, err))
            return False

    def _directive_if(self, rest, line):
        # evaluated even inside a skipped branch so that the stack stays balanced
        result = self._evaluate(rest, line)
        self.stack.append(_ConditionalFrame(self.is_live() and result, result, line))
        _logger.debug('pushed %s', self.stack[-1])

    def _directive_elif(self, rest, line):
        if not self.stack:
            self.error(line, '#elif without matching #if, #ifdef, or #ifndef')
            return
        frame = self.stack[-1]
        if frame.has_matched:
            frame.is_active = False
            return
        result = self._evaluate(rest, line)
        frame.is_active = self.is_parent_live() and result
        frame.has_matched = result

    def _directive_else(self, rest, line):
        if not self.stack:
            self.error(line, '#else without matching #if, #ifdef, or #ifndef')
            return
        frame = self.stack[-1]
        frame.is_active = self.is_parent_live() and not frame.has_matched
        frame.has_matched = True

    def _directive_endif(self, rest, line):
        if not self.stack:
            self.error(line, '#endif without matching #if, #ifdef, or #ifndef')
            return
        _logger.debug('popped %s', self.stack.pop())


def _predefined_macros(defines):
    macros = {}
    for name, value in (defines or {}).items():
        if value is None or value == '':
            value = '1'
        macros[name] = Macro(name, None, str(value), 0)
    return macros


def preprocess(glsl, defines=None):
    """
    Preprocesses GLSL source.

    `defines` optionally maps macro names to values that are defined before
    the first line, as with -DNAME=VALUE on a compiler command line.

    Returns a PreprocessorResult: the preprocessed code (one line per logical
    source line), a dict mapping output lines to original source lines and a
    list of Diagnostics. Problems never raise; they are reported in `errors`
    and the best-effort code is still returned.
    """
    glsl = glsl.replace('\r\n', '\n').replace('\r', '\n')
    spliced_code, splice_mapping = splice_lines(glsl)
    processor = DirectiveProcessor(_predefined_macros(defines))
    _logger.debug('defines = %s', processor.macros)
    code = processor.process(spliced_code, splice_mapping)
    code = expand_macros(code, processor.macros, processor.line_mapping, processor.errors)
    return PreprocessorResult(code, processor.line_mapping, processor.errors)


def extract_macro_names(glsl):
    """
    Lists the names of all macros #defined anywhere in `glsl`, in order of first
    definition, without evaluating any conditionals (for editor autocompletion).
    """
    names = []
    for line in glsl.splitlines():
        m = RE.DEFINE_NAME.match(line)
        if m and m.group('name') not in names:
            names.append(m.group('name'))
    return names
