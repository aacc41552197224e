"""
Evaluation of #if / #elif conditions.

Supports defined(NAME) and defined NAME, numeric literals, object-like macros,
!, unary -, the comparison operators, && and || and parentheses, with the usual
C precedence. Identifiers left over after macro substitution evaluate to 0;
any other token that is not a number or an operator (binary +, -, *, / ...)
is an error.
"""
import re
import logging

from glslutils.macros import substitute_object_macros


_logger = logging.getLogger(__name__)


class ExpressionError(Exception):
    pass


_DEFINED_RE = re.compile(r'\bdefined\s*(?:\(\s*(?P<paren>\w+)\s*\)|\s(?P<bare>\w+))')
# NUL cannot occur in an identifier, so no macro value can forge a placeholder
_PLACEHOLDER_RE = re.compile(r'\x00(\d+)\x00')
_IDENTIFIER_RE = re.compile(r'[A-Za-z_]\w*$')
_NUMBER_RE = re.compile(r'(?:(?P<hex>0[xX][0-9a-fA-F]+)'
                        r'|(?P<float>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))[uUfFlL]*$')

_TWO_CHAR_OPERATORS = ('==', '!=', '<=', '>=', '&&', '||')
_ONE_CHAR_OPERATORS = '()!<>-=&|'
_EQUALITY_OPERATORS = ('==', '!=')
_RELATIONAL_OPERATORS = ('<', '>', '<=', '>=')


def tokenize(expression):
    """
    Splits a condition into operator, number and identifier tokens.

    Two-character operators are matched before their one-character prefixes,
    so "a>=5&&b" gives ['a', '>=', '5', '&&', 'b'].
    """
    tokens = []
    i, n = 0, len(expression)
    while i < n:
        char = expression[i]
        if char.isspace():
            i += 1
        elif expression[i:i+2] in _TWO_CHAR_OPERATORS:
            tokens.append(expression[i:i+2])
            i += 2
        elif char in _ONE_CHAR_OPERATORS:
            tokens.append(char)
            i += 1
        else:
            j = i + 1
            while j < n and not expression[j].isspace() and expression[j] not in _ONE_CHAR_OPERATORS:
                j += 1
            tokens.append(expression[i:j])
            i = j
    return tokens


def parse_number(token):
    """Returns the value of a numeric literal token, or None if it is not one."""
    m = _NUMBER_RE.match(token)
    if m is None:
        return None
    try:
        if m.group('hex'):
            return float(int(m.group('hex'), 16))
        return float(m.group('float'))
    except (OverflowError, ValueError):
        raise ExpressionError('Numeric literal out of range: %s' % token)


class _Parser(object):
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0

    def peek(self):
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def advance(self):
        token = self.peek()
        if token is None:
            raise ExpressionError('Unexpected end of expression')
        self.pos += 1
        return token

    def parse(self):
        value = self.logical_or()
        if self.pos < len(self.tokens):
            raise ExpressionError('Unexpected token %r' % self.tokens[self.pos])
        return value

    def logical_or(self):
        left = self.logical_and()
        while self.peek() == '||':
            self.advance()
            right = self.logical_and()
            left = 1.0 if (left or right) else 0.0
        return left

    def logical_and(self):
        left = self.equality()
        while self.peek() == '&&':
            self.advance()
            right = self.equality()
            left = 1.0 if (left and right) else 0.0
        return left

    def equality(self):
        left = self.relational()
        while self.peek() in _EQUALITY_OPERATORS:
            op = self.advance()
            right = self.relational()
            if op == '==':
                left = 1.0 if left == right else 0.0
            else:
                left = 1.0 if left != right else 0.0
        return left

    def relational(self):
        left = self.unary()
        while self.peek() in _RELATIONAL_OPERATORS:
            op = self.advance()
            right = self.unary()
            if op == '<':
                result = left < right
            elif op == '>':
                result = left > right
            elif op == '<=':
                result = left <= right
            else:
                result = left >= right
            left = 1.0 if result else 0.0
        return left

    def unary(self):
        token = self.peek()
        if token == '!':
            self.advance()
            return 0.0 if self.unary() else 1.0
        if token == '-':
            self.advance()
            return -self.unary()
        return self.primary()

    def primary(self):
        token = self.advance()
        if token == '(':
            value = self.logical_or()
            if self.peek() != ')':
                raise ExpressionError('Missing closing parenthesis')
            self.advance()
            return value
        if token in _TWO_CHAR_OPERATORS or token in _ONE_CHAR_OPERATORS:
            raise ExpressionError('Unexpected token %r' % token)
        value = parse_number(token)
        if value is not None:
            return value
        if not _IDENTIFIER_RE.match(token):
            raise ExpressionError('Unexpected token %r' % token)
        # unknown identifiers are 0, as in C
        return 0.0


def evaluate_tokens(tokens):
    try:
        return _Parser(tokens).parse() != 0
    except RecursionError:
        raise ExpressionError('Expression nested too deeply')


def evaluate_condition(expression, macros):
    """
    Evaluates the condition of an #if / #elif against the macro table.

    Raises ExpressionError if the expression cannot be parsed.
    """
    protected = []

    def protect(m):
        protected.append(m.group(0))
        return '\x00%d\x00' % (len(protected) - 1)

    def restore(m):
        index = int(m.group(1))
        if index < len(protected):
            return protected[index]
        # NULs in the source that name no placeholder are left alone
        return m.group(0)

    text = _DEFINED_RE.sub(protect, expression)
    text, settled = substitute_object_macros(text, macros)
    if not settled:
        raise ExpressionError('macro expansion exceeded maximum recursion depth')
    text = _PLACEHOLDER_RE.sub(restore, text)
    text = _DEFINED_RE.sub(lambda m: '1' if (m.group('paren') or m.group('bare')) in macros else '0', text)
    _logger.debug('evaluating %r as %r', expression, text)
    return evaluate_tokens(tokenize(text))
