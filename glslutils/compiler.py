import os.path
import re
from collections import namedtuple
import logging

from glslutils.preprocessor import preprocess


_here = os.path.dirname(__file__)
_logger = logging.getLogger(__name__)


DEFAULT_GLSL_VERSION = '120'
PLAYGROUND_UNIFORMS = (
    ('vec2', 'u_resolution'),
    ('float', 'u_time'),
    ('vec2', 'u_mouse'),
    ('vec2', 'iResolution'),
    ('float', 'iTime'),
    ('vec4', 'iMouse'),
)
LEGACY_GLSL_VERSIONS = ('100', '110', '120')

CompilationError = namedtuple('CompilationError', ('line', 'message', 'type'))
CompileResult = namedtuple('CompileResult', ('success', 'code', 'errors', 'program'))


class RE(object):
    VERSION = re.compile(r'^[ \t]*#[ \t]*version[ \t]+(?P<version>[^\n]*?)[ \t]*$', re.MULTILINE)
    MAIN = re.compile(r'\bvoid\s+main\s*\(')
    MAIN_IMAGE = re.compile(r'\bvoid\s+mainImage\s*\(')
    QUOTED = re.compile(r'[\'"`]([^\'"`]+)[\'"`]')
    # ANGLE / WebGL style, Mesa, NVIDIA
    LOG_LINES = (
        re.compile(r'(?P<type>ERROR|WARNING):\s*(?P<source>\d+):(?P<line>\d+):\s*(?P<message>.+)'),
        re.compile(r'(?P<source>\d+):(?P<line>\d+)\(\d+\):\s*(?P<type>error|warning):\s*(?P<message>.+)'),
        re.compile(r'(?P<source>\d+)\((?P<line>\d+)\)\s*:\s*(?P<type>error|warning)\s*\w*:\s*(?P<message>.+)'),
    )


_UNIFORM_DECL_RE = re.compile(r"uniform\s+(?P<type_spec>\w+)\s+(?P<uniform_name>\w+)(\[\d*\])?\s*(=\s*(?P<initialization>.*)\s*;|;)")

_FRIENDLY_MESSAGES = (
    ('undeclared identifier', 'Variable not declared'),
    ('no matching overloaded function found', 'Function call with wrong arguments'),
    ('cannot convert from', 'Type mismatch'),
    ('syntax error', 'Syntax error'),
    ('incompatible types in initialization', 'Wrong type in variable initialization'),
    ('vector field selection out of range', 'Invalid vector component (use xyzw or rgba)'),
    ('index out of range', 'Array index out of bounds'),
    ('l-value required', 'Cannot assign to this expression'),
    ('cannot assign to', 'Cannot assign to constant or expression'),
)

_FRAG_COLOR = 'glslplay_FragColor'


def read_shader_src(filename):
    with open(os.path.join(_here, 'shaders', filename)) as f:
        return f.read()


def is_legacy_glsl(glsl_version):
    return glsl_version.split()[0] in LEGACY_GLSL_VERSIONS


def vertex_shader_src(glsl_version=DEFAULT_GLSL_VERSION):
    return '\n'.join(['#version %s' % glsl_version,
                      '#define ATTRIBUTE %s' % ('attribute' if is_legacy_glsl(glsl_version) else 'in'),
                      read_shader_src('fullscreen_vert.glsl')])


def prepare_shader_code(code, glsl_version=DEFAULT_GLSL_VERSION):
    """
    Wraps (preprocessed) user code so that it can be handed to the driver.

    A #version line in the user code wins over `glsl_version`; it is moved into
    the header and left blank in place. Playground uniforms the user code does
    not declare itself are declared in the header, and a Shadertoy style
    mainImage gets a main() calling it.

    Returns the wrapped source and the number of header lines preceding the
    first line of user code.
    """
    m = RE.VERSION.search(code)
    if m:
        glsl_version = m.group('version')
        code = code[:m.start()] + code[m.end():]
    declared = set(decl.group('uniform_name') for decl in _UNIFORM_DECL_RE.finditer(code))
    header = ['#version %s' % glsl_version,
              '#ifdef GL_ES',
              'precision mediump float;',
              '#endif']
    header.extend('uniform %s %s;' % (type_spec, name)
                  for type_spec, name in PLAYGROUND_UNIFORMS if name not in declared)
    footer = []
    if RE.MAIN_IMAGE.search(code) and not RE.MAIN.search(code):
        if is_legacy_glsl(glsl_version):
            frag_color = 'gl_FragColor'
        else:
            header.append('out vec4 %s;' % _FRAG_COLOR)
            frag_color = _FRAG_COLOR
        footer = ['',
                  'void main() {',
                  '    mainImage(%s, gl_FragCoord.xy);' % frag_color,
                  '}']
    return '\n'.join(header + [code] + footer), len(header)


def format_error_message(message):
    """Strips quotes from a driver message and prefixes a friendlier description where one is known."""
    message = RE.QUOTED.sub(r'\1', message)
    lowered = message.lower()
    for pattern, replacement in _FRIENDLY_MESSAGES:
        if pattern in lowered:
            return '%s: %s' % (replacement, message)
    return message


def parse_shader_error(info_log, user_code_start_line=0, line_mapping=None):
    """
    Parses a driver info log into CompilationErrors.

    Line numbers are shifted back by the wrapper header and, if `line_mapping`
    is given, translated to the lines of the original source. Errors located in
    the wrapper itself get line 0.
    """
    errors = []
    for log_line in info_log.split('\n'):
        if not log_line.strip():
            continue
        m = next((m for m in (rex.search(log_line) for rex in RE.LOG_LINES) if m), None)
        if m is not None:
            line = int(m.group('line')) - user_code_start_line
            if line < 1:
                line = 0
            elif line_mapping:
                line = line_mapping.get(line, line)
            errors.append(CompilationError(line, format_error_message(m.group('message').strip()),
                                           m.group('type').lower()))
        elif 'error' in log_line.lower() or 'failed' in log_line.lower():
            errors.append(CompilationError(0, log_line.strip(), 'error'))
    return errors


def _decode(info_log):
    if isinstance(info_log, bytes):
        return info_log.decode(errors='replace')
    return info_log or ''


def compile_shader(source, shader_type):
    """
    Compiles a 'vertex' or 'fragment' shader in the current GL context.

    Returns (shader_id, info_log); shader_id is None if compilation failed.
    """
    import OpenGL.GL as gl
    gl_type = {'vertex': gl.GL_VERTEX_SHADER, 'fragment': gl.GL_FRAGMENT_SHADER}[shader_type]
    shader_id = gl.glCreateShader(gl_type)
    gl.glShaderSource(shader_id, source)
    gl.glCompileShader(shader_id)
    info_log = _decode(gl.glGetShaderInfoLog(shader_id))
    if not gl.glGetShaderiv(shader_id, gl.GL_COMPILE_STATUS):
        gl.glDeleteShader(shader_id)
        return None, info_log
    _logger.debug('compiled %s shader %d', shader_type, shader_id)
    return shader_id, info_log


def delete_shader(shader_id):
    import OpenGL.GL as gl
    gl.glDeleteShader(shader_id)


def link_program(vs_id, fs_id):
    """
    Links a program from compiled vertex and fragment shaders; the shaders are
    deleted afterwards either way.

    Returns (program_id, info_log); program_id is None if linking failed.
    """
    import OpenGL.GL as gl
    program_id = gl.glCreateProgram()
    gl.glAttachShader(program_id, vs_id)
    gl.glAttachShader(program_id, fs_id)
    gl.glLinkProgram(program_id)
    gl.glDetachShader(program_id, vs_id)
    gl.glDetachShader(program_id, fs_id)
    gl.glDeleteShader(vs_id)
    gl.glDeleteShader(fs_id)
    info_log = _decode(gl.glGetProgramInfoLog(program_id))
    if not gl.glGetProgramiv(program_id, gl.GL_LINK_STATUS):
        gl.glDeleteProgram(program_id)
        return None, info_log
    _logger.debug('linked program %d', program_id)
    return program_id, info_log


def compile_fragment_shader(source, glsl_version=DEFAULT_GLSL_VERSION, defines=None):
    """
    Preprocesses, wraps, compiles and links a playground fragment shader in the
    current GL context.

    Returns a CompileResult; its errors (and warnings) carry the line numbers of
    `source`, and on success `program` is the id of the linked program.
    """
    if not source.strip():
        return CompileResult(False, source, [CompilationError(0, 'Shader code is empty', 'error')], None)
    result = preprocess(source, defines=defines)
    if result.errors:
        _logger.debug('preprocessing failed with %d errors', len(result.errors))
        return CompileResult(False, result.code,
                             [CompilationError(error.line, error.message, 'error') for error in result.errors],
                             None)
    wrapped, user_code_start_line = prepare_shader_code(result.code, glsl_version)
    version = RE.VERSION.match(wrapped).group('version')
    vs_id, info_log = compile_shader(vertex_shader_src(version), 'vertex')
    if vs_id is None:
        raise Exception('failed to compile vertex shader:\n%s' % info_log)
    fs_id, info_log = compile_shader(wrapped, 'fragment')
    if fs_id is None:
        delete_shader(vs_id)
        errors = parse_shader_error(info_log, user_code_start_line, result.line_mapping)
        return CompileResult(False, result.code,
                             errors or [CompilationError(0, info_log.strip() or 'Shader compilation failed', 'error')],
                             None)
    warnings = parse_shader_error(info_log, user_code_start_line, result.line_mapping)
    program_id, info_log = link_program(vs_id, fs_id)
    if program_id is None:
        errors = parse_shader_error(info_log, user_code_start_line, result.line_mapping)
        return CompileResult(False, result.code,
                             errors or [CompilationError(0, 'Shader linking failed: %s' % info_log.strip(), 'error')],
                             None)
    return CompileResult(True, result.code, warnings, program_id)
