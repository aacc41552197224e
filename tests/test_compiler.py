import pytest

from glslutils import compiler
from glslutils.compiler import (CompilationError, prepare_shader_code, parse_shader_error, vertex_shader_src,
                                format_error_message, compile_fragment_shader, read_shader_src)


MAIN = "void main() {\n    gl_FragColor = vec4(1.0);\n}"
MAIN_IMAGE = "void mainImage(out vec4 c, in vec2 p) {\n    c = vec4(1.0);\n}"


def test_prepare_shader_code_header():
    wrapped, header_length = prepare_shader_code(MAIN)
    lines = wrapped.split('\n')
    assert header_length == 10
    assert lines[0] == '#version 120'
    assert 'uniform vec2 u_resolution;' in lines[:header_length]
    assert 'uniform vec4 iMouse;' in lines[:header_length]
    assert lines[header_length:] == MAIN.split('\n')


def test_prepare_shader_code_skips_declared_uniforms():
    code = "uniform float u_time;\n" + MAIN
    wrapped, header_length = prepare_shader_code(code)
    assert header_length == 9
    assert wrapped.count('uniform float u_time;') == 1


def test_prepare_shader_code_hoists_version():
    code = "#version 300 es\n" + MAIN
    wrapped, header_length = prepare_shader_code(code, '120')
    lines = wrapped.split('\n')
    assert lines[0] == '#version 300 es'
    assert wrapped.count('#version') == 1
    # the user's #version line stays as a blank line
    assert lines[header_length] == ''
    assert len(lines) == header_length + len(code.split('\n'))


def test_prepare_shader_code_main_image_legacy():
    wrapped, header_length = prepare_shader_code(MAIN_IMAGE, '120')
    assert header_length == 10
    assert 'mainImage(gl_FragColor, gl_FragCoord.xy);' in wrapped


def test_prepare_shader_code_main_image_modern():
    wrapped, header_length = prepare_shader_code(MAIN_IMAGE, '300 es')
    assert header_length == 11
    assert wrapped.split('\n')[header_length - 1] == 'out vec4 glslplay_FragColor;'
    assert 'mainImage(glslplay_FragColor, gl_FragCoord.xy);' in wrapped


def test_prepare_shader_code_keeps_user_main():
    wrapped, _ = prepare_shader_code(MAIN_IMAGE + "\n" + MAIN)
    assert wrapped.count('void main()') == 1


def test_vertex_shader_src():
    legacy = vertex_shader_src('120').split('\n')
    assert legacy[:2] == ['#version 120', '#define ATTRIBUTE attribute']
    modern = vertex_shader_src('300 es').split('\n')
    assert modern[:2] == ['#version 300 es', '#define ATTRIBUTE in']
    assert 'ATTRIBUTE vec2 a_position;' in modern


def test_format_error_message():
    assert format_error_message("'foo' : undeclared identifier") == \
        'Variable not declared: foo : undeclared identifier'
    assert format_error_message('something else') == 'something else'


def test_parse_angle_log():
    errors = parse_shader_error("ERROR: 0:12: 'foo' : undeclared identifier\n", 10)
    assert errors == [CompilationError(2, 'Variable not declared: foo : undeclared identifier', 'error')]


def test_parse_mesa_log():
    errors = parse_shader_error("0:14(5): error: `bar' undeclared", 10)
    assert errors == [CompilationError(4, 'bar undeclared', 'error')]


def test_parse_nvidia_log():
    errors = parse_shader_error('0(13) : error C1008: undefined variable "x"', 10)
    assert errors == [CompilationError(3, 'undefined variable x', 'error')]


def test_parse_warning():
    errors = parse_shader_error("WARNING: 0:11: unused variable", 10)
    assert errors == [CompilationError(1, 'unused variable', 'warning')]


def test_parse_errors_in_wrapper_get_line_zero():
    errors = parse_shader_error("ERROR: 0:3: '' : syntax error", 10, {1: 5})
    assert [error.line for error in errors] == [0]


def test_parse_log_uses_line_mapping():
    errors = parse_shader_error("ERROR: 0:12: 'x' : syntax error", 10, {1: 1, 2: 7})
    assert errors[0].line == 7
    assert errors[0].message == 'Syntax error: x : syntax error'


def test_parse_unrecognized_lines():
    errors = parse_shader_error("Fragment shader failed to compile\nsome note\n\n")
    assert errors == [CompilationError(0, 'Fragment shader failed to compile', 'error')]


class FakeDriver(object):
    def __init__(self, fragment=(2, ''), link=(3, ''), vertex=(1, '')):
        self.results = {'vertex': vertex, 'fragment': fragment}
        self.link = link
        self.sources = {}
        self.deleted = []

    def compile_shader(self, source, shader_type):
        self.sources[shader_type] = source
        return self.results[shader_type]

    def link_program(self, vs_id, fs_id):
        return self.link

    def delete_shader(self, shader_id):
        self.deleted.append(shader_id)


@pytest.fixture
def patch_driver(monkeypatch):
    def patch(**results):
        driver = FakeDriver(**results)
        monkeypatch.setattr(compiler, 'compile_shader', driver.compile_shader)
        monkeypatch.setattr(compiler, 'link_program', driver.link_program)
        monkeypatch.setattr(compiler, 'delete_shader', driver.delete_shader)
        return driver
    return patch


SPLICED_SOURCE = "#define A \\\n  1\nvoid main() {\n  gl_FragColor = vec4(foo);\n}"


def test_compile_error_is_mapped_to_source_line(patch_driver):
    # spliced line 3 is preceded by the 10 header lines
    driver = patch_driver(fragment=(None, "ERROR: 0:13: 'foo' : undeclared identifier"))
    result = compile_fragment_shader(SPLICED_SOURCE)
    assert not result.success
    assert result.program is None
    assert result.errors == [CompilationError(4, 'Variable not declared: foo : undeclared identifier', 'error')]
    assert driver.deleted == [1]
    assert driver.sources['fragment'].split('\n')[12] == '  gl_FragColor = vec4(foo);'


def test_compile_error_without_parsable_log(patch_driver):
    patch_driver(fragment=(None, ''))
    result = compile_fragment_shader(MAIN)
    assert result.errors == [CompilationError(0, 'Shader compilation failed', 'error')]


def test_compile_success(patch_driver):
    driver = patch_driver(fragment=(2, 'WARNING: 0:11: unused variable'), link=(3, ''))
    result = compile_fragment_shader(MAIN)
    assert result.success
    assert result.program == 3
    assert result.errors == [CompilationError(1, 'unused variable', 'warning')]
    assert driver.sources['vertex'].startswith('#version 120\n')


def test_compile_uses_shader_version_for_vertex_shader(patch_driver):
    driver = patch_driver()
    compile_fragment_shader("#version 300 es\nout vec4 color;\nvoid main() { color = vec4(1.0); }")
    assert driver.sources['vertex'].startswith('#version 300 es\n#define ATTRIBUTE in\n')


def test_compile_passes_defines(patch_driver):
    driver = patch_driver()
    compile_fragment_shader("void main() { gl_FragColor = vec4(N); }", defines={'N': '0.5'})
    assert 'vec4(0.5)' in driver.sources['fragment']


def test_link_failure(patch_driver):
    patch_driver(link=(None, 'L0001: no main'))
    result = compile_fragment_shader(MAIN)
    assert not result.success
    assert result.errors == [CompilationError(0, 'Shader linking failed: L0001: no main', 'error')]


def test_vertex_shader_failure_raises(patch_driver):
    patch_driver(vertex=(None, 'broken'))
    with pytest.raises(Exception):
        compile_fragment_shader(MAIN)


def test_preprocessor_errors_skip_compilation(patch_driver):
    driver = patch_driver()
    result = compile_fragment_shader("void main() {}\n#endif")
    assert not result.success
    assert result.errors == [CompilationError(2, '#endif without matching #if, #ifdef, or #ifndef', 'error')]
    assert driver.sources == {}


def test_empty_source(patch_driver):
    driver = patch_driver()
    result = compile_fragment_shader('  \n ')
    assert result.errors == [CompilationError(0, 'Shader code is empty', 'error')]
    assert driver.sources == {}


def test_default_shader():
    source = read_shader_src('default_frag.glsl')
    wrapped, _ = prepare_shader_code(source)
    assert 'mainImage(gl_FragColor, gl_FragCoord.xy);' in wrapped
