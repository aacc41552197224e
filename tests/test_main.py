import pytest

from glslplay.__main__ import main, parse_defines


@pytest.fixture
def shader(tmp_path):
    def write(text):
        path = tmp_path / 'shader.frag'
        path.write_text(text)
        return str(path)
    return write


def test_parse_defines():
    assert parse_defines(['A', 'N=3', 'B = x ']) == {'A': None, 'N': '3', 'B': 'x'}


def test_prints_preprocessed_code(shader, capsys):
    assert main([shader("#define A 1\nint a = A;")]) == 0
    assert capsys.readouterr().out == "\nint a = 1;\n"


def test_defines(shader, capsys):
    filename = shader("#ifdef DEBUG\nint n = N;\n#endif")
    assert main([filename, '-D', 'DEBUG', '-D', 'N=3']) == 0
    assert "int n = 3;" in capsys.readouterr().out


def test_errors_exit_nonzero(shader, caplog):
    filename = shader("int a;\n#endif")
    with pytest.raises(SystemExit) as excinfo:
        main([filename])
    assert excinfo.value.code == 1
    assert '%s:2: #endif without matching' % filename in caplog.text


def test_list_macros(shader, capsys):
    assert main([shader("#define A 1\n#if 0\n#define B(x) x\n#endif"), '--macros']) == 0
    assert capsys.readouterr().out == "A\nB\n"


def test_line_map(shader, capsys):
    assert main([shader("#define A \\\n  1\nint a = A;"), '--line-map']) == 0
    assert capsys.readouterr().out == "1 -> 1\n2 -> 3\n"


def test_missing_file(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / 'missing.frag')])
    assert excinfo.value.code == 1


def test_default_shader(capsys):
    assert main([]) == 0
    assert 'void mainImage' in capsys.readouterr().out


@pytest.mark.parametrize("option", [['--size', '800'], ['--size', 'axb'], ['--time', 'soon']])
def test_invalid_render_options(shader, option):
    with pytest.raises(SystemExit):
        main([shader("void main() {}")] + option)
