from sys import exit
import argparse
import logging
_logger = logging.getLogger(__name__)
_LOGGING_FORMAT = '%(name)s.%(funcName)s[%(levelname)s]: %(message)s'
_DEBUG_LOGGING_FORMAT = '%(asctime).19s [%(levelname)s]%(name)s.%(funcName)s:%(lineno)d: %(message)s'


from glslutils.compiler import DEFAULT_GLSL_VERSION, read_shader_src
from glslutils.preprocessor import preprocess, extract_macro_names


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='preprocess, compile and preview GLSL fragment shaders')
    parser.add_argument('filename', nargs='?',
                        help='path of the GLSL fragment shader (defaults to the playground\'s default shader)',
                        default=None)
    parser.add_argument("-v", '--verbose',
                        help="enable verbose logging",
                        action="store_true")
    parser.add_argument('-D', dest='defines', metavar='NAME[=VALUE]',
                        help='define a macro before the first line of the shader (may be repeated)',
                        action='append', default=[])
    parser.add_argument('--macros',
                        help='list the macros #defined in the shader and exit',
                        action='store_true')
    parser.add_argument('--line-map',
                        help='print the mapping from preprocessed lines to source lines',
                        action='store_true')
    parser.add_argument('-c', '--compile',
                        help='compile the shader in a hidden window and report driver errors',
                        action='store_true')
    parser.add_argument('-s', '--screenshot',
                        help='render the shader and save the image to the given path',
                        default=None)
    parser.add_argument('--size',
                        help='size of the rendered image, WIDTHxHEIGHT',
                        default='800x600')
    parser.add_argument('--time',
                        help='value of the time uniforms when rendering',
                        default=0.0)
    parser.add_argument('--glsl-version',
                        help='GLSL version to compile for, unless the shader has its own #version (default %s)'
                             % DEFAULT_GLSL_VERSION,
                        default=DEFAULT_GLSL_VERSION)
    return parser.parse_args(argv)


def parse_defines(defines):
    parsed = {}
    for define in defines:
        name, _, value = define.partition('=')
        parsed[name.strip()] = value.strip() or None
    return parsed


def report(filename, errors):
    for error in errors:
        if getattr(error, 'type', 'error') == 'warning':
            _logger.warning('%s:%d: %s', filename, error.line, error.message)
        else:
            _logger.error('%s:%d: %s', filename, error.line, error.message)


def main(argv=None):
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(format=_DEBUG_LOGGING_FORMAT, level=logging.DEBUG)
        opengl_logger = logging.getLogger('OpenGL')
        opengl_logger.setLevel(logging.INFO)
        pil_logger = logging.getLogger('PIL')
        pil_logger.setLevel(logging.WARNING)
    else:
        logging.basicConfig(format=_LOGGING_FORMAT, level=logging.INFO)

    try:
        args.size = tuple(int(x.strip()) for x in args.size.lower().split('x'))
        if len(args.size) != 2:
            raise ValueError(args.size)
    except ValueError:
        _logger.error('%s is an invalid value for size', args.size)
        exit(1)

    try:
        args.time = float(args.time)
    except ValueError:
        _logger.error('%s is an invalid value for time', args.time)
        exit(1)

    if args.filename is None:
        args.filename = '<default>'
        source = read_shader_src('default_frag.glsl')
    else:
        try:
            with open(args.filename) as f:
                source = f.read()
            _logger.debug('loaded "%s"', args.filename)
        except OSError as err:
            _logger.error('failed to load "%s":\n%s', args.filename, err)
            exit(1)

    if args.macros:
        for name in extract_macro_names(source):
            print(name)
        return 0

    defines = parse_defines(args.defines)

    if args.compile or args.screenshot:
        from glslutils.glfwutils import compile_in_window, render_shader
        try:
            if args.screenshot:
                result, _ = render_shader(source, width=args.size[0], height=args.size[1], time=args.time,
                                          glsl_version=args.glsl_version, defines=defines,
                                          screenshot=args.screenshot)
            else:
                result = compile_in_window(source, glsl_version=args.glsl_version, defines=defines)
        except Exception as err:
            _logger.error('failed to set up OpenGL:\n%s', err)
            exit(1)
        report(args.filename, result.errors)
        if not result.success:
            exit(1)
        _logger.info('"%s" compiled successfully', args.filename)
        return 0

    result = preprocess(source, defines=defines)
    if args.line_map:
        for line, original_line in result.line_mapping.items():
            print('%d -> %d' % (line, original_line))
    else:
        print(result.code)
    report(args.filename, result.errors)
    if result.errors:
        exit(1)
    return 0


if __name__ == "__main__":
    main()
