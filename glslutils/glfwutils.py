import logging
from ctypes import c_void_p

import numpy as np
import OpenGL
OpenGL.ERROR_CHECKING = False
OpenGL.ERROR_LOGGING = False
OpenGL.ERROR_ON_COPY = True
import OpenGL.GL as gl
import glfw
from PIL import Image

from glslutils.compiler import compile_fragment_shader, DEFAULT_GLSL_VERSION


_logger = logging.getLogger(__name__)


# two triangles covering clip space
FULLSCREEN_QUAD = np.array([-1.0, -1.0,
                             1.0, -1.0,
                            -1.0,  1.0,
                            -1.0,  1.0,
                             1.0, -1.0,
                             1.0,  1.0], dtype=np.float32)


def setup_glfw(width=800, height=600, visible=False, window_title='glslplay'):
    if not glfw.init():
        raise Exception('failed to initialize glfw')
    glfw.window_hint(glfw.VISIBLE, visible)
    glfw.window_hint(glfw.DOUBLEBUFFER, False)
    window = glfw.create_window(width, height, window_title, None, None)
    if not window:
        glfw.terminate()
        raise Exception('failed to create glfw window')
    glfw.make_context_current(window)
    _logger.info('GL_VERSION: %s', gl.glGetString(gl.GL_VERSION))
    return window


def set_uniforms(program_id, width, height, time=0.0, mouse=(0.0, 0.0)):
    """Sets whichever playground uniforms the linked program actually uses."""
    values = {
        'u_resolution': (width, height),
        'iResolution': (width, height),
        'u_time': (time,),
        'iTime': (time,),
        'u_mouse': tuple(mouse),
        'iMouse': tuple(mouse) + (0.0, 0.0),
    }
    gl.glUseProgram(program_id)
    setters = {1: gl.glUniform1f, 2: gl.glUniform2f, 4: gl.glUniform4f}
    for name, value in values.items():
        location = gl.glGetUniformLocation(program_id, name)
        if location != -1:
            setters[len(value)](location, *value)


def draw_fullscreen(program_id):
    gl.glUseProgram(program_id)
    vbo = gl.glGenBuffers(1)
    gl.glBindBuffer(gl.GL_ARRAY_BUFFER, vbo)
    gl.glBufferData(gl.GL_ARRAY_BUFFER, FULLSCREEN_QUAD.nbytes, FULLSCREEN_QUAD, gl.GL_STATIC_DRAW)
    location = gl.glGetAttribLocation(program_id, 'a_position')
    gl.glEnableVertexAttribArray(location)
    gl.glVertexAttribPointer(location, 2, gl.GL_FLOAT, False, 0, c_void_p(0))
    gl.glDrawArrays(gl.GL_TRIANGLES, 0, len(FULLSCREEN_QUAD) // 2)
    gl.glDisableVertexAttribArray(location)
    gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)
    gl.glDeleteBuffers(1, [vbo])
    gl.glFinish()


def read_screen(window):
    w, h = glfw.get_framebuffer_size(window)
    gl.glPixelStorei(gl.GL_PACK_ALIGNMENT, 1)
    pixels = gl.glReadPixels(0, 0, w, h, gl.GL_RGB, gl.GL_UNSIGNED_BYTE)
    return Image.frombytes('RGB', (w, h), pixels).transpose(Image.FLIP_TOP_BOTTOM)


def compile_in_window(source, glsl_version=DEFAULT_GLSL_VERSION, defines=None):
    """Compiles `source` in a throw-away hidden window; returns the CompileResult."""
    window = setup_glfw(width=16, height=16)
    try:
        result = compile_fragment_shader(source, glsl_version=glsl_version, defines=defines)
        if result.program is not None:
            gl.glDeleteProgram(result.program)
        return result
    finally:
        glfw.destroy_window(window)
        glfw.terminate()


def render_shader(source, width=800, height=600, time=0.0, mouse=(0.0, 0.0),
                  glsl_version=DEFAULT_GLSL_VERSION, defines=None, screenshot=None):
    """
    Renders a playground fragment shader over the whole of a hidden window.

    Returns (CompileResult, PIL.Image); the image is None if the shader did not
    compile. If `screenshot` is given the image is also saved there.
    """
    window = setup_glfw(width=width, height=height)
    try:
        result = compile_fragment_shader(source, glsl_version=glsl_version, defines=defines)
        if not result.success:
            return result, None
        w, h = glfw.get_framebuffer_size(window)
        gl.glViewport(0, 0, w, h)
        gl.glClearColor(0.0, 0.0, 0.0, 1.0)
        gl.glClear(gl.GL_COLOR_BUFFER_BIT)
        set_uniforms(result.program, w, h, time=time, mouse=mouse)
        draw_fullscreen(result.program)
        gl.glDeleteProgram(result.program)
        image = read_screen(window)
        if screenshot:
            image.save(screenshot)
            _logger.info('...saved %s', screenshot)
        return result, image
    finally:
        glfw.destroy_window(window)
        glfw.terminate()
