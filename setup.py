#!/bin/env python
from setuptools import setup
from codecs import open
from os import path, listdir

here = path.dirname(path.abspath(__file__))

with open(path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='glslplay',
    version='0.1.0',
    description='GLSL fragment shader playground: a macro / conditional-compilation preprocessor with line mapping, '
                'driver error remapping and offscreen preview rendering',
    packages=['glslutils', 'glslplay'],
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
    ],
    keywords='glsl shader preprocessor macro opengl pyopengl glfw playground',
    python_requires='>=3.6',
    install_requires=[
        'numpy',
        'pillow',
        'pyopengl',
        'glfw',
    ],
    extras_require={
        'accelerate': ['pyopengl-accelerate'],
        'tests': ['pytest'],
    },
    package_data={
        'glslutils': [path.join('shaders', filename)
                      for filename in listdir(path.join(here, 'glslutils', 'shaders'))
                      if filename.endswith('.glsl')],
    },
    data_files=[],
    entry_points={
        'console_scripts': [
            'glslplay = glslplay.__main__:main'
        ]
    }
)
