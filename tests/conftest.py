import os
import sys

# Ensure repository root is on sys.path so `glslutils` and `glslplay` are importable
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)
