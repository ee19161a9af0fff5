import os
import sys

sys.path.insert(0, os.path.abspath("../src"))

project = "kexpfam"
copyright = "2025, Matthew Fisher"
author = "Matthew Fisher"
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",  # Google-style docstrings
    "sphinx_autodoc_typehints",
    "sphinx.ext.mathjax",  # .. math:: blocks in the estimator and kernel docstrings
]

autodoc_default_options = {
    "members": True,
    "undoc-members": True,
    "special-members": "__call__",
    "show-inheritance": True,
}

autodoc_typehints = "description"
autodoc_mock_imports = ["matplotlib", "seaborn", "pandas"]

exclude_patterns = ["_build"]

html_theme = "furo"
