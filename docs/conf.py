# SPDX-License-Identifier: MPL-2.0
# Configuration file for the Sphinx documentation builder.
import os
import sys
from datetime import datetime

# Document the package from the source tree without installing it
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from receipt_ledger import __version__  # noqa: E402

# Project information
project = "Receipt Ledger"
copyright = f"{datetime.now().year}, The Receipt Ledger Authors"  # noqa: A001
author = "The Receipt Ledger Authors"
version = ".".join(__version__.split(".")[:2])
release = __version__

# General configuration
extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx.ext.intersphinx",
    "sphinx_rtd_theme",
    "myst_parser",
]

source_suffix = {".rst": "restructuredtext", ".md": "markdown"}
exclude_patterns = ["_build"]

# Receipts, verdicts and settings are dataclasses; show their fields in order
autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
    "show-inheritance": True,
}
autodoc_typehints = "description"
autodoc_mock_imports = ["fastapi", "slowapi", "uvicorn", "prometheus_client", "opentelemetry"]

napoleon_google_docstring = True
napoleon_numpy_docstring = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "cryptography": ("https://cryptography.io/en/latest/", None),
}

# HTML output options
html_theme = "sphinx_rtd_theme"
html_title = f"Receipt Ledger {release}"
html_theme_options = {
    "navigation_depth": 3,
}
