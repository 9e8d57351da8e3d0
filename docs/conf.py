import rlcmgp

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.mathjax",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
]

master_doc = "index"
source_suffix = {".rst": "restructuredtext"}
templates_path = ["_templates"]

# General information about the project.
project = "rlcmgp"
copyright = "2024, rlcmgp developers"
version = rlcmgp.__version__
release = rlcmgp.__version__

exclude_patterns = ["_build"]
html_theme = "sphinx_book_theme"
html_title = "rlcmgp"
html_show_sourcelink = False
html_theme_options = {
    "path_to_docs": "docs",
    "repository_url": "https://github.com/rlcmgp/rlcmgp",
    "repository_branch": "main",
    "use_edit_page_button": True,
    "use_issues_button": True,
    "use_repository_button": True,
}

autodoc_type_aliases = {
    "JAXArray": "rlcmgp.helpers.JAXArray",
    "Distance": "rlcmgp.kernels.stationary.Distance",
}
