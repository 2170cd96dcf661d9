import blockgp

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.mathjax",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "myst_nb",
]

myst_enable_extensions = ["dollarmath", "colon_fence"]
master_doc = "index"
source_suffix = {
    ".rst": "restructuredtext",
    ".ipynb": "myst-nb",
}
templates_path = ["_templates"]

# General information about the project.
project = "blockgp"
copyright = "2026, blockgp developers"
version = blockgp.__version__
release = blockgp.__version__

exclude_patterns = ["_build"]
html_theme = "sphinx_book_theme"
html_title = "blockgp"
html_show_sourcelink = False
html_theme_options = {
    "path_to_docs": "docs",
    "repository_url": blockgp.__uri__,
    "repository_branch": "main",
    "use_edit_page_button": True,
    "use_issues_button": True,
    "use_repository_button": True,
}
nb_execution_mode = "auto"
nb_execution_timeout = -1

autodoc_type_aliases = {
    "JAXArray": "blockgp.helpers.JAXArray",
    "Path": "blockgp.helpers.Path",
    "Distance": "blockgp.kernels.distance.Distance",
}
