"""Canvas Pipe - pipeline step engine for an AI creative media editor.

Wire everything up through ``canvaspipe.editor.MediaEditor``; the CLI
(``python -m canvaspipe``) and the HTTP API (``python -m canvaspipe.api``)
are thin surfaces over it.
"""

__version__ = "0.1.0"
