"""
ycmd Language Server

A Language Server Protocol bridge to a locally spawned ycmd server,
providing completion, diagnostics, go-to and fix-its over authenticated HTTP.
"""

__version__ = "0.1.0"

# Import on demand to avoid import errors
def get_server():
    from ycmd_lsp.server import YcmdLanguageServer
    return YcmdLanguageServer

__all__ = ["get_server", "__version__"]
