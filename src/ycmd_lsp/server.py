"""
ycmd Language Server

LSP front-end over the ycmd client service, using pygls.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer

from ycmd_lsp import __version__
from ycmd_lsp.code_actions import YcmdCodeActionProvider
from ycmd_lsp.completions import YcmdCompletionProvider
from ycmd_lsp.config import ExtraConfPolicy, YcmdSettings
from ycmd_lsp.definition import YcmdDefinitionProvider
from ycmd_lsp.diagnostics import YcmdDiagnosticsProvider
from ycmd_lsp.errors import YcmdError
from ycmd_lsp.exception_router import ERROR, INFO, WARNING
from ycmd_lsp.fixit import position_to_location
from ycmd_lsp.service import BUSY_MESSAGE, ClientService
from ycmd_lsp.text_buffer import LineBuffer, TextDocumentBuffer

if TYPE_CHECKING:
    from pygls.workspace import TextDocument

# Configure logging: WARNING by default to avoid flooding stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_MESSAGE_TYPES: dict[str, lsp.MessageType] = {
    ERROR: lsp.MessageType.Error,
    WARNING: lsp.MessageType.Warning,
    INFO: lsp.MessageType.Info,
}

_LOAD_ACTION = "Load"
_IGNORE_ACTION = "Ignore"


class YcmdLanguageServer(LanguageServer):
    """Language Server bridging to ycmd."""

    CMD_RESTART_SERVER = "ycmd.restartServer"
    CMD_DEBUG_INFO = "ycmd.debugInfo"
    CMD_LOAD_EXTRA_CONF = "ycmd.loadExtraConf"
    CMD_IGNORE_EXTRA_CONF = "ycmd.ignoreExtraConf"
    CMD_FORCE_PARSE = "ycmd.forceParse"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)

        self.settings = YcmdSettings()
        self.ycmd = ClientService(
            self.settings, report=self.report, prompt=self.ask_extra_conf
        )
        self.force_semantic_on_invoke = False

        self.completion_provider = YcmdCompletionProvider(self)
        self.diagnostics_provider = YcmdDiagnosticsProvider(self)
        self.definition_provider = YcmdDefinitionProvider(self)
        self.code_action_provider = YcmdCodeActionProvider(self)
        self.ycmd.parse_state.add_observer(self.diagnostics_provider.on_parse_result)

    def get_document(self, uri: str) -> TextDocument | None:
        """Get an open document from the workspace."""
        if uri not in self.workspace.text_documents:
            return None
        return self.workspace.get_text_document(uri)

    def get_buffer(self, uri: str) -> TextDocumentBuffer | None:
        doc = self.get_document(uri)
        if doc is None:
            return None
        return TextDocumentBuffer(doc, self.settings.filetypes_for(doc.language_id))

    def buffer_for_path(self, path: str) -> LineBuffer | None:
        """Editable snapshot of a file: the open document, else the disk contents."""
        uri = Path(path).as_uri()
        buffer = self.get_buffer(uri)
        if buffer is not None:
            return buffer.snapshot()
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            return None
        return LineBuffer(text, path, buffer_id=uri)

    def report(self, message: str, level: str) -> None:
        """Show a message to the user."""
        logger.info(message)
        self.window_show_message(
            lsp.ShowMessageParams(
                type=_MESSAGE_TYPES.get(level, lsp.MessageType.Info),
                message=message,
            )
        )

    async def ask_extra_conf(self, path: str) -> bool:
        """Ask the user whether the extra conf at ``path`` may be loaded."""
        answer = await self.window_show_message_request_async(
            lsp.ShowMessageRequestParams(
                type=lsp.MessageType.Warning,
                message=f"Found {path}. Load? (Question can be turned off with options)",
                actions=[
                    lsp.MessageActionItem(title=_LOAD_ACTION),
                    lsp.MessageActionItem(title=_IGNORE_ACTION),
                ],
            )
        )
        return answer is not None and answer.title == _LOAD_ACTION


# Create server instance
server = YcmdLanguageServer(
    name="ycmd-lsp",
    version=__version__,
)


# ============================================================================
# Lifecycle Events
# ============================================================================


@server.feature(lsp.INITIALIZE)
async def initialize(params: lsp.InitializeParams) -> None:
    """Handle the initialize request - configure ycmd from initializationOptions."""
    opts = params.initialization_options or {}
    if isinstance(opts, dict):
        YcmdSettings.from_init_options(opts, base=server.settings)
        server.force_semantic_on_invoke = bool(
            opts.get("forceSemanticCompletion", server.force_semantic_on_invoke)
        )


@server.feature(lsp.INITIALIZED)
async def initialized(params: lsp.InitializedParams) -> None:
    """Start ycmd once the editor is ready for server-to-client requests."""
    if not server.settings.server_command:
        logger.warning("No ycmd server command configured; ycmd will not start")
        return
    try:
        await server.ycmd.open()
    except (YcmdError, OSError) as e:
        logger.error(f"Failed to start ycmd: {e}")
        server.report(f"Failed to start ycmd: {e}", ERROR)
        return

    # Documents opened while ycmd was starting
    for uri in list(server.workspace.text_documents):
        buffer = server.get_buffer(uri)
        if buffer is not None:
            server.ycmd.notify_file_ready(buffer)


@server.feature(lsp.SHUTDOWN)
async def shutdown(params: Any) -> None:
    """Handle the shutdown request."""
    await server.ycmd.close()


# ============================================================================
# Document Events
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
async def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
    """Handle document open."""
    uri = params.text_document.uri
    logger.debug(f"Document opened: {uri}")
    buffer = server.get_buffer(uri)
    if buffer is not None:
        server.ycmd.notify_file_ready(buffer)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
async def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
    """Handle document change: re-parse once the user stops typing."""
    uri = params.text_document.uri
    buffer = server.get_buffer(uri)
    if buffer is not None:
        server.ycmd.schedule_notify(buffer)


@server.feature(lsp.TEXT_DOCUMENT_DID_SAVE)
async def did_save(params: lsp.DidSaveTextDocumentParams) -> None:
    """Handle document save."""
    uri = params.text_document.uri
    logger.debug(f"Document saved: {uri}")
    buffer = server.get_buffer(uri)
    if buffer is not None:
        server.ycmd.parse_state.cancel_timer(uri)
        server.ycmd.notify_file_ready(buffer)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
async def did_close(params: lsp.DidCloseTextDocumentParams) -> None:
    """Handle document close."""
    uri = params.text_document.uri
    logger.debug(f"Document closed: {uri}")

    server.ycmd.teardown_buffer(uri)
    server.diagnostics_provider.clear_cache(uri)
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=[])
    )


# ============================================================================
# Completion
# ============================================================================


@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(trigger_characters=[".", ">", ":", "/"]),
)
async def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
    """Provide completions."""
    return await server.completion_provider.get_completions(params)


# ============================================================================
# Go to
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
async def definition(params: lsp.DefinitionParams) -> list[lsp.Location] | None:
    """Provide go-to-definition."""
    return await server.definition_provider.goto(params, "GoToDefinition")


@server.feature(lsp.TEXT_DOCUMENT_DECLARATION)
async def declaration(params: lsp.DeclarationParams) -> list[lsp.Location] | None:
    """Provide go-to-declaration."""
    return await server.definition_provider.goto(params, "GoToDeclaration")


@server.feature(lsp.TEXT_DOCUMENT_IMPLEMENTATION)
async def implementation(params: lsp.ImplementationParams) -> list[lsp.Location] | None:
    """Provide go-to-implementation."""
    return await server.definition_provider.goto(params, "GoToImplementation")


@server.feature(lsp.TEXT_DOCUMENT_REFERENCES)
async def references(params: lsp.ReferenceParams) -> list[lsp.Location] | None:
    """Provide find references."""
    return await server.definition_provider.goto(params, "GoToReferences")


# ============================================================================
# Hover
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_HOVER)
async def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    """Show documentation, falling back to the type under the cursor."""
    buffer = server.get_buffer(params.text_document.uri)
    if buffer is None:
        return None
    # Both commands would be refused; tell the user once
    if server.ycmd.parse_state.is_parsing(buffer.buffer_id):
        server.ycmd.report(BUSY_MESSAGE, WARNING)
        return None
    location = position_to_location(
        buffer.snapshot(), params.position.line, params.position.character
    )

    text = None
    try:
        for command in (server.ycmd.get_doc, server.ycmd.get_type):
            result = await command(buffer, location.line, location.column)
            if result is not None and result.message:
                text = result.message
                break
    except YcmdError as e:
        logger.error(f"Hover request failed: {e}")
        return None

    if not text:
        return None
    return lsp.Hover(
        contents=lsp.MarkupContent(kind=lsp.MarkupKind.PlainText, value=text)
    )


# ============================================================================
# Code Actions
# ============================================================================


@server.feature(
    lsp.TEXT_DOCUMENT_CODE_ACTION,
    lsp.CodeActionOptions(code_action_kinds=[lsp.CodeActionKind.QuickFix]),
)
async def code_action(params: lsp.CodeActionParams) -> list[lsp.CodeAction] | None:
    """Offer ycmd fix-its as quick fixes."""
    return await server.code_action_provider.get_code_actions(params)


# ============================================================================
# Execute Command
# ============================================================================


@server.feature(
    lsp.WORKSPACE_EXECUTE_COMMAND,
    lsp.ExecuteCommandOptions(
        commands=[
            YcmdLanguageServer.CMD_RESTART_SERVER,
            YcmdLanguageServer.CMD_DEBUG_INFO,
            YcmdLanguageServer.CMD_LOAD_EXTRA_CONF,
            YcmdLanguageServer.CMD_IGNORE_EXTRA_CONF,
            YcmdLanguageServer.CMD_FORCE_PARSE,
        ]
    ),
)
async def execute_command(params: lsp.ExecuteCommandParams) -> object | None:
    """Execute a command."""
    args = list(params.arguments or [])
    try:
        if params.command == YcmdLanguageServer.CMD_RESTART_SERVER:
            await server.ycmd.restart()
            for uri in list(server.workspace.text_documents):
                buffer = server.get_buffer(uri)
                if buffer is not None:
                    server.ycmd.notify_file_ready(buffer)
            return {"running": server.ycmd.is_running()}

        elif params.command == YcmdLanguageServer.CMD_DEBUG_INFO:
            buffer = server.get_buffer(args[0]) if args else None
            if buffer is None:
                return None
            return await server.ycmd.debug_info(buffer)

        elif params.command == YcmdLanguageServer.CMD_LOAD_EXTRA_CONF:
            if args:
                await server.ycmd.load_extra_conf(str(args[0]))
            return None

        elif params.command == YcmdLanguageServer.CMD_IGNORE_EXTRA_CONF:
            if args:
                await server.ycmd.ignore_extra_conf(str(args[0]))
            return None

        elif params.command == YcmdLanguageServer.CMD_FORCE_PARSE:
            buffer = server.get_buffer(args[0]) if args else None
            if buffer is not None:
                server.ycmd.force_parse(buffer)
            return None

    except YcmdError as e:
        logger.error(f"Command {params.command} failed: {e}")
        server.report(f"ycmd: {e}", ERROR)

    return None


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the language server."""
    parser = argparse.ArgumentParser(
        description="ycmd Language Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--stdio",
        action="store_true",
        default=True,
        help="Use stdio for communication (default)",
    )
    parser.add_argument(
        "--tcp",
        action="store_true",
        help="Use TCP for communication",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="TCP host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=2088,
        help="TCP port (default: 2088)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set the logging level (default: WARNING)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"ycmd-lsp {__version__}",
    )
    parser.add_argument(
        "--server-command",
        nargs="+",
        help='Command that starts ycmd (e.g. "python /path/to/ycmd")',
    )
    parser.add_argument(
        "--server-arg",
        action="append",
        dest="server_args",
        help="Extra argument passed to ycmd (repeatable)",
    )
    parser.add_argument(
        "--startup-timeout",
        type=float,
        help="Seconds to wait for ycmd to announce its port",
    )
    parser.add_argument(
        "--extra-conf-policy",
        choices=[p.value for p in ExtraConfPolicy],
        help="What to do with unknown .ycm_extra_conf.py files (default: ask)",
    )

    args = parser.parse_args()

    # Set log level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    # Store ycmd configuration; initializationOptions may still override it
    if args.server_command:
        server.settings.server_command = args.server_command
    if args.server_args:
        server.settings.server_args = args.server_args
    if args.startup_timeout is not None:
        server.settings.startup_timeout = args.startup_timeout
    if args.extra_conf_policy:
        server.settings.extra_conf_policy = ExtraConfPolicy(args.extra_conf_policy)

    if args.tcp:
        logger.info(f"Starting ycmd-lsp in TCP mode on {args.host}:{args.port}")
        server.start_tcp(args.host, args.port)
    else:
        logger.info("Starting ycmd-lsp in stdio mode")
        server.start_io()


if __name__ == "__main__":
    main()
