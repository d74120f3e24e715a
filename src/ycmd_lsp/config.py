"""
Configuration for the ycmd client.

Holds every tunable the client needs: how to launch the server, timing of
startup/shutdown/keepalive, the extra-conf policy, and the options that are
handed to the server once through its options file.
"""

from __future__ import annotations

import base64
import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_HMAC_HEADER = "X-Signature"

# Server defaults, mirroring ycmd's default_settings.json
DEFAULT_SERVER_OPTIONS: dict[str, Any] = {
    "filepath_completion_use_working_dir": 0,
    "auto_trigger": 1,
    "min_num_of_chars_for_completion": 2,
    "min_num_identifier_candidate_chars": 0,
    "semantic_triggers": {},
    "filetype_specific_completion_to_disable": {"gitcommit": 1},
    "seed_identifiers_with_syntax": 0,
    "collect_identifiers_from_comments_and_strings": 0,
    "collect_identifiers_from_tags_files": 0,
    "max_num_identifier_candidates": 10,
    "extra_conf_globlist": [],
    "global_ycm_extra_conf": "",
    "confirm_extra_conf": 1,
    "complete_in_comments": 0,
    "complete_in_strings": 1,
    "max_diagnostics_to_display": 30,
    "filetype_whitelist": {"*": 1},
    "filetype_blacklist": {
        "tagbar": 1,
        "qf": 1,
        "notes": 1,
        "markdown": 1,
        "netrw": 1,
        "unite": 1,
        "text": 1,
        "vimwiki": 1,
        "pandoc": 1,
        "infolog": 1,
        "mail": 1,
    },
    "auto_start_csharp_server": 1,
    "auto_stop_csharp_server": 1,
    "use_ultisnips_completer": 1,
    "csharp_server_port": 0,
    "hmac_secret": "",
    "server_keep_logfiles": 0,
    "python_binary_path": "",
    "rust_src_path": "",
    "racerd_binary_path": "",
    "gocode_binary_path": "",
    "godef_binary_path": "",
}

# LSP languageId -> ycmd filetype
DEFAULT_FILETYPE_MAP: dict[str, str] = {
    "objective-c": "objc",
    "objective-cpp": "objcpp",
    "csharp": "cs",
    "javascriptreact": "javascript",
    "typescriptreact": "typescript",
    "shellscript": "sh",
}


class ExtraConfPolicy(enum.Enum):
    """What to do when the server finds an unknown extra-conf file."""

    LOAD = "load"
    IGNORE = "ignore"
    ASK = "ask"


@dataclass
class YcmdSettings:
    """All client-side settings.

    ``server_command`` is the command prefix that starts ycmd, e.g.
    ``["python", "/path/to/ycmd"]``. The options file argument and
    ``server_args`` are appended to it.
    """

    server_command: list[str] = field(default_factory=list)
    server_args: list[str] = field(
        default_factory=lambda: ["--log=debug", "--keep_logfile", "--idle_suicide_seconds=10800"]
    )
    host: str = "127.0.0.1"
    startup_timeout: float = 3.0
    shutdown_grace: float = 3.0
    keepalive_period: float = 600.0
    request_timeout: float = 30.0
    idle_change_delay: float = 0.5
    hmac_header: str = DEFAULT_HMAC_HEADER

    extra_conf_policy: ExtraConfPolicy = ExtraConfPolicy.ASK
    confirm_extra_conf: bool = True
    extra_conf_globlist: list[str] = field(default_factory=list)
    global_config: str | None = None

    min_num_of_chars_for_completion: int = 2
    min_num_identifier_candidate_chars: int = 0
    max_num_identifier_candidates: int = 10
    auto_trigger: bool = True
    seed_identifiers_with_syntax: bool = False
    collect_tag_files: bool = False
    syntax_keywords: dict[str, list[str]] = field(default_factory=dict)

    python_binary_path: str | None = None
    rust_src_path: str | None = None
    racerd_binary_path: str | None = None
    gocode_binary_path: str | None = None
    godef_binary_path: str | None = None

    default_settings_file: str | None = None
    server_options: dict[str, Any] = field(default_factory=dict)
    filetype_map: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FILETYPE_MAP))

    def filetypes_for(self, language_id: str | None) -> list[str]:
        """Map an editor language id to the list of ycmd filetypes."""
        if not language_id:
            return []
        return [self.filetype_map.get(language_id, language_id)]

    def build_options(self, secret: bytes) -> dict[str, Any]:
        """Build the options payload handed to the server at startup.

        Starts from ycmd's defaults (or a ``default_settings.json`` file when
        configured), applies the client settings, then ``server_options``
        overrides. The secret is embedded base64-encoded.
        """
        options = dict(DEFAULT_SERVER_OPTIONS)
        if self.default_settings_file:
            try:
                options.update(json.loads(Path(self.default_settings_file).read_text()))
            except (OSError, ValueError) as e:
                logger.warning(f"Could not read default settings {self.default_settings_file}: {e}")

        options.update(
            {
                "hmac_secret": base64.b64encode(secret).decode("ascii"),
                "confirm_extra_conf": int(self.confirm_extra_conf),
                "extra_conf_globlist": list(self.extra_conf_globlist),
                "global_ycm_extra_conf": self.global_config or "",
                "min_num_of_chars_for_completion": self.min_num_of_chars_for_completion,
                "min_num_identifier_candidate_chars": self.min_num_identifier_candidate_chars,
                "max_num_identifier_candidates": self.max_num_identifier_candidates,
                "auto_trigger": int(self.auto_trigger),
                "seed_identifiers_with_syntax": int(self.seed_identifiers_with_syntax),
                "collect_identifiers_from_tags_files": int(self.collect_tag_files),
            }
        )

        # External tool paths are only sent when configured
        for key in (
            "python_binary_path",
            "rust_src_path",
            "racerd_binary_path",
            "gocode_binary_path",
            "godef_binary_path",
        ):
            value = getattr(self, key)
            if value:
                options[key] = value

        options.update(self.server_options)
        return options

    @classmethod
    def from_init_options(
        cls, opts: dict[str, Any] | None, base: YcmdSettings | None = None
    ) -> YcmdSettings:
        """Build settings from LSP ``initializationOptions``.

        Keys are camelCase; unknown keys are ignored. Values not present keep
        their value from ``base`` (or the defaults).
        """
        settings = base if base is not None else cls()
        if not isinstance(opts, dict):
            return settings

        command = opts.get("serverCommand")
        if isinstance(command, str):
            command = command.split()
        if command:
            settings.server_command = list(command)

        simple_keys = {
            "serverArgs": "server_args",
            "host": "host",
            "startupTimeout": "startup_timeout",
            "shutdownGrace": "shutdown_grace",
            "keepalivePeriod": "keepalive_period",
            "requestTimeout": "request_timeout",
            "idleChangeDelay": "idle_change_delay",
            "hmacHeader": "hmac_header",
            "confirmExtraConf": "confirm_extra_conf",
            "extraConfGloblist": "extra_conf_globlist",
            "globalConfig": "global_config",
            "minNumOfCharsForCompletion": "min_num_of_chars_for_completion",
            "minNumIdentifierCandidateChars": "min_num_identifier_candidate_chars",
            "maxNumIdentifierCandidates": "max_num_identifier_candidates",
            "autoTrigger": "auto_trigger",
            "seedIdentifiersWithSyntax": "seed_identifiers_with_syntax",
            "collectTagFiles": "collect_tag_files",
            "syntaxKeywords": "syntax_keywords",
            "pythonBinaryPath": "python_binary_path",
            "rustSrcPath": "rust_src_path",
            "racerdBinaryPath": "racerd_binary_path",
            "gocodeBinaryPath": "gocode_binary_path",
            "godefBinaryPath": "godef_binary_path",
            "defaultSettingsFile": "default_settings_file",
            "serverOptions": "server_options",
        }
        for key, attr in simple_keys.items():
            if key in opts and opts[key] is not None:
                setattr(settings, attr, opts[key])

        if "filetypeMap" in opts and isinstance(opts["filetypeMap"], dict):
            settings.filetype_map.update(opts["filetypeMap"])

        policy = opts.get("extraConfPolicy")
        if policy:
            try:
                settings.extra_conf_policy = ExtraConfPolicy(policy)
            except ValueError:
                logger.warning(
                    f"Unknown extra conf policy '{policy}', keeping "
                    f"'{settings.extra_conf_policy.value}'"
                )

        return settings
