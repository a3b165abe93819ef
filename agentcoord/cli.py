#!/usr/bin/env python3
"""
Agent Coordination CLI

Command-line tooling for agents and participants working against a
coordination domain: inspect the domain, compute intent hashes and acceptance
digests, and produce keys and signatures.

Usage:
    agentcoord <command> [subcommand] [options]

Commands:
    domain              Show the signing domain constants
    intent-hash         Compute an intent hash from a JSON/YAML document
    accept-digest       Compute the digest a participant signs
    sort-participants   Put addresses in canonical order
    keygen              Generate a signing key
    sign                Sign a 32-byte digest
    config              Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from agentcoord import __version__
from agentcoord.observability import Component, get_logger

logger = get_logger("cli", Component.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.dump(data, default_flow_style=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def load_document(path: str) -> Dict[str, Any]:
    """Read a JSON or YAML request document."""
    p = Path(path)
    if not p.exists():
        raise CLIError(f"File not found: {path}")
    with open(p, encoding="utf-8") as f:
        try:
            if p.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise CLIError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise CLIError(f"Document root must be an object: {path}")
    return data


def _parse_hex(value: str, name: str) -> bytes:
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise CLIError(f"--{name} must be hex") from e


class CoordinationCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="agentcoord",
            description="Agent coordination tooling",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"agentcoord {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file (YAML)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self.subparsers.add_parser("domain", help="Show the signing domain constants")

        intent = self.subparsers.add_parser("intent-hash", help="Compute an intent hash")
        intent.add_argument("--file", required=True, help="IntentRequest document (JSON or YAML)")

        accept = self.subparsers.add_parser("accept-digest", help="Compute an acceptance digest")
        accept.add_argument("--file", required=True, help="AcceptanceRequest document (JSON or YAML)")

        sort_cmd = self.subparsers.add_parser("sort-participants", help="Sort addresses canonically")
        sort_cmd.add_argument("addresses", nargs="+", help="Participant addresses")

        keygen = self.subparsers.add_parser("keygen", help="Generate a signing key")
        keygen.add_argument("--scheme", choices=["secp256k1", "ed25519"], help="Defaults to the configured scheme")

        sign = self.subparsers.add_parser("sign", help="Sign a 32-byte digest")
        sign.add_argument("--key", required=True, help="Private key (hex)")
        sign.add_argument("--digest", required=True, help="Digest (hex)")
        sign.add_argument("--scheme", choices=["secp256k1", "ed25519"], help="Defaults to the configured scheme")

        self._register_config_commands()

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config show
        config_sub.add_parser("show", help="Show all configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            from agentcoord.config import get_config_manager
            if parsed.config:
                get_config_manager().load_from_file(parsed.config)
            else:
                get_config_manager().load_defaults()

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            logger.debug("command failed", command=parsed.command, reason=str(e))
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}")

        return handler(args)

    # Domain handlers
    def _handle_domain(self, args: argparse.Namespace) -> Any:
        from agentcoord.digest import DigestEngine
        return DigestEngine.from_config().constants.to_dict()

    def _handle_intent_hash(self, args: argparse.Namespace) -> Any:
        from agentcoord.signing import IntentRequest
        request = IntentRequest.from_dict(load_document(args.file))
        return {
            "intent_hash": request.intent_hash().hex(),
            "payload_hash": request.payload_hash.hex(),
            "coordination_type": request.coordination_type.hex(),
            "participants": [p.address for p in request.participants],
        }

    def _handle_accept_digest(self, args: argparse.Namespace) -> Any:
        from agentcoord.signing import AcceptanceRequest
        request = AcceptanceRequest.from_dict(load_document(args.file))
        return {
            "digest": request.digest().hex(),
            "intent_hash": request.intent_hash.hex(),
            "participant": request.participant.address,
            "accept_expiry": request.accept_expiry,
            "conditions": request.conditions.hex(),
        }

    def _handle_sort_participants(self, args: argparse.Namespace) -> Any:
        from agentcoord.signing import sort_participants
        return {"participants": [p.address for p in sort_participants(args.addresses)]}

    # Key handlers
    def _scheme(self, args: argparse.Namespace) -> str:
        from agentcoord.config import get_config
        return args.scheme or get_config().signatures.scheme.get()

    def _address_version(self) -> int:
        from agentcoord.config import get_config
        from agentcoord.principal import address_version_for_chain
        return address_version_for_chain(get_config().domain.chain_id.get())

    def _handle_keygen(self, args: argparse.Namespace) -> Any:
        scheme = self._scheme(args)
        if scheme == "secp256k1":
            import coincurve
            from agentcoord.signatures import secp256k1_principal

            key = coincurve.PrivateKey()
            public_key = key.public_key.format(compressed=True)
            principal = secp256k1_principal(key, self._address_version())
            private_bytes = key.secret
        else:
            from cryptography.hazmat.primitives import serialization
            from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
            from agentcoord.signatures import ed25519_principal

            key = Ed25519PrivateKey.generate()
            private_bytes = key.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            )
            public_key = key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
            principal = ed25519_principal(key, self._address_version())

        logger.info("generated key", scheme=scheme, address=principal.address)
        return {
            "scheme": scheme,
            "private_key": private_bytes.hex(),
            "public_key": public_key.hex(),
            "address": principal.address,
        }

    def _handle_sign(self, args: argparse.Namespace) -> Any:
        scheme = self._scheme(args)
        key = _parse_hex(args.key, "key")
        digest = _parse_hex(args.digest, "digest")
        if len(digest) != 32:
            raise CLIError("--digest must be 32 bytes")

        if scheme == "secp256k1":
            from agentcoord.signatures import secp256k1_principal, sign_digest_secp256k1

            principal = secp256k1_principal(key, self._address_version())
            signature = sign_digest_secp256k1(key, digest)
        else:
            from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
            from agentcoord.signatures import ed25519_principal, sign_digest_ed25519

            if len(key) != 32:
                raise CLIError("ed25519 --key must be 32 bytes")
            private_key = Ed25519PrivateKey.from_private_bytes(key)
            principal = ed25519_principal(private_key, self._address_version())
            signature = sign_digest_ed25519(private_key, digest)

        return {
            "scheme": scheme,
            "signer": principal.address,
            "digest": digest.hex(),
            "signature": signature.hex(),
        }

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from agentcoord.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from agentcoord.config import get_config_manager
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("; ".join(errors))
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from agentcoord.config import get_config_manager
        return get_config_manager().export_schema()


def main() -> int:
    """CLI entry point."""
    cli = CoordinationCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
