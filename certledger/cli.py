#!/usr/bin/env python3
"""
certledger CLI

Command-line driver for the certification ledger. Each invocation opens the
JSON ledger file, performs one operation and exits.

Usage:
    certledger [--format FMT] [--ledger PATH] <command> [options]

Commands:
    init             Seed the example certificates into an empty ledger
    submit           Queue a product for certification
    evaluate         Approve or reject a pending submission (privileged)
    request-renewal  Ask for an issued certificate to be renewed
    renew            Process a renewal request (privileged)
    invalidate       Backdate a certificate's expiry to yesterday (privileged)
    verify           Check whether a certificate is currently valid
    show             Show one record
    list             List records (all, certified, pending)
    create/update/delete/transfer
                     Administrative record maintenance (privileged)
    config           Configuration management
    hash-credential  Print the hash to configure for a credential

Privileged commands take the certifier credential from ``--credential`` or
the CERTLEDGER_ADMIN_CREDENTIAL environment variable.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import date
from enum import Enum
from typing import Any, List, Optional

from certledger import __version__
from certledger.access import AccessGuard, hash_credential
from certledger.config import ConfigError, ConfigManager, get_config_manager
from certledger.core import utc_now
from certledger.errors import CertLedgerError, ValidationError
from certledger.ledger import JsonFileLedger
from certledger.lifecycle import Clock, LifecycleEngine, utc_today
from certledger.observability import (
    Layer,
    configure_logging,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from certledger.queries import CertificateQueries, asset_row, format_asset

CREDENTIAL_ENV = "CERTLEDGER_ADMIN_CREDENTIAL"

logger = get_logger("cli", Layer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str, ensure_ascii=False)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.dump(data, default_flow_style=False, allow_unicode=True)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return _format_text(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and not data:
        return "(no records)"
    if isinstance(data, list) and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:64] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return _format_mapping(data, _format_table)
    return str(data)


def _format_mapping(data: dict, nested: Any) -> str:
    """Scalars as ``key: value`` lines, lists of records rendered by ``nested``."""
    lines = []
    sections = []
    for k, v in data.items():
        if isinstance(v, list) and v and isinstance(v[0], dict):
            sections.append(f"{k}:\n{nested(v)}")
        else:
            lines.append(f"{k}: {v}")
    return "\n\n".join(["\n".join(lines)] + sections if lines else sections)


def _format_text(data: Any) -> str:
    if isinstance(data, list):
        return "\n\n".join(_format_text(item) for item in data) if data else "(no records)"
    if isinstance(data, dict):
        return _format_mapping(data, _format_text)
    return str(data)


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(field, "must be an ISO date (YYYY-MM-DD)", value) from exc


class CertLedgerCLI:
    """Main CLI application."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        clock: Clock = utc_now,
    ):
        self._config_manager = config_manager
        self.clock = clock
        self._engine: Optional[LifecycleEngine] = None
        self._queries: Optional[CertificateQueries] = None

        self.parser = argparse.ArgumentParser(
            prog="certledger",
            description="Certification ledger for protected-origin food products",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"certledger {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--ledger", "-l",
            help="Ledger file (default: ledger.path from configuration)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="YAML configuration file to load",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = get_config_manager()
        return self._config_manager

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_seller_commands()
        self._register_certifier_commands()
        self._register_query_commands()
        self._register_admin_commands()
        self._register_config_commands()

    @staticmethod
    def _add_credential(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--credential",
            help=f"Certifier credential (default: ${CREDENTIAL_ENV})",
        )

    @staticmethod
    def _add_fields(parser: argparse.ArgumentParser, *, with_date: bool) -> None:
        parser.add_argument("--owner", "-o", required=True, help="Seller name")
        parser.add_argument("--product", "-p", required=True, help="Product name")
        parser.add_argument("--cert-type", "-t", required=True, help="Certification type, e.g. D.O.P.")
        if with_date:
            parser.add_argument("--expire-date", "-e", required=True, help="Expiry date (YYYY-MM-DD)")

    def _register_seller_commands(self) -> None:
        self.subparsers.add_parser("init", help="Seed example certificates into an empty ledger")

        submit = self.subparsers.add_parser("submit", help="Queue a product for certification")
        self._add_fields(submit, with_date=False)

        renewal = self.subparsers.add_parser("request-renewal", help="Request certificate renewal")
        renewal.add_argument("id", help="Asset ID")

        verify = self.subparsers.add_parser("verify", help="Check certificate validity")
        verify.add_argument("id", help="Asset ID")

    def _register_certifier_commands(self) -> None:
        evaluate = self.subparsers.add_parser("evaluate", help="Approve or reject a submission")
        evaluate.add_argument("id", help="Asset ID")
        decision = evaluate.add_mutually_exclusive_group(required=True)
        decision.add_argument("--approve", dest="approve", action="store_true", help="Certify the product")
        decision.add_argument("--reject", dest="approve", action="store_false", help="Delete the submission")
        self._add_credential(evaluate)

        renew = self.subparsers.add_parser("renew", help="Process a renewal request")
        renew.add_argument("id", help="Asset ID")
        self._add_credential(renew)

        invalidate = self.subparsers.add_parser("invalidate", help="Expire a certificate as of yesterday")
        invalidate.add_argument("id", help="Asset ID")
        self._add_credential(invalidate)

    def _register_query_commands(self) -> None:
        show = self.subparsers.add_parser("show", help="Show one record")
        show.add_argument("id", help="Asset ID")

        listing = self.subparsers.add_parser("list", help="List records")
        list_sub = listing.add_subparsers(dest="subcommand")

        list_all = list_sub.add_parser("all", help="Every record (privileged)")
        self._add_credential(list_all)
        list_sub.add_parser("certified", help="Evaluated certificates, valid or expired")
        pending = list_sub.add_parser("pending", help="Pending submissions and renewal requests (privileged)")
        self._add_credential(pending)

    def _register_admin_commands(self) -> None:
        create = self.subparsers.add_parser("create", help="Create a record directly")
        self._add_fields(create, with_date=True)
        self._add_credential(create)

        update = self.subparsers.add_parser("update", help="Rewrite a record's fields")
        update.add_argument("id", help="Asset ID")
        self._add_fields(update, with_date=True)
        self._add_credential(update)

        delete = self.subparsers.add_parser("delete", help="Remove a record")
        delete.add_argument("id", help="Asset ID")
        self._add_credential(delete)

        transfer = self.subparsers.add_parser("transfer", help="Change a record's owner")
        transfer.add_argument("id", help="Asset ID")
        transfer.add_argument("--new-owner", "-n", required=True, help="New owner")
        self._add_credential(transfer)

        hashing = self.subparsers.add_parser("hash-credential", help="Hash a credential for configuration")
        hashing.add_argument("secret", help="Credential to hash")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show current configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Show configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.config:
                self.config_manager.load_from_file(parsed.config)
            cfg = self.config_manager.config
            configure_logging(
                level=cfg.observability.log_level.get(),
                fmt=cfg.observability.log_format.get(),
            )
            set_correlation_id(generate_correlation_id())

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except ConfigError as e:
            if not parsed.quiet:
                print(f"Configuration error: {e}", file=sys.stderr)
            return 1

        except CertLedgerError as e:
            if not parsed.quiet:
                print(f"Error [{e.error_code}]: {e}", file=sys.stderr)
            return 2

        except Exception as e:
            logger.error(f"Command {parsed.command} failed", error_code=type(e).__name__, exc_info=True)
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
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".rstrip(), exit_code=2)

        return handler(args)

    # -------------------------------------------------------------------------
    # Service wiring
    # -------------------------------------------------------------------------

    def _services(self, args: argparse.Namespace):
        if self._engine is None:
            cfg = self.config_manager.config
            ledger = JsonFileLedger(args.ledger or cfg.ledger.path.get())
            guard = AccessGuard(cfg.access.admin_credential_hash.get())
            self._engine = LifecycleEngine(
                ledger,
                guard,
                clock=self.clock,
                validity_days=cfg.lifecycle.validity_days.get(),
            )
            self._queries = CertificateQueries(self._engine.store, guard, clock=self.clock)
        return self._engine, self._queries

    @staticmethod
    def _credential(args: argparse.Namespace) -> Optional[str]:
        return args.credential or os.environ.get(CREDENTIAL_ENV)

    def _row(self, asset) -> dict:
        return asset_row(asset, utc_today(self.clock))

    # -------------------------------------------------------------------------
    # Seller handlers
    # -------------------------------------------------------------------------

    def _handle_init(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        if not engine.store.ledger.is_empty():
            return {"seeded": False, "reason": "ledger already holds records"}
        assets = engine.init_ledger()
        return {"seeded": True, "assets": [self._row(a) for a in assets]}

    def _handle_submit(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        asset_id = engine.submit_product(args.owner, args.product, args.cert_type)
        return {"id": asset_id, "state": "pending"}

    def _handle_request_renewal(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        return self._row(engine.request_renewal(args.id))

    def _handle_verify(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        return {"id": args.id, "valid": engine.verify(args.id)}

    # -------------------------------------------------------------------------
    # Certifier handlers
    # -------------------------------------------------------------------------

    def _handle_evaluate(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        asset = engine.evaluate(args.id, args.approve, credential=self._credential(args))
        if asset is None:
            return {"id": args.id, "decision": "rejected"}
        return dict(self._row(asset), decision="approved")

    def _handle_renew(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        return self._row(engine.renew_certificate(args.id, credential=self._credential(args)))

    def _handle_invalidate(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        return self._row(engine.invalidate(args.id, credential=self._credential(args)))

    # -------------------------------------------------------------------------
    # Query handlers
    # -------------------------------------------------------------------------

    def _handle_show(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        asset = engine.read_asset(args.id)
        if args.format == OutputFormat.TEXT.value:
            return format_asset(asset, engine.today())
        return self._row(asset)

    def _list(self, args: argparse.Namespace, assets) -> Any:
        engine, _ = self._services(args)
        if args.format == OutputFormat.TEXT.value:
            today = engine.today()
            return "\n\n".join(format_asset(a, today) for a in assets) or "(no records)"
        return [self._row(a) for a in assets]

    def _handle_list_all(self, args: argparse.Namespace) -> Any:
        _, queries = self._services(args)
        return self._list(args, queries.list_all(credential=self._credential(args)))

    def _handle_list_certified(self, args: argparse.Namespace) -> Any:
        _, queries = self._services(args)
        return self._list(args, queries.list_certified())

    def _handle_list_pending(self, args: argparse.Namespace) -> Any:
        _, queries = self._services(args)
        return self._list(args, queries.list_pending_or_renewal(credential=self._credential(args)))

    # -------------------------------------------------------------------------
    # Administrative handlers
    # -------------------------------------------------------------------------

    def _handle_create(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        asset = engine.create_asset(
            args.owner,
            args.product,
            args.cert_type,
            _parse_date(args.expire_date, "expire_date"),
            credential=self._credential(args),
        )
        return self._row(asset)

    def _handle_update(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        asset = engine.update_asset(
            args.id,
            args.owner,
            args.product,
            args.cert_type,
            _parse_date(args.expire_date, "expire_date"),
            credential=self._credential(args),
        )
        return dict(self._row(asset), previous_id=args.id)

    def _handle_delete(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        engine.delete_asset(args.id, credential=self._credential(args))
        return {"id": args.id, "deleted": True}

    def _handle_transfer(self, args: argparse.Namespace) -> Any:
        engine, _ = self._services(args)
        return self._row(engine.transfer_asset(args.id, args.new_owner, credential=self._credential(args)))

    def _handle_hash_credential(self, args: argparse.Namespace) -> Any:
        return {"admin_credential_hash": hash_credential(args.secret)}

    # -------------------------------------------------------------------------
    # Config handlers
    # -------------------------------------------------------------------------

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return self.config_manager.config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = self.config_manager.validate()
        if errors:
            raise CLIError("; ".join(errors), exit_code=1)
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return self.config_manager.export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = CertLedgerCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
