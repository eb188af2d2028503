"""receiptsync CLI - run the coordinator and drive syncs.

Uses tyro for type-driven CLI generation from dataclasses.
"""

from __future__ import annotations

from typing import Annotated

import tyro

from receiptsync.cli.commands.serve import Serve
from receiptsync.cli.commands.status import Status
from receiptsync.cli.commands.sync import Sync
from receiptsync.cli.commands.token import TokenClear, TokenSet

# Type aliases for subcommand annotations
_Serve = Annotated[Serve, tyro.conf.subcommand("serve")]
_Status = Annotated[Status, tyro.conf.subcommand("status")]
_Sync = Annotated[Sync, tyro.conf.subcommand("sync")]
_TokenSet = Annotated[TokenSet, tyro.conf.subcommand("token:set")]
_TokenClear = Annotated[TokenClear, tyro.conf.subcommand("token:clear")]

Command = _Serve | _Status | _Sync | _TokenSet | _TokenClear


def main() -> int:
    """Entry point for the CLI."""
    # configure structlog (respects RECEIPTSYNC_DEBUG env var)
    from receiptsync.logging_config import configure_logging

    configure_logging()

    try:
        cmd = tyro.cli(
            Command,
            prog="receiptsync",
            description="Sync retailer receipts into the inventory service.",
        )
        return cmd.run()
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        from receiptsync import console

        console.error(str(e))
        return 1
