"""Nightfall CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from nightfall import __version__
from nightfall.config import Settings, get_settings
from nightfall.services.rail import PaymentRail, create_payment_rail
from nightfall.settlement import GameSettlement, RefundFlow
from nightfall.storage import Repository, create_repository

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Nightfall Configuration
# Operational parameters for the settlement service.
# Secrets (payer keypair, Logfire token) belong in .env, not here.

storage_backend: yaml

settlement:
  fee_wallet: GH7dc4Wihg79nWFCCJH4NUcE368zXkWhgsDTEbWup7Eb
  default_playing_fee: "0.0001"
  network_fee: "0.000005"

games:
  cancel_cooldown_seconds: 300
  default_min_players: 2
  default_max_players: 2

rail:
  paper_mode: true
  use_mainnet: false
  commitment: confirmed
  timeout_seconds: 30
  max_retries: 3
  confirm_timeout_seconds: 60  # after this a submitted transfer is reported unconfirmed
  confirm_poll_seconds: 2

server:
  host: 0.0.0.0
  port: 5000
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from nightfall.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _open_ledger(settings: Settings) -> tuple[Repository, PaymentRail]:
    if settings.storage_backend == "memory":
        logger.warning(
            "storage_backend is 'memory'; the ledger starts empty for this command. "
            "Set storage_backend: yaml in data/config.yaml to persist it."
        )
    repository = create_repository(settings)
    rail = create_payment_rail(settings.rail, settings.settlement.network_fee)
    return repository, rail


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory and configuration file."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Add RAIL__PAYER_SECRET and LOGFIRE_TOKEN to .env if needed")
        print("2. Review and customize data/config.yaml")
        print("3. Run 'python -m nightfall config' to verify configuration")
        print("4. Run 'python -m nightfall serve' to start the API\n")

        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Nightfall Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Storage Backend: {settings.storage_backend}\n")

        print("Settlement:")
        print(f"  Fee Wallet: {settings.settlement.fee_wallet}")
        print(f"  Default Playing Fee: {settings.settlement.default_playing_fee} SOL")
        print(f"  Network Fee: {settings.settlement.network_fee} SOL\n")

        print("Games:")
        print(f"  Cancel Cooldown: {settings.games.cancel_cooldown_seconds}s")
        print(
            f"  Players: {settings.games.default_min_players}-"
            f"{settings.games.default_max_players}\n"
        )

        print("Rail:")
        print(f"  Mode: {'PAPER' if settings.rail.paper_mode else 'LIVE'}")
        print(f"  RPC URL: {settings.rail.rpc_url}")
        print(f"  Commitment: {settings.rail.commitment}")
        print(f"  Max Retries: {settings.rail.max_retries}\n")

        print("Server:")
        print(f"  Listen: {settings.server.host}:{settings.server.port}")
        print(f"  Allowed Origins: {', '.join(settings.server.allowed_origins)}\n")

        print("Secrets:")
        print(f"  Payer Keypair: {'✓ Set' if settings.rail.payer_secret else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    try:
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()
        host = args.host or settings.server.host
        port = args.port or settings.server.port

        print("\n=== Nightfall Settlement API ===\n")
        print(f"Version: {__version__}")
        print(f"Mode: {'PAPER' if settings.rail.paper_mode else 'LIVE'}")
        print(f"Storage: {settings.storage_backend}")
        print(f"Listening on http://{host}:{port}\n")

        uvicorn.run(
            "nightfall.api.server:create_app",
            factory=True,
            host=host,
            port=port,
            log_level="debug" if args.debug else "info",
        )
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


async def _run_payout(settings: Settings, game_id: int, winner: str):
    repository, rail = _open_ledger(settings)
    async with rail:
        settlement = GameSettlement(repository, rail, settings.settlement)
        return await settlement.process_game_payout(game_id, winner)


async def _run_refund(settings: Settings, game_id: int):
    repository, rail = _open_ledger(settings)
    async with rail:
        refunds = RefundFlow(repository, rail, settings.settlement)
        return await refunds.process_game_refund(game_id)


def cmd_payout(args: argparse.Namespace) -> int:
    """Pay the winner of a completed game."""
    _init_logfire()

    try:
        print(f"\n=== Payout: game {args.game_id} ===\n")
        result = asyncio.run(_run_payout(get_settings(), args.game_id, args.winner))

        if not result.success:
            print(f"❌ Payout failed [{result.error_code}]: {result.error}\n")
            if result.tx_hash:
                print(f"Submitted Tx (check before retrying): {result.tx_hash}\n")
            return 1

        print("✓ Payout complete\n")
        print(f"Net Payout: {result.net_payout} SOL")
        print(f"Payout Tx: {result.tx_hash}")
        print(f"Fee Tx: {result.fee_tx_hash or '(not collected)'}\n")
        return 0

    except Exception as e:
        logger.error(f"Payout failed: {e}", exc_info=True)
        print(f"\n❌ Payout failed: {e}\n")
        return 1


def cmd_refund(args: argparse.Namespace) -> int:
    """Refund every participant of a cancelled game."""
    _init_logfire()

    try:
        print(f"\n=== Refund: game {args.game_id} ===\n")
        result = asyncio.run(_run_refund(get_settings(), args.game_id))

        if not result.success:
            print(f"❌ Refund failed [{result.error_code}]: {result.error}")
            if result.refunded:
                print(f"Partially refunded: {', '.join(result.refunded)}")
            print()
            return 1

        print(f"✓ Refunded {len(result.refunded)} participants\n")
        for wallet, tx_hash in zip(result.refunded, result.tx_hashes):
            print(f"  • {wallet}: {tx_hash}")
        print()
        return 0

    except Exception as e:
        logger.error(f"Refund failed: {e}", exc_info=True)
        print(f"\n❌ Refund failed: {e}\n")
        return 1


def cmd_ledger(args: argparse.Namespace) -> int:
    """Display the ledger rows of a game."""
    try:
        settings = get_settings()
        repository = create_repository(settings)
        game = repository.get_game(args.game_id)

        if game is None:
            print(f"\n❌ Game {args.game_id} not found\n")
            return 1

        print(f"\n=== Ledger: game {game.id} ({game.status}) ===\n")
        print(f"Pool: {game.total_pool} SOL  Fee: {game.playing_fee} SOL")
        print(f"Winner: {game.winner or '-'}\n")

        rows = repository.get_game_transactions(game.id)
        if not rows:
            print("  (No transactions)")
        for tx in rows:
            line = f"  #{tx.id} {tx.type:<7} {tx.status:<9} {tx.amount:>14} SOL -> {tx.to_address}"
            if tx.tx_hash:
                line += f"  {tx.tx_hash[:16]}..."
            if tx.error:
                line += f"  error: {tx.error}"
            print(line)
        print()
        return 0

    except Exception as e:
        logger.error(f"Failed to read ledger: {e}")
        print(f"\n❌ Failed to read ledger: {e}\n")
        return 1


def cmd_audit(args: argparse.Namespace) -> int:
    """Display the most recent audit entries."""
    try:
        repository = create_repository(get_settings())
        entries = repository.get_audit_logs(args.limit)

        print(f"\n=== Audit Log (latest {args.limit}) ===\n")
        if not entries:
            print("  (None)")
        for entry in entries:
            print(f"  {entry.timestamp:%Y-%m-%d %H:%M:%S}  {entry.action:<17} {entry.details}")
        print()
        return 0

    except Exception as e:
        logger.error(f"Failed to read audit log: {e}")
        print(f"\n❌ Failed to read audit log: {e}\n")
        return 1


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a transaction signature against the payment rail."""

    async def _verify(settings: Settings) -> bool:
        rail = create_payment_rail(settings.rail, settings.settlement.network_fee)
        async with rail:
            return await rail.verify(args.tx_hash)

    try:
        verified = asyncio.run(_verify(get_settings()))
        mark = "✓ Verified" if verified else "✗ Not verified"
        print(f"\n{mark}: {args.tx_hash}\n")
        return 0 if verified else 1

    except Exception as e:
        logger.error(f"Verification failed: {e}")
        print(f"\n❌ Verification failed: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Nightfall: payout, refund and ledger service for Nightfall Casino",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Nightfall {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory and configuration file",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    parser_serve.add_argument("--host", help="Bind address (defaults to server.host)")
    parser_serve.add_argument("--port", type=int, help="Port (defaults to server.port)")
    parser_serve.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_serve.set_defaults(func=cmd_serve)

    parser_payout = subparsers.add_parser(
        "payout",
        help="Pay the winner of a completed game",
    )
    parser_payout.add_argument("game_id", type=int, help="Game ID")
    parser_payout.add_argument("--winner", required=True, help="Winner wallet address")
    parser_payout.set_defaults(func=cmd_payout)

    parser_refund = subparsers.add_parser(
        "refund",
        help="Refund the participants of a cancelled game",
    )
    parser_refund.add_argument("game_id", type=int, help="Game ID")
    parser_refund.set_defaults(func=cmd_refund)

    parser_ledger = subparsers.add_parser(
        "ledger",
        help="Display the ledger rows of a game",
    )
    parser_ledger.add_argument("game_id", type=int, help="Game ID")
    parser_ledger.set_defaults(func=cmd_ledger)

    parser_audit = subparsers.add_parser(
        "audit",
        help="Display recent audit entries",
    )
    parser_audit.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Number of entries to show (default: 100)",
    )
    parser_audit.set_defaults(func=cmd_audit)

    parser_verify = subparsers.add_parser(
        "verify",
        help="Verify a transaction signature",
    )
    parser_verify.add_argument("tx_hash", help="Transaction signature")
    parser_verify.set_defaults(func=cmd_verify)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
