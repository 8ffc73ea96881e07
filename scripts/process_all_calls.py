"""
Run call processing once, or keep polling Retell for newly ended calls.

Usage:
    python scripts/process_all_calls.py
    python scripts/process_all_calls.py --watch --interval 60
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from call_center.services.call_processor import CallProcessor
from scripts.cli_utils import print_section, setup_environment


def print_result(result) -> None:
    print(f"   Fetched:   {result.total_fetched}")
    print(f"   Eligible:  {result.eligible}")
    print(f"   Processed: {result.processed}")
    print(f"   Failed:    {result.failed}")
    print(f"   Skipped:   {result.skipped}")


async def run_once() -> int:
    processor = CallProcessor()
    try:
        result = await processor.run_batch()
    finally:
        await processor.client.close()
    print_result(result)
    return 1 if result.failed else 0


async def watch(interval: float) -> int:
    processor = CallProcessor()
    processor.settings = processor.settings.model_copy(update={"poll_interval_seconds": interval})
    processor.start()
    print(f"👀 Watching for new calls every {interval:g}s (Ctrl+C to stop)")
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await processor.stop()
        await processor.client.close()
        print(f"\nTotals: {processor.stats['processed']} processed, {processor.stats['failed']} failed")
    return 0


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Process ended Retell calls into customer records")
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and poll for new calls",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between polls in watch mode (default: POLL_INTERVAL_SECONDS)",
    )
    args = parser.parse_args()

    settings = setup_environment()
    print_section("📞 PROCESS ENDED CALLS", 70)

    try:
        if args.watch:
            exit_code = asyncio.run(watch(args.interval or settings.poll_interval_seconds))
        else:
            exit_code = asyncio.run(run_once())
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
