"""
Process a single Retell call: fetch transcript, extract call data, save customer and call.

Usage:
    python scripts/process_call.py call_8f2a1c0d9e
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from call_center.core.exceptions import CallAlreadyProcessedError, CallCenterError
from call_center.services.call_processor import CallProcessor
from scripts.cli_utils import print_section, print_subsection, setup_environment


async def run(call_id: str) -> int:
    processor = CallProcessor()
    try:
        result = await processor.process_single_call(call_id)
    except CallAlreadyProcessedError as exc:
        print(f"ℹ️  {exc}")
        return 0
    except CallCenterError as exc:
        print(f"❌ {exc}")
        return 1
    finally:
        await processor.client.close()

    customer = result.customer
    data = result.call_record.extracted_data

    print_subsection("👤 Customer", 50)
    print(f"   ID: {customer.id}")
    print(f"   Name: {customer.name or 'N/A'}")
    print(f"   Phone: {customer.phone_number}")
    print(f"   Total Calls: {customer.total_calls}")

    print_subsection("📝 Call Analysis", 50)
    print(f"   Intent: {data.intent}")
    print(f"   Sentiment: {data.sentiment}")
    print(f"   Summary: {data.summary}")
    if data.is_degraded:
        print("   ⚠️  Analysis unavailable, summary is a transcript excerpt")
    for event in data.scheduled_events:
        print(f"   📅 {event.type} on {event.date or 'TBD'} at {event.time or 'TBD'}")

    if result.warnings:
        print(f"\n⚠️  Saved with warnings: {', '.join(result.warnings)}")
    print(f"\n✅ Call saved as {result.call_record.id}")
    return 0


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Process a single Retell call by id")
    parser.add_argument("call_id", type=str, help="Retell call id")
    args = parser.parse_args()

    setup_environment()
    print_section(f"🔄 PROCESS CALL {args.call_id}", 70)
    sys.exit(asyncio.run(run(args.call_id)))


if __name__ == "__main__":
    main()
