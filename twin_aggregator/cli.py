"""
Twin Aggregator - CLI Entry Point.

Local tooling around the aggregation function.

Usage:
    twin-aggregator [--debug] replay event.json   Run the pipeline for a saved Event Grid event
    twin-aggregator normalize payload.json        Print the canonical reading of a decoded payload
"""

import argparse
import json
import sys

from .aggregator import PipelineState
from .handler import process_event
from .logger import setup_logger
from .normalize import decode_payload, normalize_reading


def _load_json(path):
    with open(path) as f:
        return json.load(f)


def cmd_replay(args, logger):
    try:
        message = _load_json(args.event_file)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read event file '{args.event_file}': {e}")
        return 1

    # Event Grid delivers arrays; replay each event in order.
    messages = message if isinstance(message, list) else [message]
    exit_code = 0
    for item in messages:
        result = process_event(item)
        if result is None:
            return 1
        print(f"{result.state.value}: twin={result.twin_id} parent={result.parent_id or '-'}")
        if result.reason:
            print(f"  reason: {result.reason}")
        if result.state is PipelineState.FAILED:
            exit_code = 1
    return exit_code


def cmd_normalize(args, logger):
    try:
        payload = decode_payload(_load_json(args.payload_file))
    except (OSError, ValueError) as e:
        logger.error(f"Could not read payload file '{args.payload_file}': {e}")
        return 1

    print(json.dumps(normalize_reading(payload).to_document()))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Environmental twin aggregator")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser("replay", help="Process a saved Event Grid event against ADT")
    replay.add_argument("event_file")
    replay.set_defaults(func=cmd_replay)

    normalize = subparsers.add_parser("normalize", help="Normalize a decoded payload")
    normalize.add_argument("payload_file")
    normalize.set_defaults(func=cmd_normalize)

    args = parser.parse_args(argv)
    logger = setup_logger(debug_mode=args.debug)
    return args.func(args, logger)


if __name__ == "__main__":
    sys.exit(main())
