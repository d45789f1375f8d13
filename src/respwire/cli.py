"""Console entrypoint for respwire.

Streams a single response from the Responses API, replays recorded streams
offline, and manages recordings and config.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from respwire import __version__
from respwire.config import LogLevel, ReasoningEffort, Settings, Verbosity, load_settings
from respwire.logging import _to_logging_level, configure_recording_logger
from respwire.openai_client.aggregator import ResponseAggregator, ResponseState
from respwire.openai_client.client import OpenAIResponsesClient
from respwire.openai_client.events import OutputTextDeltaEvent, RefusalDeltaEvent
from respwire.openai_client.transport import HttpResponsesTransport, ResponsesTransport
from respwire.openai_client.types import ConversationRequest, Message, MessageRole, StreamFailure
from respwire.paths import default_config_path, get_respwire_home
from respwire.recording import (
    JsonlFrameWriter,
    RecordingTransport,
    delete_recording,
    generate_recording_id,
    iter_frames,
    list_recordings,
    recording_path,
    replay_frames,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="respwire",
        description="Stream and replay OpenAI Responses API event streams",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version and exit.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging (root=INFO, respwire=DEBUG).")
    parser.add_argument("--model", help="Override default model id")
    parser.add_argument("--reasoning", choices=[e.value for e in ReasoningEffort], help="Reasoning effort override")
    parser.add_argument("--verbosity", choices=[e.value for e in Verbosity], help="Verbosity override")
    parser.add_argument(
        "--log-level",
        choices=[e.value for e in LogLevel],
        dest="log_level",
        help="Log level override",
    )
    parser.add_argument("--config-path", dest="config_path", help="Path to config.toml")

    subparsers = parser.add_subparsers(dest="command", required=True)

    stream_parser = subparsers.add_parser("stream", help="Stream a response for a prompt")
    stream_parser.add_argument("prompt", help="User prompt")
    stream_parser.add_argument("--instructions", help="System instructions")
    stream_parser.add_argument("--record", action="store_true", help="Record raw frames to a new recording")

    replay_parser = subparsers.add_parser("replay", help="Replay a recording offline")
    replay_parser.add_argument("target", help="Recording id or path to a frames JSONL file")

    recordings_parser = subparsers.add_parser("recordings", help="List/show/remove recordings")
    recordings_sub = recordings_parser.add_subparsers(dest="recordings_cmd", required=True)
    recordings_sub.add_parser("list", help="List recordings")
    show_parser = recordings_sub.add_parser("show", help="Show a recording JSONL")
    show_parser.add_argument("recording_id", help="Recording id")
    rm_parser = recordings_sub.add_parser("rm", help="Delete a recording")
    rm_parser.add_argument("recording_id", help="Recording id")

    config_parser = subparsers.add_parser("config", help="Config helpers")
    config_sub = config_parser.add_subparsers(dest="config_cmd", required=True)
    config_sub.add_parser("path", help="Print config path")
    config_sub.add_parser("print", help="Print resolved settings")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = _collect_overrides(args)
    settings = load_settings(cli_overrides=overrides, config_path=args.config_path)

    _configure_base_logging(debug_enabled=args.debug, respwire_level=settings.log_level)

    if args.command == "stream":
        return asyncio.run(_run_stream(settings, args))
    if args.command == "replay":
        return _run_replay(settings, args)
    if args.command == "recordings":
        return _run_recordings(args)
    if args.command == "config":
        return _run_config(settings, args)

    parser.error(f"unknown command {args.command}")
    return 1


def _build_transport(settings: Settings) -> ResponsesTransport:
    if not settings.api_key:
        raise SystemExit("OPENAI_API_KEY not set")
    return HttpResponsesTransport(
        settings.api_key,
        base_url=settings.base_url,
        organization=settings.organization,
    )


async def _run_stream(settings: Settings, args: argparse.Namespace) -> int:
    transport = _build_transport(settings)
    writer: JsonlFrameWriter | None = None
    if args.record or settings.record_frames:
        recording_id = generate_recording_id()
        writer = JsonlFrameWriter(recording_path(recording_id))
        transport = RecordingTransport(transport, writer)
        configure_recording_logger(recording_id, log_level=settings.log_level).info(
            "recording started model=%s", settings.model
        )
        print(f"recording: {recording_id}", file=sys.stderr)

    client = OpenAIResponsesClient(
        transport,
        default_model=settings.model,
        default_reasoning_effort=settings.reasoning_effort,
        default_verbosity=settings.verbosity,
        skip_invalid_frames=settings.skip_invalid_frames,
        verify_done_text=settings.verify_done_text,
        max_buffer_bytes=settings.max_buffer_bytes,
    )
    request = ConversationRequest(
        messages=[Message(role=MessageRole.USER, content=args.prompt)],
        model=settings.model,
        instructions=args.instructions,
    )
    aggregator = client.new_aggregator()
    failed = False
    try:
        async for item in client.submit(request):
            if isinstance(item, StreamFailure):
                print(f"\nerror: {item.error}", file=sys.stderr)
                failed = True
                break
            result = aggregator.apply(item)
            if result.upstream_error is not None:
                print(f"\nerror: {result.upstream_error.description}", file=sys.stderr)
                failed = True
                break
            if isinstance(item, OutputTextDeltaEvent | RefusalDeltaEvent):
                print(item.delta, end="", flush=True)
    finally:
        if writer is not None:
            writer.close()
        aclose = getattr(transport, "aclose", None)
        if callable(aclose):
            await aclose()
    print()

    aggregator.cancel()
    _print_diagnostics(aggregator)
    aggregate = aggregator.latest
    if failed or aggregate is None:
        return 1
    return 0 if aggregate.state is ResponseState.COMPLETED else 1


def _run_replay(settings: Settings, args: argparse.Namespace) -> int:
    path = Path(args.target)
    if not path.is_file():
        path = recording_path(args.target)
    if not path.exists():
        print("not found", file=sys.stderr)
        return 1

    aggregator = ResponseAggregator(
        verify_done_text=settings.verify_done_text, max_buffer_bytes=settings.max_buffer_bytes
    )
    replay_frames(iter_frames(path), aggregator)
    aggregate = aggregator.latest
    if aggregate is None:
        print("no response in recording", file=sys.stderr)
        _print_diagnostics(aggregator)
        return 1

    print(aggregate.output_text())
    print(f"state: {aggregate.state.value}", file=sys.stderr)
    _print_diagnostics(aggregator)
    return 0


def _print_diagnostics(aggregator: ResponseAggregator) -> None:
    for diagnostic in aggregator.diagnostics:
        print(f"warning: {diagnostic}", file=sys.stderr)
    for error in aggregator.errors:
        print(f"upstream error: {error.description}", file=sys.stderr)


def _run_recordings(args: argparse.Namespace) -> int:
    base = get_respwire_home() / "recordings"
    if args.recordings_cmd == "list":
        for info in list_recordings(base):
            print(f"{info.recording_id} {info.modified_at.isoformat()} {info.size_bytes}B {info.path}")
        return 0
    if args.recordings_cmd == "show":
        path = recording_path(args.recording_id, base)
        if not path.exists():
            print("not found", file=sys.stderr)
            return 1
        print(path.read_text(encoding="utf-8"), end="")
        return 0
    if args.recordings_cmd == "rm":
        return 0 if delete_recording(args.recording_id, base) else 1
    return 1


def _run_config(settings: Settings, args: argparse.Namespace) -> int:
    if args.config_cmd == "path":
        print(Path(args.config_path) if args.config_path else default_config_path())
        return 0
    if args.config_cmd == "print":
        print(settings.model_dump_json(indent=2, exclude={"api_key"}))
        return 0
    return 1


def _collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    default_log_level = LogLevel.DEBUG.value if args.debug else None
    return {
        "model": args.model,
        "reasoning_effort": args.reasoning,
        "verbosity": args.verbosity,
        "log_level": args.log_level or default_log_level,
    }


def _configure_base_logging(*, debug_enabled: bool, respwire_level: LogLevel | str) -> None:
    root_level = logging.INFO if debug_enabled else logging.WARNING

    logging.basicConfig(
        level=root_level,
        stream=sys.__stderr__,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )

    logging.getLogger("respwire").setLevel(_to_logging_level(respwire_level))

    for noisy in ("httpx", "httpcore"):
        logger = logging.getLogger(noisy)
        logger.setLevel(logging.WARNING)
        logger.propagate = False


if __name__ == "__main__":
    sys.exit(main())
