"""
Terminal chat client (`docchat`).

    docchat --mode text  --document paper.pdf
    docchat --mode voice --document notes.txt --document-name "Notes"

Commands while connected:
    /mute   toggle microphone (voice mode)
    /quit   disconnect
Anything else is sent as a user message.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from websockets.exceptions import WebSocketException

from client.realtime_client import RealtimeClient
from documents.pdf import ExtractionError, extract_pdf
from protocol import events
from relay.modality import Modality
from spec import DEFAULT_PORT


def load_document(path: Path) -> str:
    if path.suffix.lower() == ".pdf":
        return extract_pdf(path.read_bytes()).text
    return path.read_text(encoding="utf-8")


def _print_event(event: dict[str, Any]) -> None:
    kind = event.get("type")
    if kind == events.RESPONSE_TEXT_DELTA:
        print(event.get("delta") or "", end="", flush=True)
    elif kind == events.RESPONSE_TRANSCRIPT_DELTA:
        print(event.get("delta") or "", end="", flush=True)
    elif kind in (events.RESPONSE_TEXT_DONE, events.RESPONSE_TRANSCRIPT_DONE):
        print(flush=True)
    elif kind == events.INPUT_TRANSCRIPTION_COMPLETED and event.get("transcript"):
        print(f"you> {event['transcript']}", flush=True)
    elif kind == events.CONNECTED:
        print(f"[{event.get('message')}]", flush=True)
    elif kind == events.ERROR:
        print(f"[error] {event.get('message')}", file=sys.stderr, flush=True)


async def _read_line() -> Optional[str]:
    line = await asyncio.to_thread(sys.stdin.readline)
    return line if line else None


async def run(args: argparse.Namespace) -> int:
    document_text: Optional[str] = None
    if args.document:
        try:
            document_text = load_document(Path(args.document))
        except (OSError, ExtractionError) as e:
            print(f"Could not read document: {e}", file=sys.stderr)
            return 2

    document_name = args.document_name or (Path(args.document).stem if args.document else None)
    modality = Modality(args.mode)

    client = RealtimeClient(
        server_url=args.server,
        modality=modality,
        api_key=args.api_key,
        document_name=document_name,
        document_text=document_text,
        on_event=_print_event,
    )
    try:
        await client.connect()
    except (OSError, WebSocketException) as e:
        print(f"Could not connect to {args.server}: {e}", file=sys.stderr)
        return 1

    if modality is Modality.VOICE and not await client.start_voice():
        print(f"[{client.context.messages[-1].content}]", file=sys.stderr)
        print("[voice unavailable, text chat still works]", file=sys.stderr)

    closed = asyncio.create_task(client.wait_closed())
    try:
        while not closed.done():
            reader = asyncio.create_task(_read_line())
            done, _ = await asyncio.wait({reader, closed}, return_when=asyncio.FIRST_COMPLETED)
            if closed in done:
                reader.cancel()
                break

            line = reader.result()
            if line is None or line.strip() == "/quit":
                break
            if line.strip() == "/mute":
                muted = client.toggle_mute()
                print("[muted]" if muted else "[unmuted]", flush=True)
                continue
            await client.send_text(line)
    finally:
        await client.disconnect()
        closed.cancel()

    return 0 if client.context.last_error is None else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docchat", description="Chat with a document over the realtime relay.")
    parser.add_argument("--server", default=os.environ.get("DOCCHAT_SERVER", f"http://localhost:{DEFAULT_PORT}"))
    parser.add_argument("--mode", choices=[m.value for m in Modality], default=Modality.TEXT.value)
    parser.add_argument("--api-key", default=os.environ.get("OPENAI_API_KEY", ""))
    parser.add_argument("--document", help="PDF or plain-text file to ground the conversation")
    parser.add_argument("--document-name", help="title shown to the assistant (default: file name)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
