"""Voice Relay: console client.

Stands in for the browser: each typed line is recognized as one final
utterance and replies are printed where the browser would speak them.
Type ``/reset`` to clear the conversation.
"""

import argparse
import asyncio
import contextlib
import logging
import sys
from datetime import datetime

from shared import protocol
from client.connection import ServerConnection
from client.recognition import RecognitionLoop, RecognitionStopped, RestartPolicy
from client.segmenter import RecognitionBatch, RecognitionResult

log = logging.getLogger(__name__)

RESET_COMMAND = "/reset"
REPLY_GRACE_S = 2.0

_CYAN = "\033[36m"
_DIM = "\033[90m"
_RED = "\033[31m"
_RST = "\033[0m"


async def console_recognizer():
    """Yield one final result per stdin line; raise RecognitionStopped at EOF."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            raise RecognitionStopped()
        line = line.rstrip("\n")
        if line.strip():
            yield RecognitionBatch(results=[RecognitionResult(line, True)])


def print_event(msg: dict) -> None:
    msg_type = msg.get("type")
    if msg_type == protocol.AI_RESPONSE:
        stamp = msg.get("timestamp", "")
        try:
            stamp = datetime.fromisoformat(stamp.replace("Z", "+00:00")).astimezone().strftime("%H:%M:%S")
        except ValueError:
            pass
        print(f"{_CYAN}assistant{_RST} {_DIM}[{stamp}]{_RST} {msg.get('text', '')}")
    elif msg_type == protocol.PARTIAL_TRANSCRIPT:
        print(f"{_DIM}... {msg.get('text', '')}{_RST}")
    elif msg_type == protocol.CONVERSATION_RESET:
        print(f"{_DIM}Conversation reset. Ready to start again.{_RST}")
    elif msg_type == protocol.ERROR:
        print(f"{_RED}Error: {msg.get('message', '')}{_RST}")
    else:
        log.debug("Unhandled server event: %s", msg_type)


async def run_client(server_url: str, policy: RestartPolicy) -> None:
    connection = ServerConnection(server_url, on_event=print_event)
    connection_task = asyncio.create_task(connection.run())
    if not await connection.wait_connected(timeout=10.0):
        log.warning("Server not reachable yet; input will be buffered")

    recognition = RecognitionLoop(console_recognizer, policy)
    try:
        async for event in recognition.events():
            if event.is_final and event.text.strip() == RESET_COMMAND:
                await connection.send_reset()
                continue
            await connection.send_transcript(event)
    finally:
        # Give the reply to the last line a moment to arrive.
        await asyncio.sleep(REPLY_GRACE_S)
        connection.stop()
        connection_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await connection_task
    log.info("Recognition stopped (%s)", recognition.stop_reason)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    parser = argparse.ArgumentParser(description="Voice Relay console client")
    parser.add_argument("--server", type=str, default="ws://localhost:3000/ws", help="Relay WebSocket URL")
    parser.add_argument("--max-restarts", type=int, default=5, help="Consecutive recognizer restarts before giving up")
    args = parser.parse_args()

    policy = RestartPolicy(max_consecutive=args.max_restarts)
    try:
        asyncio.run(run_client(args.server, policy))
    except KeyboardInterrupt:
        print("\nGoodbye.")


if __name__ == "__main__":
    main()
