"""
CLI that signs in, optionally sends a message, and tails a chat in real time.

Example:
    python scripts/chat_tail.py --email a@example.com --password secret \
        --contact-email b@example.com --send "hello"
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.dependencies import get_chat_backend

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Tail a chat in real time")
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--password", required=True, help="Account password")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--chat-id", type=str, help="Chat to tail")
    target.add_argument(
        "--contact-email",
        type=str,
        help="Open (or create) the chat with this user instead",
    )
    parser.add_argument(
        "--send",
        type=str,
        default=None,
        help="Send this message before tailing",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print the current messages and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    backend = get_chat_backend()
    signed_in = backend.sign_in(args.email, args.password)
    if not signed_in.success:
        logger.error("Sign in failed: %s", signed_in.error)
        return 1
    uid = signed_in.user.uid

    chat_id = args.chat_id
    if not chat_id:
        contact = backend.get_user_by_email(args.contact_email)
        if not contact:
            logger.error("No user with email %s", args.contact_email)
            return 1
        created = backend.create_chat(uid, contact.id)
        if not created.success:
            logger.error("Could not open chat: %s", created.error)
            return 1
        chat_id = created.chat_id

    if args.send:
        sent = backend.send_message(chat_id, uid, args.send)
        if not sent.success:
            logger.error("Send failed: %s", sent.error)
            return 1

    if args.once:
        for message in backend.get_messages(chat_id):
            print(f"[{message.timestamp}] {message.sender_id}: {message.text}")
        return 0

    seen: set[str] = set()

    def on_messages(messages):
        for message in messages:
            if message.id in seen:
                continue
            seen.add(message.id)
            print(f"[{message.timestamp}] {message.sender_id}: {message.text}")

    subscription = backend.subscribe_to_messages(chat_id, on_messages)
    logger.info("Tailing chat %s, Ctrl-C to stop", chat_id)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        subscription.unsubscribe()
        backend.logout()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
