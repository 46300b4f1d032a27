"""Message sending script.

Development helper that onboards two users against a running server, opens
their direct conversation and sends messages from the first to the second.
"""

import argparse
import http.client
import json
import sys
import time
from typing import Any


class RequestFailed(Exception):
    """Raised when the server answers with an error or cannot be reached."""


def create_parser() -> argparse.ArgumentParser:
    """Create the command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Send direct messages between two test users",
    )
    parser.add_argument(
        "-H",
        "--host",
        default="localhost",
        help="Server host (default: localhost)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8080,
        help="Server port (default: 8080)",
    )
    parser.add_argument(
        "--subject-header",
        default="X-Auth-Subject",
        help="Header carrying the caller's subject id (default: X-Auth-Subject)",
    )
    parser.add_argument(
        "-f",
        "--sender",
        default="dev-alice",
        help="Subject id of the sender (default: dev-alice)",
    )
    parser.add_argument(
        "-t",
        "--recipient",
        default="dev-bob",
        help="Subject id of the recipient (default: dev-bob)",
    )
    parser.add_argument(
        "-m",
        "--message",
        default="ping",
        help="Message text (default: ping)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=1,
        help="Number of messages (default: 1)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=0.0,
        help="Seconds between messages (default: 0.0)",
    )
    return parser


def request(
    args: argparse.Namespace,
    subject: str,
    method: str,
    path: str,
    body: dict[str, Any] | None = None,
) -> Any:
    """Send one JSON request as the given subject.

    Returns:
        The decoded JSON response.

    Raises:
        RequestFailed: On connection errors or non-2xx responses.
    """
    headers = {"Content-Type": "application/json", args.subject_header: subject}
    try:
        conn = http.client.HTTPConnection(args.host, args.port, timeout=30)
        try:
            conn.request(
                method,
                path,
                body=json.dumps(body or {}),
                headers=headers,
            )
            response = conn.getresponse()
            payload = response.read().decode("utf-8")
        finally:
            conn.close()
    except ConnectionRefusedError:
        raise RequestFailed("Connection refused") from None
    except TimeoutError:
        raise RequestFailed("Connection timeout") from None
    except OSError as e:
        raise RequestFailed(str(e)) from e

    if response.status >= 300:
        raise RequestFailed(f"{method} {path}: {response.status} {payload}")
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        raise RequestFailed(f"Invalid JSON response: {payload}") from None


def onboard(args: argparse.Namespace, subject: str) -> str:
    """Upsert a profile named after the subject and return its user id."""
    data = request(
        args,
        subject,
        "POST",
        "/api/v1/profile",
        {"name": subject, "email": f"{subject}@example.com"},
    )
    return data["user_id"]


def main() -> int:
    """Main entry point."""
    args = create_parser().parse_args()

    try:
        onboard(args, args.sender)
        recipient_id = onboard(args, args.recipient)
        conversation_id = request(
            args,
            args.sender,
            "POST",
            "/api/v1/conversations/direct",
            {"other_user_id": recipient_id},
        )["conversation_id"]
        print(f"Conversation: {conversation_id}")

        for i in range(args.count):
            if i > 0 and args.interval > 0:
                time.sleep(args.interval)
            message_id = request(
                args,
                args.sender,
                "POST",
                f"/api/v1/conversations/{conversation_id}/messages",
                {"content": args.message},
            )["message_id"]
            print(f"[{i + 1}/{args.count}] Message ID: {message_id}")

        conversations = request(args, args.recipient, "GET", "/api/v1/conversations")
    except RequestFailed as e:
        print(f"Error: {e}")
        return 1

    unread = {c["id"]: c["unread_count"] for c in conversations}
    print(f"Unread for {args.recipient}: {unread.get(conversation_id, 0)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
