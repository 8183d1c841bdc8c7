#!/usr/bin/env python3
"""
Interactive Test Client for RESP-Cache

A simple command-line client for manually testing the RESP-Cache server.

Usage:
    python scripts/client.py                    # Connect to localhost:6379
    python scripts/client.py --host 1.2.3.4     # Connect to specific host
    python scripts/client.py --port 8080        # Connect to specific port
    python scripts/client.py --password secret  # AUTH right after connecting

Commands are sent as RESP arrays. Arguments are split like a shell would,
so quote values containing spaces: SET greeting "hello world"
"""

import argparse
import shlex
import sys

# Enable command history with arrow keys (works on Unix systems)
try:
    import readline  # noqa: F401
except ImportError:
    pass  # readline not available on Windows by default

from respcache.client import RespClient
from respcache.protocol.errors import ReplyError


def print_help():
    """Print help message."""
    print("""
RESP-Cache Commands:
--------------------
  PING [message]            Check the connection
  AUTH <password>           Authenticate this connection
  SET <key> <value> [PX ms] Store a value (optional TTL in milliseconds)
  GET <key>                 Retrieve the value for a key
  EXISTS <key>              Check if a key exists (returns 1 or 0)
  DEL <key>                 Delete a key
  KEYS <pattern>            List keys (always empty)
  SUBSCRIBE <channel>       Subscribe to a channel
  UNSUBSCRIBE [channel]     Leave one channel, or all of them
  PUBLISH <channel> <msg>   Publish a message to a channel
  QUIT                      Close connection and exit

Client Commands:
----------------
  help                      Show this help message
  exit                      Exit the client
  reconnect                 Reconnect to the server
  status                    Show connection status
  listen                    Print pub/sub messages until Ctrl+C

Examples:
---------
  SET mykey myvalue         Store "myvalue" under "mykey"
  SET tempkey tempval PX 60000
  GET mykey                 Get value for "mykey"
  SUBSCRIBE news            Then run "listen" to watch messages
""")


def format_reply(reply) -> str:
    """Render a decoded reply the way redis-cli does."""
    if reply is None:
        return "(nil)"
    if isinstance(reply, int):
        return f"(integer) {reply}"
    if isinstance(reply, list):
        if not reply:
            return "(empty array)"
        return "\n".join(f"{i}) {format_reply(item)}" for i, item in enumerate(reply, 1))
    return f'"{reply}"'


def connect(client: RespClient, password: str = None) -> bool:
    try:
        client.connect()
        if password:
            client.auth(password)
        return True
    except (OSError, ReplyError) as e:
        print(f"Connection error: {e}")
        client.close()
        return False


def listen(client: RespClient):
    if not client.is_connected():
        print("ERROR: Not connected")
        return
    print("Listening for messages, Ctrl+C to stop...")
    client.socket.settimeout(None)
    try:
        while True:
            print(format_reply(client.read_reply()))
    except KeyboardInterrupt:
        print()
    finally:
        client.socket.settimeout(client.timeout)


def main():
    parser = argparse.ArgumentParser(
        description="Interactive test client for RESP-Cache"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="localhost",
        help="Server host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=6379,
        help="Server port (default: 6379)"
    )
    parser.add_argument(
        "--password",
        type=str,
        default=None,
        help="Password sent with AUTH after connecting"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Socket timeout in seconds (default: 5.0)"
    )

    args = parser.parse_args()

    print("RESP-Cache Client")
    print("=================")
    print(f"Connecting to {args.host}:{args.port}...")

    client = RespClient(args.host, args.port, args.timeout)

    if not connect(client, args.password):
        print("Failed to connect. Is the server running?")
        print(f"  Try: resp-cache --port {args.port}")
        sys.exit(1)

    print("Connected! Type 'help' for commands.\n")

    try:
        while True:
            try:
                line = input(">>> ").strip()

                if not line:
                    continue

                lower_cmd = line.lower()

                if lower_cmd == "help":
                    print_help()
                    continue

                if lower_cmd in ("exit", "quit"):
                    if client.is_connected():
                        try:
                            client.quit()
                        except (OSError, ReplyError):
                            pass
                    print("Goodbye!")
                    break

                if lower_cmd == "reconnect":
                    client.close()
                    if connect(client, args.password):
                        print("Reconnected!")
                    else:
                        print("Reconnection failed.")
                    continue

                if lower_cmd == "status":
                    status = "Connected" if client.is_connected() else "Disconnected"
                    print(f"Status: {status}")
                    print(f"Server: {args.host}:{args.port}")
                    continue

                if lower_cmd == "listen":
                    listen(client)
                    continue

                try:
                    argv = shlex.split(line)
                except ValueError as e:
                    print(f"(error) {e}")
                    continue

                try:
                    print(format_reply(client.execute_command(*argv)))
                except ReplyError as e:
                    print(f"(error) {e}")
                except OSError as e:
                    print(f"ERROR: {e}")

            except EOFError:
                print("\nGoodbye!")
                break

    except KeyboardInterrupt:
        print("\n\nInterrupted. Goodbye!")
    finally:
        client.close()


if __name__ == "__main__":
    main()
