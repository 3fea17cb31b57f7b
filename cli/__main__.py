"""Entry point for the vocab arena CLI client."""

import argparse
import sys

from cli.api_client import VocabAPIClient
from cli.console import ConsoleUI


def main():
    parser = argparse.ArgumentParser(description='Vocab Arena - spaced-repetition vocabulary trainer')
    parser.add_argument(
        'command',
        nargs='?',
        default='practice',
        choices=['practice', 'users', 'versus', 'reverse'],
        help='What to do (default: practice)'
    )
    parser.add_argument(
        '--server',
        default='http://localhost:8000',
        help='Server URL (default: http://localhost:8000)'
    )
    parser.add_argument(
        '--user',
        help='User ID (see the "users" command)'
    )
    parser.add_argument(
        '--room',
        help='Room code to join (versus/reverse); omit to create a room'
    )
    args = parser.parse_args()

    client = VocabAPIClient(base_url=args.server, user_id=args.user)
    ui = ConsoleUI(client)
    if not ui.connect():
        sys.exit(1)

    if args.command == 'users':
        ui.print_users()
        return
    if not args.user:
        parser.error('--user is required for this command')

    try:
        if args.command == 'practice':
            ui.run_practice()
        elif args.command == 'versus':
            ui.play_versus(args.room)
        else:
            ui.play_reverse(args.room)
    except KeyboardInterrupt:
        print('\nGoodbye!')
        sys.exit(0)


if __name__ == '__main__':
    main()
