"""Keeps an authenticated Steam session alive across short-lived CLI invocations.

Login progress is persisted under ``~/.steam-cli`` so that separate invocations can
continue a multi-step login, and a background daemon can hold the connection.

Example::

    $ steam auth login alice
    Steam password:
    Authentication failed: ACCOUNT_LOGON_DENIED
    Steam Guard code required. Use: steam auth code <CODE>
    $ steam auth code 4D6XG
    Authenticated as alice (76561198000000000)
    $ steam daemon start
    Steam daemon started (PID: 4242)
    $ steam msg 76561198000000001 "hello there"
    Message sent to 76561198000000001

Example::

    manager = ConnectionManager()
    try:
        manager.ensure_connection()
        manager.send_message(76561198000000001, 'hello there')
    finally:
        manager.close()

"""
import argparse
from getpass import getpass
import sys

from .config import VERSION
from .connection import ConnectionManager
from .daemon import daemon_status, run_daemon, setup_cli_logging, start_daemon, stop_daemon
from .eresult import describe, to_result
from .exc import ClientException
from .ratelimit import format_remaining
from .store import SessionState

__all__ = ['ConnectionManager', 'get_parser', 'main']


def get_parser():
    """Construct the argument parser for `steam`."""
    parser = argparse.ArgumentParser(prog='steam')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debugging information to stderr')

    subparsers = parser.add_subparsers(help='sub-command help', dest='name')

    # auth
    auth_parser = subparsers.add_parser('auth', help='Log in to Steam and inspect the session')
    auth = auth_parser.add_subparsers(dest='auth_command')
    iparser = auth.add_parser('login', help='Start authentication')
    iparser.add_argument('username', nargs='?')
    iparser.add_argument('password', nargs='?')
    iparser = auth.add_parser('code', help='Submit Steam Guard code')
    iparser.add_argument('code')
    auth.add_parser('logout', help='End session')
    auth.add_parser('status', help='Check authentication status')
    auth.add_parser('clear-rate-limit', help='Clear rate limit history')

    # daemon
    daemon_parser = subparsers.add_parser('daemon', help='Manage the persistent connection')
    daemon = daemon_parser.add_subparsers(dest='daemon_command')
    daemon.add_parser('start', help='Start persistent Steam connection')
    daemon.add_parser('stop', help='Stop persistent connection')
    daemon.add_parser('status', help='Check daemon status')
    daemon.add_parser('run', help='Run daemon (internal use)')

    # msg
    iparser = subparsers.add_parser('msg', help='Send a message to a friend')
    iparser.add_argument('steam_id', type=int)
    iparser.add_argument('message', nargs='+')

    subparsers.add_parser('status', help='Overall status')
    subparsers.add_parser('version', help='Show version')

    return parser


def print_session_outcome(session: SessionState) -> int:
    """Print the result of a logon attempt. Returns the exit code."""
    if session.authenticated:
        print(f'Authenticated as {session.username} ({session.steam_id})')
        return 0
    if session.last_error:
        print(session.last_error, file=sys.stderr)
    if session.last_result:
        print(describe(to_result(session.last_result)), file=sys.stderr)
    if session.needs_code:
        print('Steam Guard code required. Use: steam auth code <CODE>', file=sys.stderr)
    return 1


def print_auth_status(session: SessionState):
    print(f'Connected: {session.connected}')
    print(f'Authenticated: {session.authenticated}')
    print(f'Needs Code: {session.needs_code}')
    if session.authenticated:
        print(f'Steam ID: {session.steam_id}')
        print(f'Username: {session.username}')
    if session.last_error:
        print(f'Last Error: {session.last_error}')
    if session.connected and not session.authenticated:
        if session.needs_code:
            print('Steam Guard code required. Use: steam auth code <CODE>')
        else:
            print('Authentication in progress...')


def auth_command(args, manager: ConnectionManager) -> int:
    match args.auth_command:
        case 'login':
            session = manager.auth_status()
            if session.connected and session.authenticated:
                print("Already authenticated! Use 'steam auth logout' to start fresh")
                return 0

            check = manager.governor.check()
            if check.blocked:
                print(check.reason, file=sys.stderr)
                return 1

            username = args.username or input('Steam username: ').strip()
            password = args.password or getpass('Steam password: ')
            if not username or not password:
                print('Username and password are required', file=sys.stderr)
                print('Usage: steam auth login [username] [password]', file=sys.stderr)
                return 1

            print('Connecting to Steam...')
            session = manager.start_login(username, password)
            return print_session_outcome(session)
        case 'code':
            print(f'Submitting Steam Guard code: {args.code}')
            return print_session_outcome(manager.submit_guard_code(args.code))
        case 'logout':
            manager.logout()
            print('Logged out successfully')
            return 0
        case 'status':
            print_auth_status(manager.auth_status())
            return 0
        case 'clear-rate-limit':
            manager.governor.clear()
            print('Rate limit history cleared')
            return 0
        case _:
            print('Usage: steam auth {login,code,logout,status,clear-rate-limit}', file=sys.stderr)
            return 1


def daemon_command(args) -> int:
    try:
        match args.daemon_command:
            case 'start':
                pid = start_daemon()
                print(f'Steam daemon started (PID: {pid})')
            case 'stop':
                stop_daemon()
                print('Steam daemon stopped')
            case 'status':
                running, state = daemon_status()
                if not running:
                    print('Steam daemon not running')
                    return 0
                print('Steam daemon status:')
                print(f'   PID: {state.pid}')
                if state.start_time is not None:
                    print(f'   Started: {state.start_time.isoformat()}')
                print(f'   Connected: {state.connected}')
                if state.steam_id:
                    print(f'   Steam ID: {state.steam_id}')
                    print(f'   Username: {state.username}')
            case 'run':
                return run_daemon()
            case _:
                print('Usage: steam daemon {start,stop,status,run}', file=sys.stderr)
                return 1
    except ClientException as e:
        print(f'Failed to {args.daemon_command} daemon: {e}', file=sys.stderr)
        return 1
    return 0


def status_command(manager: ConnectionManager) -> int:
    session = manager.auth_status()
    print(f'Connection: {"Connected" if session.connected else "Disconnected"}')
    if session.authenticated:
        print('Authentication: Authenticated')
        print(f'   Steam ID: {session.steam_id}')
        print(f'   Username: {session.username}')
    elif session.connected:
        print('Authentication: In progress')
        if session.needs_code:
            print('   Steam Guard code required')
    else:
        print('Authentication: Not authenticated')
    if session.last_error:
        print(f'Last Error: {session.last_error}')

    check = manager.governor.check()
    if check.blocked and check.remaining:
        print(f'Rate limit: {format_remaining(check.remaining)} remaining')

    running, _ = daemon_status()
    print(f'Daemon: {"running" if running else "not running"}')
    return 0


def main(argv=None):
    """The entry point for steam. Run `steam -h` to see usage.

    Sub-commands:
        auth {login,code,logout,status,clear-rate-limit}, daemon {start,stop,status,run}, msg, status, version

    """
    parser = get_parser()
    args = parser.parse_args(argv)

    if args.name == 'daemon' and args.daemon_command == 'run':
        # The daemon configures its own logging
        sys.exit(daemon_command(args))

    setup_cli_logging(args.verbose)

    if args.name == 'daemon':
        sys.exit(daemon_command(args))
    elif args.name == 'version':
        print(f'steam-cli v{VERSION}')
        sys.exit(0)
    elif args.name not in ('auth', 'msg', 'status'):
        parser.print_help()
        sys.exit(1)

    manager = ConnectionManager()
    try:
        if args.name == 'auth':
            rv = auth_command(args, manager)
        elif args.name == 'msg':
            manager.send_message(args.steam_id, ' '.join(args.message))
            print(f'Message sent to {args.steam_id}')
            rv = 0
        else:
            rv = status_command(manager)
    except ClientException as e:
        print(e, file=sys.stderr)
        rv = 1
    finally:
        manager.close()
    sys.exit(rv)


if __name__ == '__main__':
    main()
