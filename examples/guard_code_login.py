import sys

from getpass import getpass

from steam_cli import ConnectionManager
from steam_cli.exc import ClientException


USERNAME = "myusername"
FRIEND_ID = 76561198000000001


def login(manager: ConnectionManager) -> bool:
    session = manager.start_login(USERNAME, getpass("Steam password: "))

    # Steam Guard asks for a code on the first logon from a new machine.
    # The code goes to email or the mobile authenticator, see `code_type`.
    while session.needs_code:
        session = manager.submit_guard_code(input(f"Steam Guard code ({session.code_type}): ").strip())

    if not session.authenticated:
        print(session.last_error, file=sys.stderr)
    return session.authenticated


manager = ConnectionManager()
try:
    if login(manager):
        manager.send_message(FRIEND_ID, "hello from steam-cli")
except ClientException as e:
    print(f"{e} (errno {e.errno})", file=sys.stderr)
finally:
    manager.close()
