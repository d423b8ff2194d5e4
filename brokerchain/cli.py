"""Interactive command line: wallet operations and joining the network as a node."""

from __future__ import annotations

import argparse
import os
import sys
import threading
import time
from typing import Sequence

from .client import AccountState, ServerClient, ServerConfig, ServerError, format_balance
from .keys import Account, generate_private_key, mask_private_key
from .network import ForwardLink
from .params import GlobalConfig, read_config_file
from .shardsetup import ShardLayout, build_layout, wait_construct_shard
from .wallet import serve_wallet

VERSION_CHECK_INTERVAL = 10.0
EXIT_DELAY = 10.0
RETRY_DELAY = 3.0
JOIN_RETRY = 1.0
FATAL_FRAME = "=============********************************************************************************============="

_BANNER_LINES = (
    " ______                  __                       ______  __               _",
    "|_   _ \\                [  |  _                 .' ___  |[  |             (_)           ",
    "  | |_) | _ .--.   .--.  | | / ] .---.  _ .--. / .'   \\_| | |--.   ,--.   __   _ .--.   ",
    "  |  __'.[ `/'`\\]/ .'`\\ \\| '' < / /__\\\\[ `/'`\\]| |        | .-. | `'_\\ : [  | [ `.-. |  ",
    " _| |__) || |    | \\__. || |`\\ \\| \\__., | |    \\ `.___.'\\ | | | | // | |, | |  | | | |  ",
    "|_______/[___]    '.__.'[__|  \\_]'.__.'[___]    `.____ .'[___]|__]\\'-;__/[___][___||__]  (academic)",
)

_DISCLAIMER_LINES = (
    "BrokerChain仅供学术交流使用，用户不得使用BrokerChain从事任何非法活动。",
    "用户使用BrokerChain所产生的任何直接或间接后果，均与BrokerChain创始团队无关。",
    "BrokerChain创始团队保留随时修改、更新或终止BrokerChain的权利，且无需事先通知用户。",
    "用户在使用BrokerChain时，应自行承担风险，并同意放弃对创始团队的任何索赔权利。",
    "本免责声明受中华人民共和国法律管辖，并按照其解释。",
)

_MAIN_MENU = (
    "Welcome. Please enter an option:",
    "1: Join BrokerChain as a consensus node && Open the wallet.",
    "2: Open a wallet.",
    "3: Query an account and its balance if given an address.",
    "4: Transfer tokens to another account.",
    "5: Claim BKC tokens through faucets.",
)

_KEY_MENU = (
    "Please enter an option:",
    "1: Generate a pair of (public/private) keys for a new account",
    "2: Use the private key of an existing account",
)


def banner() -> str:
    return "\n".join(_BANNER_LINES)


def disclaimers() -> str:
    return "\n" + "\n".join(_DISCLAIMER_LINES) + "\n"


def _ask(*prompt: str) -> str:
    for line in prompt:
        print(line)
    line = sys.stdin.readline()
    if not line:
        raise EOFError
    return line.strip()


def _print_balance(state: AccountState, unit: str) -> None:
    try:
        amount = format_balance(state.balance, unit)
    except ValueError:
        amount = "0"
    print()
    print("Your account address is:", state.account, ",the balance of your account is:", amount)


def _load_account(filename: str | None = None) -> Account | None:
    if filename is None:
        filename = _ask("Please enter the filename for the private key:")
    try:
        return Account.load(filename)
    except (OSError, ValueError) as exc:
        print(exc)
        return None


def _query_address(client: ServerClient) -> None:
    address = _ask("Please enter the address to query:")
    _print_balance(client.query_address(address), client.config.unit)


def _transfer(client: ServerClient) -> None:
    account = _load_account()
    if account is None:
        return
    state = client.query_own(account)
    _print_balance(state, client.config.unit)
    to = _ask("Please enter the address of recipient's account:")
    while to == state.account:
        to = _ask(
            "The recipient's account address cannot be the same as the payer's. "
            "Please re-enter the recipient's account address:"
        )
    value = _ask("Please enter the amount to transfer:")
    fee = _ask("Please enter the fee:")
    ok, _ = client.send_transfer(account, to, value, fee)
    print("Transfer successful." if ok else "Transfer failed.")


def _claim(client: ServerClient) -> None:
    account = _load_account()
    if account is None:
        return
    print("Result: " + client.claim(account))


def _block_forever() -> None:
    threading.Event().wait()


def _open_wallet(client: ServerClient, template_dir: str) -> None:
    account = _load_account()
    if account is None:
        return
    serve_wallet(client, account, template_dir)
    print()
    _block_forever()


def _generate_account() -> Account | None:
    filename = _ask("Please enter the filename to save the generated private key:")
    if os.path.exists(filename):
        print("The file is already exists. Please enter a different filename.")
        time.sleep(RETRY_DELAY)
        return None
    private = generate_private_key()
    masked = mask_private_key(private)
    if masked is not None:
        print("Private key generated: ", masked)
    account = Account.from_private(private)
    try:
        account.save(filename)
    except OSError as exc:
        print(exc)
        time.sleep(RETRY_DELAY)
        return None
    print("The private key is successfully saved to file:" + filename)
    return account


def _choose_account(filename: str | None) -> Account:
    while True:
        choice = _ask(*_KEY_MENU)
        if choice == "1":
            account = _generate_account()
        elif choice == "2":
            account = _load_account(filename)
        else:
            print("Invalid input.")
            print()
            continue
        if account is not None:
            return account


def _watch_version(client: ServerClient) -> None:
    while True:
        time.sleep(VERSION_CHECK_INTERVAL)
        if client.version_is_outdated():
            print()
            print("=========================================")
            print(
                "Client version too old! Please update your client to the newest version."
            )
            print("=========================================")
            print()
            time.sleep(EXIT_DELAY)
            os._exit(1)


def _apply_layout(settings: GlobalConfig, layout: ShardLayout) -> None:
    settings.shard_num = layout.shard_num
    settings.nodes_in_shard = layout.node_num
    settings.supervisor_addr = layout.supervisor_addr
    settings.ip_map_node_table = layout.ip_map


def _join_network(
    client: ServerClient, server: ServerConfig, account: Account, settings: GlobalConfig
) -> tuple[ForwardLink, ShardLayout]:
    while True:
        print("Start trying to join BrokerChain network...")
        while not client.join_pos(account):
            time.sleep(JOIN_RETRY)
        print("Join BrokerChain network successfully.")
        config = wait_construct_shard(server, account)
        if config is None:
            time.sleep(JOIN_RETRY)
            continue
        try:
            layout = build_layout(config, account.address, server.host)
        except ValueError as exc:
            print(exc)
            time.sleep(JOIN_RETRY)
            continue
        _apply_layout(settings, layout)
        link = ForwardLink(server.host, server.forward_port, account, retry_interval=0.5)
        link.connect()
        print(
            f"Assigned to shard {layout.shard_id} as node {layout.node_id} "
            f"of {layout.node_num} ({layout.shard_num} shards)."
        )
        return link, layout


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="brokerchain", description="BrokerChain client")
    parser.add_argument("-f", "--filename", default=None, help="private key file of an existing account")
    parser.add_argument("--host", default="127.0.0.1", help="coordination server host")
    parser.add_argument("--port", default="8080", help="coordination server HTTP port")
    parser.add_argument("--forward-port", default="8081", help="forwarding server port")
    parser.add_argument("--client-version", default="", help="version this client reports")
    parser.add_argument("--unit", default="1", help="base units per displayed token")
    parser.add_argument("--template-dir", default="html", help="directory holding index.html")
    parser.add_argument(
        "--no-version-check", dest="version_check", action="store_false",
        help="do not poll the server for newer client releases",
    )
    return parser


def _main_menu(client: ServerClient, template_dir: str) -> None:
    """Serve menu choices until the user asks to join the network."""
    actions = {"3": _query_address, "4": _transfer, "5": _claim}
    while True:
        choice = _ask(*_MAIN_MENU)
        if choice == "1":
            return
        if choice == "2":
            _open_wallet(client, template_dir)
            print()
            continue
        action = actions.get(choice)
        if action is None:
            print("Invalid input.")
            print()
            continue
        try:
            action(client)
        except (ServerError, ValueError, OSError) as exc:
            print(exc)
        print()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    print(banner())
    print(disclaimers())

    server = ServerConfig(
        host=args.host,
        port=args.port,
        forward_port=args.forward_port,
        version=args.client_version,
        unit=args.unit,
    )
    client = ServerClient(server)
    if args.version_check:
        threading.Thread(target=_watch_version, args=(client,), daemon=True).start()
    settings = read_config_file()

    try:
        _main_menu(client, args.template_dir)
        account = _choose_account(args.filename)
        serve_wallet(client, account, args.template_dir)
        link, _ = _join_network(client, server, account, settings)
        try:
            _block_forever()
        finally:
            link.close()
    except EOFError:
        return 0
    except KeyboardInterrupt:
        return 130
    except ServerError as exc:
        if not exc.fatal:
            raise
        print()
        print(FATAL_FRAME)
        print(f"【{exc}】 Program will exit after 10 seconds.")
        print(FATAL_FRAME)
        print()
        time.sleep(EXIT_DELAY)
        return 1
    return 0