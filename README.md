# brokerchain

A client for a sharded blockchain network that is run by a coordination
server. With it you can:

- create or load a P-256 account key and derive its address,
- query balances, transfer tokens and claim tokens from the faucet,
- register with the server as a node and receive the layout of the shard you are placed in,
- serve a browser wallet with an Ethereum-style JSON-RPC endpoint,
- partition accounts across shards with the CLPA label-propagation algorithm.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command line

```
brokerchain [--host HOST] [--port PORT] [--forward-port PORT] [-f KEYFILE]
            [--client-version VERSION] [--unit UNITS] [--template-dir DIR]
            [--no-version-check]
```

| Option | Default | Meaning |
| --- | --- | --- |
| `--host` | `127.0.0.1` | coordination server host |
| `--port` | `8080` | coordination server HTTP port |
| `--forward-port` | `8081` | forwarding server port |
| `-f`, `--filename` | none | private key file to use when joining with an existing account |
| `--client-version` | empty | version this client compares with the server's |
| `--unit` | `1` | base units per displayed token |
| `--template-dir` | `html` | directory that holds the wallet's `index.html` |
| `--no-version-check` | | do not poll the server for a newer client release |

The program opens with an interactive menu:

1. Join the network as a node and open the wallet.
2. Open a wallet.
3. Query an account and its balance, given an address.
4. Transfer tokens to another account.
5. Claim tokens from the faucet.

For option 1 you either generate a new key, which is saved to a file you name,
or load an existing one. An existing file is never overwritten. The key file
holds the private key as a decimal integer. Keep it to yourself, because anyone
who has it controls the account.

Unless `--no-version-check` is given, the client asks the server every ten
seconds for the current release. It exits when the server announces a
different `1.x.y` version.

After loading the key, the client asks the server to join by stake. It retries
until the server accepts. The client exits if the server reports that the key
is already in use or that the balance is too low. It then waits on the server's
websocket for the new shard's membership. From that membership it builds the
shard layout, and then it opens an authenticated connection to the forwarding
server.

## Browser wallet

Opening a wallet prints your address and a URL of the form
`http://127.0.0.1:<port>`. The port is chosen at random between 20000 and
60000. The URL is also written to a file in the current directory named
`The browser wallet URL of account <address>.txt`. The server's request log goes
to `gin.log`. On Windows the URL is opened in the default browser.

The wallet application (`brokerchain.wallet.create_app`) serves:

- `GET /`: renders `index.html` from the template directory. The page itself is
  not shipped with this package.
- `POST /`: JSON-RPC, single or batched. It handles `eth_chainId`,
  `net_version`, `eth_accounts`, `eth_gasPrice`, `eth_maxPriorityFeePerGas`,
  `eth_getBalance`, `eth_getBlockByNumber`, `eth_getCode`,
  `eth_getTransactionReceipt`, `eth_getTransactionByHash`, `eth_blockNumber`,
  `eth_call`, `eth_estimateGas` and `eth_sendTransaction`. Everything except the
  fixed answers is forwarded, signed, to the coordination server.
- `GET /api/balance`: the account's address and its balance in display units.
- `POST /api/transfer`: takes `recipientAddress`, `amount` and optionally `fee`.

All responses carry permissive CORS headers.

## Library use

Accounts and signatures (`brokerchain.keys`):

```python
from brokerchain.keys import Account, verify

account = Account.load("wallet.key")
r, s = account.sign("some data")
assert verify(account.public_key, "some data", r, s)
print(account.address)  # first 20 bytes of SHA-256 of the compressed public key
```

Server requests (`brokerchain.client`):

```python
from brokerchain.client import ServerClient, ServerConfig

client = ServerClient(ServerConfig(host="127.0.0.1", port=8080, unit="1"))
state = client.query_address("ab12...")
ok, reply = client.send_transfer(account, "cd34...", "10", "1")
```

Failures raise `ServerError`. Its `fatal` attribute is set when the server
refuses the account for good.

Message framing (`brokerchain.message`):

```python
from brokerchain.message import MessageType, merge_message, split_message

frame = merge_message(MessageType.PREPARE, b"payload")
msg_type, content = split_message(frame)  # (MessageType.PREPARE, b"payload")
```

`merge_message2` and `split_message2` handle the 8-byte address prefix that is
used on the forwarding connection.

Proof-of-work (`brokerchain.pow`):

`solve(address, problem, difficulty, max_range, workers)` searches for a nonce
`n` in `[0, max_range)`. It uses up to 16 worker processes, and by default one
per CPU. The SHA-256 of `address + problem + str(n)` must start with
`difficulty` zero bits. It returns `n`, or `None` when the range holds no
solution. `check(digest, difficulty)` tests a single digest.

Account partitioning (`brokerchain.clpa`, `brokerchain.graph`):

```python
from brokerchain.clpa import CLPAState
from brokerchain.graph import Vertex

state = CLPAState(weight_penalty=0.5, max_iterations=100, shard_num=4)
state.add_edge(Vertex("...0000000a"), Vertex("...0000000b"))
moved, cross_edges = state.partition()
```

A new vertex starts in the shard given by the last eight hex digits of its
address, taken modulo the shard count. `partition` returns each address that
moved together with its new shard, and the number of cross-shard edges that
remain.

Other modules:

- `brokerchain.ratelimit` provides a token bucket and rate-limited readers and writers.
- `brokerchain.network` provides `ForwardLink`, the authenticated connection to the forwarding server.
- `brokerchain.shardsetup` provides `DynamicConfig` and `build_layout`.
- `brokerchain.params` provides the run configuration.

## What this package does not do

Once it has joined the network and connected to the forwarding server, the
client waits. The package has no consensus engine, no block production and no
local chain storage, so it cannot query stored blocks or account state on its
own. Balances and chain data always come from the coordination server. The
wallet web page (`index.html`) is not included, so you must supply it through
`--template-dir`.