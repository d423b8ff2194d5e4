"""Global run configuration and static chain parameters."""

from __future__ import annotations

from dataclasses import dataclass, field

SUPERVISOR_SHARD = 2147483647
INIT_BALANCE = int("100000000000000000000000000000000000000000000")
COMMITTEE_METHOD = ("CLPA_Broker", "CLPA", "Broker", "Relay")
MEASURE_BROKER_MOD = ("TPS_Broker", "TCL_Broker", "CrossTxRate_Broker", "TxNumberCount_Broker")
MEASURE_RELAY_MOD = ("TPS_Relay", "TCL_Relay", "CrossTxRate_Relay", "TxNumberCount_Relay")


@dataclass
class GlobalConfig:
    """Tunable parameters of a run; field defaults are the built-in values."""

    nodes_in_shard: int = 4
    shard_num: int = 4

    consensus_method: int = 1
    pbft_view_change_timeout: int = 300000
    pbft_stop_shard_timeout: int = 3300000
    block_interval: int = 5000

    max_block_size_global: int = 2000
    blocksize_in_bytes: int = 20000
    use_blocksize_in_bytes: int = 0

    inject_speed: int = 2000
    total_data_size: int = 160000
    tx_batch_size: int = 16000

    broker_num: int = 10
    relay_with_merkle_proof: int = 0

    exp_data_root_dir: str = "expTest"
    supervisor_addr: str = "127.0.0.1:18800"
    dataset_file: str = "./selectedTxs_300K.csv"
    reconfig_time_gap: int = 50

    delay: int = 0
    jitter_range: int = 0
    bandwidth: int = 0

    ip_map_node_table: dict[int, dict[int, str]] = field(default_factory=dict)

    def data_write_path(self) -> str:
        return self.exp_data_root_dir + "/result/"

    def log_write_path(self) -> str:
        return self.exp_data_root_dir + "/log"

    def database_write_path(self) -> str:
        return self.exp_data_root_dir + "/database/"


@dataclass
class ChainConfig:
    """Identity and sizing of one chain replica."""

    chain_id: int
    node_id: int
    shard_id: int
    nodes_per_shard: int = 0
    shard_nums: int = 0
    block_size: int = 0
    block_interval: int = 0
    inject_speed: int = 0
    max_relay_block_size: int = 0


def read_config_file() -> GlobalConfig:
    """Return the configuration the client runs with."""
    return GlobalConfig(
        consensus_method=1,
        pbft_view_change_timeout=300000,
        pbft_stop_shard_timeout=3300000,
        exp_data_root_dir="expTest",
        block_interval=10000,
        max_block_size_global=2000,
        blocksize_in_bytes=200000,
        use_blocksize_in_bytes=0,
        inject_speed=2000,
        total_data_size=160000,
        tx_batch_size=16000,
        broker_num=50,
        relay_with_merkle_proof=0,
        dataset_file="./selectedTxs_300K.csv",
        reconfig_time_gap=50,
        delay=-1,
        jitter_range=-1,
        bandwidth=100000000,
    )