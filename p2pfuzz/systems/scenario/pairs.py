"""
P2P Fuzzer: Trading Pair Generation

Random pairs are drawn from a fixed set of price sources. Structurally
identical pairs are filtered out, so a scenario may end up with fewer pairs
than were sampled.
"""

from __future__ import annotations

import random

from p2pfuzz.primitives.common import random_string
from p2pfuzz.primitives.topology import Pair, Source, dedupe_pairs

SOURCE_PATHS: tuple[str, ...] = (
    "market_data.current_price.aud",
    "market_data.current_price.btc",
    "market_data.current_price.cad",
    "market_data.current_price.czk",
    "market_data.current_price.dot",
    "market_data.current_price.jpy",
    "market_data.current_price.usd",
    "market_data.current_price.xlm",
)

END_POINTS: tuple[str, ...] = (
    "https://api.coingecko.com/api/v3/coins/bitcoin",
    "https://api.coingecko.com/api/v3/coins/ethereum",
    "https://api.coingecko.com/api/v3/coins/tether",
    "https://api.coingecko.com/api/v3/coins/usd-coin",
    "https://api.coingecko.com/api/v3/coins/staked-ether",
    "https://api.coingecko.com/api/v3/coins/hedera-hashgraph",
    "https://api.coingecko.com/api/v3/coins/chain-2",
    "https://api.coingecko.com/api/v3/coins/near",
    "https://api.coingecko.com/api/v3/coins/dai",
    "https://api.coingecko.com/api/v3/coins/avalanche-2",
    "https://api.coingecko.com/api/v3/coins/algorand",
    "https://api.coingecko.com/api/v3/coins/theta-token",
)


def generate_pair(rng: random.Random, string_bytes: int, max_decimals: int) -> Pair:
    return Pair(
        pair=random_string(rng.randint(1, string_bytes), rng),
        decimals=rng.randint(1, max_decimals),
        sources=[
            Source(
                source_path=rng.choice(SOURCE_PATHS),
                end_point=rng.choice(END_POINTS),
            )
        ],
    )


def generate_pairs(
    rng: random.Random,
    count: int,
    string_bytes: int,
    max_decimals: int,
) -> list[Pair]:
    """Sample ``count`` pairs and drop duplicates."""
    return dedupe_pairs(
        [generate_pair(rng, string_bytes, max_decimals) for _ in range(count)]
    )
