"""Chain, asset and ABI metadata for order construction."""

from typing import Any, Dict, List, Literal

from ...services.address import ZERO_ADDRESS

Network = Literal["mainnet", "testnet"]

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    1: {
        'name': 'Ethereum',
        'network': 'mainnet',
        'native_symbol': 'ETH',
        'native_name': 'Ether',
        'native_decimals': 18,
        'explorer_url': 'https://etherscan.io',
    },
    8453: {
        'name': 'Base',
        'network': 'mainnet',
        'native_symbol': 'ETH',
        'native_name': 'Ether',
        'native_decimals': 18,
        'explorer_url': 'https://basescan.org',
    },
    10: {
        'name': 'OP Mainnet',
        'network': 'mainnet',
        'native_symbol': 'ETH',
        'native_name': 'Ether',
        'native_decimals': 18,
        'explorer_url': 'https://optimistic.etherscan.io',
    },
    42161: {
        'name': 'Arbitrum One',
        'network': 'mainnet',
        'native_symbol': 'ETH',
        'native_name': 'Ether',
        'native_decimals': 18,
        'explorer_url': 'https://arbiscan.io',
    },
    84532: {
        'name': 'Base Sepolia',
        'network': 'testnet',
        'native_symbol': 'ETH',
        'native_name': 'Sepolia Ether',
        'native_decimals': 18,
        'explorer_url': 'https://sepolia.basescan.org',
    },
    17000: {
        'name': 'Holesky',
        'network': 'testnet',
        'native_symbol': 'ETH',
        'native_name': 'Holesky Ether',
        'native_decimals': 18,
        'explorer_url': 'https://holesky.etherscan.io',
    },
}

# Display order of chains per network
NETWORK_CHAINS: Dict[str, List[int]] = {
    'mainnet': [1, 8453, 10, 42161],
    'testnet': [84532, 17000],
}

# Token registry used until (or instead of) the solver's remote token list.
STATIC_ASSETS: Dict[int, List[Dict[str, Any]]] = {
    1: [
        {'address': '0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48', 'symbol': 'USDC', 'name': 'USD Coin',
         'decimals': 6, 'min_amount': '1', 'max_amount': '100000'},
        {'address': '0x7f39c581f595b53c5cb19bd0b3f8da6c935e2ca0', 'symbol': 'wstETH', 'name': 'Wrapped Staked ETH',
         'decimals': 18, 'min_amount': '0.001', 'max_amount': '1'},
        {'address': '0xae7ab96520de3a18e5e111b5eaab095312d7fe84', 'symbol': 'stETH', 'name': 'Lido Staked ETH',
         'decimals': 18, 'min_amount': '0.001', 'max_amount': '1'},
    ],
    8453: [
        {'address': '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913', 'symbol': 'USDC', 'name': 'USD Coin',
         'decimals': 6, 'min_amount': '1', 'max_amount': '100000'},
        {'address': '0xc1cba3fcea344f92d9239c08c0568f6f2f0ee452', 'symbol': 'wstETH', 'name': 'Wrapped Staked ETH',
         'decimals': 18, 'min_amount': '0.001', 'max_amount': '1'},
    ],
    10: [
        {'address': '0x0b2c639c533813f4aa9d7837caf62653d097ff85', 'symbol': 'USDC', 'name': 'USD Coin',
         'decimals': 6, 'min_amount': '1', 'max_amount': '100000'},
    ],
    42161: [
        {'address': '0xaf88d065e77c8cC2239327C5EDb3A432268e5831', 'symbol': 'USDC', 'name': 'USD Coin',
         'decimals': 6, 'min_amount': '1', 'max_amount': '100000'},
    ],
    84532: [
        {'address': '0x036CbD53842c5426634e7929541eC2318f3dCF7e', 'symbol': 'USDC', 'name': 'USD Coin',
         'decimals': 6, 'min_amount': '1', 'max_amount': '100000'},
        {'address': '0x6319df7c227e34b967c1903a08a698a3cc43492b', 'symbol': 'wstETH', 'name': 'Wrapped Staked ETH',
         'decimals': 18, 'min_amount': '0.001', 'max_amount': '1'},
    ],
    17000: [
        {'address': '0x8d09a4502cc8cf1547ad300e066060d043f6982d', 'symbol': 'wstETH', 'name': 'Wrapped Staked ETH',
         'decimals': 18, 'min_amount': '0.001', 'max_amount': '1'},
        {'address': '0x3f1c547b21f65e10480de3ad8e19faac46c95034', 'symbol': 'stETH', 'name': 'Lido Staked ETH',
         'decimals': 18, 'min_amount': '0.001', 'max_amount': '1'},
    ],
}

NATIVE_MIN_AMOUNT = '0.001'
NATIVE_MAX_AMOUNT = '1'

# Limits attached to tokens from the remote list, which carries none.
REMOTE_MIN_AMOUNT = '0.001'
REMOTE_MAX_AMOUNT = '1000'

ERC20_TRANSFER_ABI: Dict[str, Any] = {
    'type': 'function',
    'name': 'transfer',
    'inputs': [
        {'name': 'to', 'type': 'address'},
        {'name': 'amount', 'type': 'uint256'},
    ],
    'outputs': [{'type': 'bool'}],
    'stateMutability': 'nonpayable',
}

# Function mutabilities that never change state and so cannot be order calls.
READ_ONLY_MUTABILITIES = frozenset({'view', 'pure'})

QUOTE_MODE_EXPENSE = 'expense'
QUOTE_MODE_DEPOSIT = 'deposit'
