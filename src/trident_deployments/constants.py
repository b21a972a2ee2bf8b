"""Configuration constants for trident-deployments library."""

# Mnemonic used when MNEMONIC is unset; only acceptable on non-live networks
DEFAULT_MNEMONIC = "test test test test test test test test test test test junk"

# BIP-44 Ethereum derivation prefix; the account index is appended
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0"

# Network that runs in-process and needs no RPC endpoint
EPHEMERAL_NETWORK = "hardhat"

# Where a local node (hardhat node, anvil) listens when no URL is configured
DEFAULT_LOCAL_RPC = "http://127.0.0.1:8545"

# Networks on which console.log calls are kept in sources
CONSOLE_LOG_NETWORKS = ("hardhat", "localhost")

GWEI = 1_000_000_000

# Ordered compiler list: {version, optimizer enabled, optimizer runs}
COMPILERS = [
    {"version": "0.8.10", "optimizer": {"enabled": True, "runs": 999999}},
    {"version": "0.6.12", "optimizer": {"enabled": True, "runs": 999999}},
    {"version": "0.5.17", "optimizer": {"enabled": True, "runs": 999999}},
    {"version": "0.4.19", "optimizer": {"enabled": False, "runs": 200}},
]

# Semantic account roles mapped to derivation indices.
# A role may map network names or chain ids to a different index.
NAMED_ACCOUNTS = {
    "deployer": {"default": 0},
    "dev": {"default": 1},
    "alice": {"default": 2},
    "bob": {"default": 3},
    "carol": {"default": 4},
    "dave": {"default": 5},
    "eve": {"default": 6},
    "feeTo": {"default": 7},
    "barFeeTo": {"default": 8},
}

# Gas reporter settings
GAS_REPORT_CURRENCY = "USD"
GAS_REPORT_EXCLUDE = [
    "examples",
    "flat",
    "mocks",
    "pool/concentrated",
    "pool/franchised",
    "pool/hybrid",
    "pool/index",
    "TridentERC721",
]
COINMARKETCAP_QUOTES_URL = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest"

# Private keys of the h_local development node (publicly known test keys)
H_LOCAL_KEYS = [
    "0x105d050185ccb907fba04dd92d8de9e32c18305e097ab41dadda21489a211524",
    "0x2e1d968b041d84dd120a5860cee60cd83f9374ef527ca86996317ada3d0d03e7",
    "0x45a5a7108a18dd5013cf2d5857a28144beadc9c70b3bdbd914e38df4e804b8d8",
    "0x6e9d61a325be3f6675cf8b7676c70e4a004d2308e3e182370a41f5653d52c6bd",
    "0x0b58b1bd44469ac9f813b5aeaf6213ddaea26720f0b2f133d08b6f234130a64f",
    "0x95eac372e0f0df3b43740fa780e62458b2d2cc32d6a440877f1cc2a9ad0c35cc",
    "0x6c6e6727b40c8d4b616ab0d26af357af09337299f09c66704146e14236972106",
    "0x5072e7aa1b03f531b4731a32a021f6a5d20d5ddc4e55acbb71ae202fc6f3a26d",
    "0x60fe891f13824a2c1da20fb6a14e28fa353421191069ba6b6d09dd6c29b90eff",
    "0xeae4e00ece872dd14fb6dc7a04f390563c7d69d16326f2a703ec8e0934060cc7",
]

ALCHEMY_MAINNET_URL = "https://eth-mainnet.alchemyapi.io/v2/${ALCHEMY_API_KEY}"
FORK_BLOCK_NUMBER = 13000000

# Network table. URL placeholders like ${INFURA_API_KEY} are filled from
# settings once when the registry loads. "accounts" is "mnemonic", a list of
# private keys, or absent for networks that sign with the default mnemonic.
# block_time (seconds) drives the confirmation wait timeout.
NETWORK_CONFIG = {
    "hardhat": {
        "chain_id": 31337,
        "live": False,
        "save_deployments": False,
        "tags": ["test", "local"],
        "hardfork": "london",
        "contract_size_limit": None,  # allowUnlimitedContractSize
        "block_time": 1,
        "forking": {"url": ALCHEMY_MAINNET_URL, "block_number": FORK_BLOCK_NUMBER},
    },
    "localhost": {
        "url": DEFAULT_LOCAL_RPC,
        "chain_id": 1337,
        "live": False,
        "save_deployments": False,
        "tags": ["local"],
        "block_time": 1,
    },
    "h_local": {
        "url": "http://127.0.0.1:7546",
        "chain_id": 298,
        "accounts": H_LOCAL_KEYS,
        "native_currency": "HBAR",
        "block_time": 2,
    },
    "ethereum": {
        "url": "https://eth-mainnet.alchemyapi.io/v2/${ALCHEMY_API_KEY}",
        "chain_id": 1,
        "accounts": "mnemonic",
        "tags": ["mainnet"],
        "hardfork": "london",
        "confirmations": 2,
        "block_time": 12,
        "explorer": {"api_url": "https://api.etherscan.io/api", "browser_url": "https://etherscan.io"},
    },
    "ropsten": {
        "url": "https://ropsten.infura.io/v3/${INFURA_API_KEY}",
        "chain_id": 3,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_price": 5000000000,
        "gas_multiplier": 2,
        "block_time": 12,
        "explorer": {
            "api_url": "https://api-ropsten.etherscan.io/api",
            "browser_url": "https://ropsten.etherscan.io",
        },
    },
    "rinkeby": {
        "url": "https://rinkeby.infura.io/v3/${INFURA_API_KEY}",
        "chain_id": 4,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_price": 5000000000,
        "gas_multiplier": 2,
        "block_time": 15,
        "explorer": {
            "api_url": "https://api-rinkeby.etherscan.io/api",
            "browser_url": "https://rinkeby.etherscan.io",
        },
    },
    "goerli": {
        "url": "https://goerli.infura.io/v3/${INFURA_API_KEY}",
        "chain_id": 5,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_price": 5000000000,
        "gas_multiplier": 2,
        "block_time": 15,
        "explorer": {
            "api_url": "https://api-goerli.etherscan.io/api",
            "browser_url": "https://goerli.etherscan.io",
        },
    },
    "kovan": {
        "url": "https://kovan.infura.io/v3/${INFURA_API_KEY}",
        "chain_id": 42,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_price": 20000000000,
        "gas_multiplier": 2,
        "block_time": 4,
        "explorer": {
            "api_url": "https://api-kovan.etherscan.io/api",
            "browser_url": "https://kovan.etherscan.io",
        },
    },
    "fantom": {
        "url": "https://rpcapi.fantom.network",
        "chain_id": 250,
        "accounts": "mnemonic",
        "gas_price": 22000000000,
        "native_currency": "FTM",
        "block_time": 1,
        "explorer": {"api_url": "https://api.ftmscan.com/api", "browser_url": "https://ftmscan.com"},
    },
    "polygon": {
        "url": "https://polygon-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
        "chain_id": 137,
        "accounts": "mnemonic",
        "native_currency": "MATIC",
        "confirmations": 5,
        "block_time": 2,
        "explorer": {"api_url": "https://api.polygonscan.com/api", "browser_url": "https://polygonscan.com"},
    },
    "matic-testnet": {
        "url": "https://rpc-mumbai.maticvigil.com/",
        "chain_id": 80001,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "native_currency": "MATIC",
        "block_time": 2,
        "explorer": {
            "api_url": "https://api-testnet.polygonscan.com/api",
            "browser_url": "https://mumbai.polygonscan.com",
        },
    },
    "xdai": {
        "url": "https://rpc.xdaichain.com",
        "chain_id": 100,
        "accounts": "mnemonic",
        "native_currency": "xDAI",
        "confirmations": 2,
        "block_time": 5,
        "explorer": {"api_url": "https://api.gnosisscan.io/api", "browser_url": "https://gnosisscan.io"},
    },
    "bsc": {
        "url": "https://bsc-dataseed.binance.org",
        "chain_id": 56,
        "accounts": "mnemonic",
        "native_currency": "BNB",
        "confirmations": 3,
        "block_time": 3,
        "explorer": {"api_url": "https://api.bscscan.com/api", "browser_url": "https://bscscan.com"},
    },
    "bsc-testnet": {
        "url": "https://data-seed-prebsc-2-s3.binance.org:8545",
        "chain_id": 97,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "native_currency": "BNB",
        "block_time": 3,
        "explorer": {
            "api_url": "https://api-testnet.bscscan.com/api",
            "browser_url": "https://testnet.bscscan.com",
        },
    },
    "heco": {
        "url": "https://http-mainnet.hecochain.com",
        "chain_id": 128,
        "accounts": "mnemonic",
        "native_currency": "HT",
        "confirmations": 2,
        "block_time": 3,
        "explorer": {"api_url": "https://api.hecoinfo.com/api", "browser_url": "https://hecoinfo.com"},
    },
    "heco-testnet": {
        "url": "https://http-testnet.hecochain.com",
        "chain_id": 256,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "native_currency": "HT",
        "block_time": 3,
        "explorer": {
            "api_url": "https://api-testnet.hecoinfo.com/api",
            "browser_url": "https://testnet.hecoinfo.com",
        },
    },
    "avalanche": {
        "url": "https://api.avax.network/ext/bc/C/rpc",
        "chain_id": 43114,
        "accounts": "mnemonic",
        "gas_price": 470000000000,
        "native_currency": "AVAX",
        "block_time": 2,
        "explorer": {"api_url": "https://api.snowtrace.io/api", "browser_url": "https://snowtrace.io"},
    },
    "avalanche-testnet": {
        "url": "https://api.avax-test.network/ext/bc/C/rpc",
        "chain_id": 43113,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "native_currency": "AVAX",
        "block_time": 2,
        "explorer": {
            "api_url": "https://api-testnet.snowtrace.io/api",
            "browser_url": "https://testnet.snowtrace.io",
        },
    },
    "harmony": {
        "url": "https://api.s0.t.hmny.io",
        "chain_id": 1666600000,
        "accounts": "mnemonic",
        "native_currency": "ONE",
        "block_time": 2,
    },
    "harmony-testnet": {
        "url": "https://api.s0.b.hmny.io",
        "chain_id": 1666700000,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "native_currency": "ONE",
        "block_time": 2,
    },
    "okex": {
        "url": "https://exchainrpc.okex.org",
        "chain_id": 66,
        "accounts": "mnemonic",
        "native_currency": "OKT",
        "block_time": 4,
    },
    "okex-testnet": {
        "url": "https://exchaintestrpc.okex.org",
        "chain_id": 65,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "native_currency": "OKT",
        "block_time": 4,
    },
    "arbitrum": {
        "url": "https://arb1.arbitrum.io/rpc",
        "chain_id": 42161,
        "accounts": "mnemonic",
        "block_gas_limit": 700000,
        "block_time": 1,
        "explorer": {"api_url": "https://api.arbiscan.io/api", "browser_url": "https://arbiscan.io"},
    },
    "arbitrum-testnet": {
        "url": "https://kovan3.arbitrum.io/rpc",
        "chain_id": 79377087078960,
        "accounts": "mnemonic",
        "tags": ["staging"],
        "gas_multiplier": 2,
        "block_time": 1,
    },
    "celo": {
        "url": "https://forno.celo.org",
        "chain_id": 42220,
        "accounts": "mnemonic",
        "native_currency": "CELO",
        "block_time": 5,
    },
    "optimism": {
        "url": "https://mainnet.optimism.io",
        "chain_id": 10,
        "accounts": "mnemonic",
        "block_time": 2,
        "explorer": {
            "api_url": "https://api-optimistic.etherscan.io/api",
            "browser_url": "https://optimistic.etherscan.io",
        },
    },
    "kava": {
        "url": "https://evm.kava.io",
        "chain_id": 2222,
        "accounts": "mnemonic",
        "native_currency": "KAVA",
        "block_time": 6,
        "explorer": {"api_url": "https://explorer.kava.io/api", "browser_url": "https://explorer.kava.io"},
    },
    "metis": {
        "url": "https://andromeda.metis.io/?owner=1088",
        "chain_id": 1088,
        "accounts": "mnemonic",
        "native_currency": "METIS",
        "block_time": 4,
    },
    "bttc": {
        "url": "https://rpc.bittorrentchain.io",
        "chain_id": 199,
        "accounts": "mnemonic",
        "native_currency": "BTT",
        "block_time": 2,
    },
}
