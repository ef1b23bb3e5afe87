# config.py
import os
from dotenv import load_dotenv
from pathlib import Path

load_dotenv()

BASE_PATH = Path(__file__).resolve().parent / "resources"
MODULE_PATH = Path(__file__).resolve().parent / "modules"

MULTICALL3_ADDRESS = "0xca11bde05977b3631167028862be2a173976ca11"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# "reject" blocks the whole request on any bad line, "skip" drops bad lines
INVALID_LINE_POLICY = os.getenv("INVALID_LINE_POLICY", "reject").strip().lower()
GAS_API_URL = os.getenv("GAS_API_URL")
EXTRA_RPC_URLS = [u.strip() for u in os.getenv("EXTRA_RPC_URLS", "").split(",") if u.strip()]

MULTICALL3_ABI = """
[
  {
    "inputs": [
      {
        "components": [
          {"internalType": "address", "name": "target", "type": "address"},
          {"internalType": "bool", "name": "allowFailure", "type": "bool"},
          {"internalType": "bytes", "name": "callData", "type": "bytes"}
        ],
        "internalType": "struct Multicall3.Call3[]",
        "name": "calls",
        "type": "tuple[]"
      }
    ],
    "name": "aggregate3",
    "outputs": [
      {
        "components": [
          {"internalType": "bool", "name": "success", "type": "bool"},
          {"internalType": "bytes", "name": "returnData", "type": "bytes"}
        ],
        "internalType": "struct Multicall3.Result[]",
        "name": "returnData",
        "type": "tuple[]"
      }
    ],
    "stateMutability": "payable",
    "type": "function"
  }
]
"""

TOKEN_ABI = '''[
  {
    "type":"function",
    "name":"symbol",
    "stateMutability":"view",
    "inputs":[],
    "outputs":[{"name":"","type":"string"}]
  },
  {
    "type": "function",
    "name": "decimals",
    "stateMutability": "view",
    "inputs": [],
    "outputs": [{"name": "", "type": "uint8"}]
  },
  {
    "type": "function",
    "name": "balanceOf",
    "stateMutability": "view",
    "inputs": [{"name": "_owner", "type": "address"}],
    "outputs": [{"name": "balance", "type": "uint256"}]
  },
  {
    "type": "function",
    "name": "allowance",
    "stateMutability": "view",
    "inputs": [
      {"name": "_owner", "type": "address"},
      {"name": "_spender", "type": "address"}
    ],
    "outputs": [{"name": "remaining", "type": "uint256"}]
  },
  {
    "type": "function",
    "name": "approve",
    "stateMutability": "nonpayable",
    "inputs": [
      {"name": "_spender", "type": "address"},
      {"name": "_value", "type": "uint256"}
    ],
    "outputs": [{"name": "", "type": "bool"}]
  }
]'''

NFT_ABI = '''[
  {
    "type":"function",
    "name":"symbol",
    "stateMutability":"view",
    "inputs":[],
    "outputs":[{"name":"","type":"string"}]
  },
  {
    "type": "function",
    "name": "balanceOf",
    "stateMutability": "view",
    "inputs": [{"name": "owner", "type": "address"}],
    "outputs": [{"name": "", "type": "uint256"}]
  },
  {
    "type": "function",
    "name": "ownerOf",
    "stateMutability": "view",
    "inputs": [{"name": "tokenId", "type": "uint256"}],
    "outputs": [{"name": "", "type": "address"}]
  },
  {
    "type": "function",
    "name": "isApprovedForAll",
    "stateMutability": "view",
    "inputs": [
      {"name": "owner", "type": "address"},
      {"name": "operator", "type": "address"}
    ],
    "outputs": [{"name": "", "type": "bool"}]
  },
  {
    "type": "function",
    "name": "setApprovalForAll",
    "stateMutability": "nonpayable",
    "inputs": [
      {"name": "operator", "type": "address"},
      {"name": "approved", "type": "bool"}
    ],
    "outputs": []
  }
]'''

DISPERSE_ABI = '''[
  {
    "type": "function",
    "name": "disperseEther",
    "stateMutability": "payable",
    "inputs": [
      {"name": "recipients", "type": "address[]"},
      {"name": "values", "type": "uint256[]"}
    ],
    "outputs": []
  },
  {
    "type": "function",
    "name": "disperseToken",
    "stateMutability": "nonpayable",
    "inputs": [
      {"name": "token", "type": "address"},
      {"name": "recipients", "type": "address[]"},
      {"name": "values", "type": "uint256[]"}
    ],
    "outputs": []
  },
  {
    "type": "function",
    "name": "disperseNFT",
    "stateMutability": "nonpayable",
    "inputs": [
      {"name": "token", "type": "address"},
      {"name": "recipients", "type": "address[]"},
      {"name": "tokenIds", "type": "uint256[]"}
    ],
    "outputs": []
  },
  {"type": "error", "name": "InsufficientEther", "inputs": []},
  {"type": "error", "name": "MismatchArrayLength", "inputs": []}
]'''

TOKEN_LOGO_API = "https://api.geckoterminal.com/api/v2/networks/{network}/tokens/{address}"
TOKEN_LOGO_FALLBACK = "https://raw.githubusercontent.com/trustwallet/assets/master/blockchains/ethereum/assets/{address}/logo.png"
DEFAULT_LOGO = "https://cryptologos.cc/logos/ethereum-eth-logo.png"


class CORE :
    # Core Blockchain mainnet
    CHAIN_ID = 1116
    CHAIN_NAME = "core"
    RPC_URL = os.getenv("CORE_RPC_URL", "https://rpc.coredao.org")
    EXPLORER_URL = "https://scan.coredao.org"

    NATIVE_SYMBOL = "CORE"
    NATIVE_DECIMALS = 18
    NATIVE_LOGO = "https://pipiswap.finance/images/tokens/0x40375c92d9faf44d2f9db9bd9ba41a3317a2404f.png"

    DISPERSE_ADDRESS = os.getenv("DISPERSE_ADDRESS", "0x17ded2350848bddbb7642046f73400ff979ef23d")
    MULTICALL3_ADDRESS = MULTICALL3_ADDRESS
    GAS_API_URL = GAS_API_URL

    # Paths to your key and recipient files
    WALLET_FILE = os.path.join(BASE_PATH, "wallet.txt") #private key
    RECIPIENTS_FILE = os.path.join(BASE_PATH, CHAIN_NAME, "recipients.txt")

    TOKEN_ABI = TOKEN_ABI
    NFT_ABI = NFT_ABI
    DISPERSE_ABI = DISPERSE_ABI
    MULTICALL3_ABI = MULTICALL3_ABI


class CORE_TESTNET :
    # Core Blockchain testnet2
    CHAIN_ID = 1114
    CHAIN_NAME = "core_testnet"
    RPC_URL = os.getenv("CORE_TESTNET_RPC_URL", "https://rpc.test2.btcs.network")
    EXPLORER_URL = "https://scan.test2.btcs.network"

    NATIVE_SYMBOL = "tCORE2"
    NATIVE_DECIMALS = 18
    NATIVE_LOGO = CORE.NATIVE_LOGO

    DISPERSE_ADDRESS = os.getenv("CORE_TESTNET_DISPERSE_ADDRESS")
    MULTICALL3_ADDRESS = MULTICALL3_ADDRESS
    GAS_API_URL = None

    WALLET_FILE = os.path.join(BASE_PATH, "wallet.txt") #private key
    RECIPIENTS_FILE = os.path.join(BASE_PATH, CHAIN_NAME, "recipients.txt")

    TOKEN_ABI = TOKEN_ABI
    NFT_ABI = NFT_ABI
    DISPERSE_ABI = DISPERSE_ABI
    MULTICALL3_ABI = MULTICALL3_ABI


CHAINS = {
    "CORE": CORE,
    "CORE_TESTNET": CORE_TESTNET,
}


def chain_by_id(chain_id):
    for chain_config in CHAINS.values():
        if int(chain_config.CHAIN_ID) == int(chain_id):
            return chain_config
    return None
