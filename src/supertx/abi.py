"""ABI fragments for the contracts a supply supertransaction touches."""

ERC20_ABI = [
    {
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

AAVE_POOL_ABI = [
    {
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "onBehalfOf", "type": "address"},
            {"name": "referralCode", "type": "uint16"},
        ],
        "name": "supply",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

# K1 validator factory: companion address is CREATE2-derived from owner + index
NEXUS_FACTORY_ABI = [
    {
        "inputs": [
            {"name": "eoaOwner", "type": "address"},
            {"name": "index", "type": "uint256"},
            {"name": "attesters", "type": "address[]"},
            {"name": "threshold", "type": "uint8"},
        ],
        "name": "computeAccountAddress",
        "outputs": [{"name": "expectedAddress", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

NEXUS_ACCOUNT_ABI = [
    {
        "inputs": [],
        "name": "accountId",
        "outputs": [{"name": "accountImplementationId", "type": "string"}],
        "stateMutability": "pure",
        "type": "function",
    },
]


def function_fragment(abi: list[dict], name: str) -> dict:
    """Return the single function fragment called ``name`` from an ABI."""
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == name:
            return entry
    raise KeyError(f"Function {name} not found in ABI")
