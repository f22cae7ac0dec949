"""Minimal ABIs for the contracts stakeflow talks to."""

ERC20_ABI = [
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "type": "function"},
    {"constant": True, "inputs": [{"name": "", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "name": "approve", "type": "function", "stateMutability": "nonpayable",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

STAKING_VAULT_ABI = [
    {
        "name": "stake", "type": "function", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "lockDays", "type": "uint256"},
            {"name": "rateBps", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "name": "stakes", "type": "function", "stateMutability": "view",
        "inputs": [{"name": "", "type": "address"}, {"name": "", "type": "uint256"}],
        "outputs": [
            {"name": "token", "type": "address"},
            {"name": "principal", "type": "uint256"},
            {"name": "start", "type": "uint256"},
            {"name": "unlock", "type": "uint256"},
            {"name": "rateBps", "type": "uint256"},
            {"name": "withdrawn", "type": "bool"},
        ],
    },
]

INVESTMENT_ABI = [
    {
        "name": "investSplit", "type": "function", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amount", "type": "uint256"},
            {"name": "walletA", "type": "address"},
            {"name": "walletB", "type": "address"},
            {"name": "walletC", "type": "address"},
            {"name": "pA", "type": "uint256"},
            {"name": "pB", "type": "uint256"},
            {"name": "pC", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "name": "buyNode", "type": "function", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "nodeId", "type": "uint8"},
            {"name": "amount", "type": "uint256"},
            {"name": "payWallet", "type": "address"},
        ],
        "outputs": [],
    },
]

# every state-changing call the orchestrator may send, by function name
ACTION_ABIS = {
    "stake": STAKING_VAULT_ABI,
    "investSplit": INVESTMENT_ABI,
    "buyNode": INVESTMENT_ABI,
}
