#!/usr/bin/env python3
"""
Private Offer - Chain Deployer
Drives a deployed PrivateOfferCloneFactory over JSON-RPC: predicts the clone
address, pre-authorizes it (minting allowance + EIP-2612 permit) and creates
the clone, which settles the offer in the same transaction.

Usage (as a script):
- Set up your .env file with PRIVATE_KEY, ALCHEMY_RPC_URL, CHAIN_ID,
  OFFER_FACTORY_ADDRESS, OFFER_TEMPLATE_ADDRESS and PAYER_PRIVATE_KEY
- Run: python offer_deployer.py offer.json
"""

import json
import os
import sys
import threading
import time
from typing import Dict, Optional, Union

# Web3 and blockchain
from web3 import Web3
from eth_account import Account

from privateoffer.config import OfferConfig, load_config, setup_logging
from privateoffer.models import FixedArgs, Permit, VariableArgs
from privateoffer.services import address_oracle
from privateoffer.services.permit_verifier import PermitDomain, sign_permit
from privateoffer.services.private_offer import currency_amount

NEW_CLONE_TOPIC = Web3.keccak(text="NewClone(address)")

FIXED_ARGS_COMPONENTS = [
    {"name": "currencyReceiver", "type": "address"},
    {"name": "tokenHolder", "type": "address"},
    {"name": "minTokenAmount", "type": "uint256"},
    {"name": "maxTokenAmount", "type": "uint256"},
    {"name": "tokenPrice", "type": "uint256"},
    {"name": "expiration", "type": "uint256"},
    {"name": "currency", "type": "address"},
    {"name": "token", "type": "address"},
]

VARIABLE_ARGS_COMPONENTS = [
    {"name": "currencyPayer", "type": "address"},
    {"name": "tokenReceiver", "type": "address"},
    {"name": "tokenAmount", "type": "uint256"},
]

FACTORY_ABI = [
    {
        "inputs": [
            {"name": "_rawSalt", "type": "bytes32"},
            {"name": "_fixedArguments", "type": "tuple", "components": FIXED_ARGS_COMPONENTS}
        ],
        "name": "predictCloneAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "_rawSalt", "type": "bytes32"},
            {"name": "_fixedArguments", "type": "tuple", "components": FIXED_ARGS_COMPONENTS},
            {"name": "_variableArguments", "type": "tuple", "components": VARIABLE_ARGS_COMPONENTS}
        ],
        "name": "createPrivateOfferClone",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [{"indexed": False, "name": "clone", "type": "address"}],
        "name": "NewClone",
        "type": "event"
    }
]

TOKEN_ABI = [
    {
        "inputs": [],
        "name": "MINTALLOWER_ROLE",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "role", "type": "bytes32"}, {"name": "account", "type": "address"}],
        "name": "grantRole",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "_minter", "type": "address"}, {"name": "_allowance", "type": "uint256"}],
        "name": "increaseMintingAllowance",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "mintingAllowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]

CURRENCY_ABI = [
    {
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "nonces",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"}
        ],
        "name": "permit",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]


class ChainOfferDeployer:
    """Runs the private offer flow against deployed contracts."""

    def __init__(self, config: Optional[OfferConfig] = None, w3: Optional[Web3] = None):
        """Initialize the deployer"""
        self.config = config or load_config(require_chain=True)
        self.logger = setup_logging('privateoffer')
        self._setup_web3(w3)

        # Transactions from this account are sent one at a time
        self.nonce_lock = threading.Lock()
        self.last_nonce = None
        self.last_nonce_time = 0

    def _setup_web3(self, w3: Optional[Web3]):
        """Setup Web3 connection"""
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(self.config.rpc_url))
            if not w3.is_connected():
                raise ConnectionError("Failed to connect to Ethereum network")
        self.w3 = w3

        self.account = Account.from_key(self.config.private_key)
        self.sender_address = self.account.address

        self.factory_address = Web3.to_checksum_address(self.config.factory_address)
        self.factory_contract = self.w3.eth.contract(address=self.factory_address, abi=FACTORY_ABI)

    def token_contract(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=TOKEN_ABI)

    def currency_contract(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=CURRENCY_ABI)

    def predict_clone_address(self, salt: Union[bytes, str], fixed_args: FixedArgs) -> str:
        """Ask the deployed factory where the clone will be created"""
        salt_bytes = address_oracle.to_bytes32(salt)
        predicted = self.factory_contract.functions.predictCloneAddress(salt_bytes, fixed_args.as_tuple()).call()
        return Web3.to_checksum_address(predicted)

    def check_prediction(self, salt: Union[bytes, str], fixed_args: FixedArgs) -> bool:
        """Compare the on-chain prediction with the local CREATE2 calculation"""
        local = address_oracle.predict(self.factory_address, self.config.template_address, salt, fixed_args)
        onchain = self.predict_clone_address(salt, fixed_args)
        if local != onchain:
            self.logger.error(f"Clone address mismatch: local {local}, factory {onchain}")
            return False
        self.logger.info(f"Predicted clone address confirmed: {local}")
        return True

    def grant_mint_allower(self, token: str, account: str):
        token_contract = self.token_contract(token)
        role = token_contract.functions.MINTALLOWER_ROLE().call()
        return self._send(token_contract.functions.grantRole(role, Web3.to_checksum_address(account)))

    def increase_minting_allowance(self, token: str, minter: str, amount: int):
        """Pre-authorize ``minter`` (usually the predicted clone) to mint ``amount``"""
        token_contract = self.token_contract(token)
        return self._send(token_contract.functions.increaseMintingAllowance(Web3.to_checksum_address(minter), amount))

    def sign_currency_permit(self, currency: str, payer_key: str, spender: str, value: int,
                             deadline: int) -> Dict:
        """Off-chain EIP-2612 signature by the payer, using the token's current nonce"""
        payer = Account.from_key(payer_key).address
        currency_contract = self.currency_contract(currency)
        permit = Permit(
            owner=payer,
            spender=spender,
            value=value,
            nonce=currency_contract.functions.nonces(payer).call(),
            deadline=deadline,
        )
        domain = PermitDomain(
            name=currency_contract.functions.name().call(),
            chain_id=self.config.chain_id,
            verifying_contract=currency,
        )
        signature = sign_permit(domain, permit, payer_key)
        return {
            'permit': permit,
            'v': signature[64],
            'r': signature[:32],
            's': signature[32:64],
        }

    def submit_permit(self, currency: str, signed: Dict):
        """Relay the payer's permit so the clone can pull the payment"""
        permit = signed['permit']
        function_call = self.currency_contract(currency).functions.permit(
            permit.owner, permit.spender, permit.value, permit.deadline,
            signed['v'], signed['r'], signed['s']
        )
        return self._send(function_call)

    def create_private_offer_clone(self, salt: Union[bytes, str], fixed_args: FixedArgs,
                                   variable_args: VariableArgs) -> Optional[str]:
        """Create the clone; returns the address taken from the NewClone log"""
        salt_bytes = address_oracle.to_bytes32(salt)
        function_call = self.factory_contract.functions.createPrivateOfferClone(
            salt_bytes, fixed_args.as_tuple(), variable_args.as_tuple()
        )
        receipt = self._send(function_call)
        return self._extract_clone_address(receipt)

    def run_private_offer(self, salt: Union[bytes, str], fixed_args: FixedArgs,
                          variable_args: VariableArgs, payer_key: str, permit_deadline: int) -> Optional[str]:
        """Full flow: predict, pre-authorize, create; returns the clone address"""
        predicted = self.predict_clone_address(salt, fixed_args)
        self.logger.info(f"Predicted PrivateOffer address: {predicted}")
        if not self.check_prediction(salt, fixed_args):
            raise ValueError("Local and on-chain clone address predictions differ")

        if fixed_args.mints:
            self.increase_minting_allowance(fixed_args.token, predicted, variable_args.token_amount)

        decimals = self.token_contract(fixed_args.token).functions.decimals().call()
        cost = currency_amount(variable_args.token_amount, fixed_args.token_price, decimals)
        signed = self.sign_currency_permit(fixed_args.currency, payer_key, predicted, cost, permit_deadline)
        self.submit_permit(fixed_args.currency, signed)

        clone = self.create_private_offer_clone(salt, fixed_args, variable_args)
        if clone and clone == predicted:
            self.logger.info(f"PrivateOffer settled at predicted address {clone}")
        else:
            self.logger.error(f"PrivateOffer clone address mismatch: predicted {predicted}, actual {clone}")
        return clone

    def _send(self, function_call):
        """Sign and send a contract call with EIP-1559 fees, wait for the receipt"""
        latest_block = self.w3.eth.get_block('latest')
        base_fee = latest_block['baseFeePerGas']
        max_priority_fee = self.w3.to_wei(1, 'gwei')
        max_fee_per_gas = int(base_fee * 1.2) + max_priority_fee

        # Get nonce with proper locking
        with self.nonce_lock:
            current_time = time.time()
            if self.last_nonce is not None and (current_time - self.last_nonce_time) < 5:
                nonce = self.last_nonce + 1
            else:
                nonce = self.w3.eth.get_transaction_count(self.sender_address, 'pending')
            self.last_nonce = nonce
            self.last_nonce_time = current_time

        tx = function_call.build_transaction({
            'from': self.sender_address, 'value': 0, 'gas': self.config.gas_limit,
            'maxFeePerGas': max_fee_per_gas, 'maxPriorityFeePerGas': max_priority_fee,
            'nonce': nonce, 'chainId': self.config.chain_id, 'type': 2
        })

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        tx_hash_hex = tx_hash.hex()
        self.logger.info(f"Transaction sent: {tx_hash_hex} (nonce {nonce})")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
        if receipt['status'] != 1:
            raise RuntimeError(f"Transaction {tx_hash_hex} reverted")
        return receipt

    def _extract_clone_address(self, receipt) -> Optional[str]:
        """Extract clone address from the NewClone event in a transaction receipt"""
        for log in receipt['logs']:
            topics = log['topics']
            if not topics or bytes(topics[0]) != bytes(NEW_CLONE_TOPIC):
                continue
            data = log['data']
            if isinstance(data, str):
                data = bytes.fromhex(data[2:] if data.startswith('0x') else data)
            return Web3.to_checksum_address("0x" + bytes(data)[-20:].hex())
        self.logger.warning("No NewClone event in receipt")
        return None


def load_offer_file(path: str):
    """Read salt, fixed and variable arguments from a JSON file"""
    with open(path) as f:
        data = json.load(f)
    return (
        data['salt'],
        FixedArgs(**data['fixed_args']),
        VariableArgs(**data['variable_args']),
        int(data.get('permit_deadline', data['fixed_args']['expiration'])),
    )


def main():
    """Example usage of the ChainOfferDeployer"""
    if len(sys.argv) != 2:
        print("Usage: python offer_deployer.py offer.json")
        sys.exit(1)

    payer_key = os.getenv('PAYER_PRIVATE_KEY')
    if not payer_key:
        print("PAYER_PRIVATE_KEY is required to sign the currency permit")
        sys.exit(1)

    deployer = ChainOfferDeployer()
    salt, fixed_args, variable_args, permit_deadline = load_offer_file(sys.argv[1])
    clone = deployer.run_private_offer(salt, fixed_args, variable_args, payer_key, permit_deadline)
    print(f"PrivateOffer clone: {clone}")


if __name__ == "__main__":
    main()
