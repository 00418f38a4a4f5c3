"""
Quiz Rewards Contract Service

Registers generated quizzes on the QuizRewards contract so completions can
later be recorded and NFT rewards claimed by players from their own wallets.

Uses PRIVATE_KEY as the quiz creator account to sign transactions.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted

from config import CHAIN_CONFIG
from .errors import UpstreamError

logger = logging.getLogger(__name__)


QUIZ_REWARDS_ABI = [
    {
        "inputs": [
            {"name": "quizId", "type": "string"},
            {"name": "title", "type": "string"},
            {"name": "nftMetadata", "type": "string"}
        ],
        "name": "createQuiz",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]

TIMEOUT_ERRORS = (TimeExhausted, requests.exceptions.Timeout, TimeoutError)


def is_timeout_error(error: Exception) -> bool:
    return isinstance(error, TIMEOUT_ERRORS)


def submit_with_retry(operation: Callable[[], Any], operation_name: str = "transaction",
                      max_attempts: Optional[int] = None, backoff_seconds: Optional[float] = None,
                      sleep: Callable[[float], None] = time.sleep):
    """
    Run a chain submission with bounded retry.

    Only timeout-class failures are retried, with a fixed pause between
    attempts. Anything else aborts immediately as an UpstreamError carrying
    the original message.
    """
    max_attempts = max_attempts or CHAIN_CONFIG['MAX_ATTEMPTS']
    backoff_seconds = CHAIN_CONFIG['RETRY_BACKOFF_SECONDS'] if backoff_seconds is None else backoff_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            logger.info(f"📡 Attempt {attempt}/{max_attempts}: {operation_name}")
            return operation()
        except UpstreamError:
            raise
        except Exception as e:
            if is_timeout_error(e) and attempt < max_attempts:
                logger.warning(f"⚠️ Attempt {attempt}/{max_attempts} timed out: {e}. Retrying after {backoff_seconds}s...")
                sleep(backoff_seconds)
                continue

            if is_timeout_error(e):
                logger.error(f"❌ {operation_name} timed out after {max_attempts} attempts: {e}")
            else:
                logger.error(f"❌ {operation_name} failed on attempt {attempt}/{max_attempts}: {e}")
            raise UpstreamError(
                f"Failed to interact with Celo contract: {e}",
                details={'operation': operation_name, 'attempts': attempt, 'error_type': type(e).__name__}
            ) from e


class QuizRewardsContract:
    """Service for interacting with the QuizRewards smart contract"""

    def __init__(self, rpc_url=None, chain_id=None, contract_address=None, private_key=None,
                 w3=None, sleep: Callable[[float], None] = time.sleep):
        self.rpc_url = rpc_url or CHAIN_CONFIG['RPC_URL']
        self.chain_id = int(chain_id or CHAIN_CONFIG['CHAIN_ID'])
        self.contract_address = contract_address or CHAIN_CONFIG['CONTRACT_ADDRESS']
        self.private_key = private_key or CHAIN_CONFIG['PRIVATE_KEY']
        self.sleep = sleep

        self._w3 = w3
        self._contract = None
        self._account = None

    @property
    def is_configured(self) -> bool:
        return bool(self.rpc_url and self.contract_address and self.private_key)

    @property
    def w3(self) -> Web3:
        if self._w3 is None:
            self._w3 = Web3(Web3.HTTPProvider(
                self.rpc_url,
                request_kwargs={'timeout': CHAIN_CONFIG['RECEIPT_TIMEOUT_SECONDS']}
            ))
        return self._w3

    @property
    def account(self):
        if self._account is None:
            key = self.private_key if self.private_key.startswith('0x') else '0x' + self.private_key
            self._account = Account.from_key(key)
            logger.info(f"👛 Quiz creator wallet: {self._account.address}")
        return self._account

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.contract_address),
                abi=QUIZ_REWARDS_ABI
            )
            logger.info(f"📋 QuizRewards contract loaded: {self.contract_address}")
        return self._contract

    def is_connected(self) -> bool:
        if not self.is_configured:
            return False
        try:
            return bool(self.w3.is_connected())
        except Exception as e:
            logger.warning(f"⚠️ Celo RPC not reachable: {e}")
            return False

    def _check_network(self):
        connected_chain_id = self.w3.eth.chain_id
        if int(connected_chain_id) != self.chain_id:
            raise ValueError(f"Connected to wrong network; expected chainId {self.chain_id}, got {connected_chain_id}")

    def _send_transaction(self, fn) -> Dict[str, Any]:
        """Estimate, build, sign and send a contract call, then wait for its receipt"""
        self._check_network()

        gas_estimate = fn.estimate_gas({'from': self.account.address})
        gas_limit = int(gas_estimate * CHAIN_CONFIG['GAS_BUFFER_PERCENT'] / 100)

        txn = fn.build_transaction({
            'chainId': self.chain_id,
            'from': self.account.address,
            'gas': gas_limit,
            'gasPrice': self.w3.eth.gas_price,
            'nonce': self.w3.eth.get_transaction_count(self.account.address),
        })

        signed_txn = self.w3.eth.account.sign_transaction(txn, self.account.key)
        tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        tx_hash_hex = tx_hash.hex()
        if not tx_hash_hex.startswith('0x'):
            tx_hash_hex = '0x' + tx_hash_hex

        logger.info(f"📡 Transaction sent: {tx_hash_hex}")

        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=CHAIN_CONFIG['RECEIPT_TIMEOUT_SECONDS']
        )

        if receipt.status != 1:
            raise UpstreamError("Transaction failed on-chain", details={'tx_hash': tx_hash_hex})

        return {
            'tx_hash': tx_hash_hex,
            'gas_used': receipt.gasUsed,
            'block_number': receipt.blockNumber,
            'explorer_url': f"{CHAIN_CONFIG['EXPLORER_TX_URL']}{tx_hash_hex}",
        }

    def create_quiz(self, quiz_id: str, title: str, nft_metadata: str) -> Dict[str, Any]:
        """
        Register a quiz on-chain

        Args:
            quiz_id: Quiz identifier shared with the database row
            title: Display title
            nft_metadata: ipfs:// URI of the reward artwork

        Returns:
            Dict with tx_hash, gas_used, block_number and explorer_url
        """
        if not self.is_configured:
            raise UpstreamError("Quiz contract not configured",
                                details="Set CELO_RPC_URL, QUIZ_CONTRACT_ADDRESS and PRIVATE_KEY")

        result = submit_with_retry(
            lambda: self._send_transaction(self.contract.functions.createQuiz(quiz_id, title, nft_metadata)),
            operation_name=f"createQuiz({quiz_id})",
            sleep=self.sleep,
        )
        logger.info(f"✅ Quiz {quiz_id} registered on-chain - TX: {result['tx_hash']}")
        return result
