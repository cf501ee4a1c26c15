# tapminer/integrations/solana.py
import base64
import json
import time
import logging
from typing import Optional

import base58
import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.hash import Hash
from solders.message import Message
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from tapminer.exceptions import ConfigurationError, TapMinerError, TransferError

logger = logging.getLogger(__name__)

CONFIRMED_LEVELS = {
    'processed': ('processed', 'confirmed', 'finalized'),
    'confirmed': ('confirmed', 'finalized'),
    'finalized': ('finalized',),
}


class SolanaRpcError(TapMinerError):
    """JSON-RPC call failed or returned an error object"""
    pass


def is_valid_wallet(address: str) -> bool:
    """Base58 ed25519 public key check"""
    if not isinstance(address, str):
        return False
    try:
        Pubkey.from_string(address)
        return True
    except Exception:
        return False


def load_keypair(secret: str) -> Keypair:
    """Accepts a base58 secret key or a solana-keygen JSON byte array"""
    secret = secret.strip()
    try:
        if secret.startswith('['):
            raw = bytes(json.loads(secret))
        else:
            raw = base58.b58decode(secret)
        return Keypair.from_bytes(raw)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid reward wallet key format: {e}") from e


class PaymentGateway:
    """Funding account that can report its balance and send native transfers"""

    @property
    def address(self) -> str:
        raise NotImplementedError

    def get_balance(self) -> int:
        """Balance in lamports"""
        raise NotImplementedError

    def transfer(self, to_wallet: str, lamports: int) -> str:
        """Send lamports and return the transaction signature. Raises TransferError."""
        raise NotImplementedError


class SolanaClient(PaymentGateway):
    def __init__(self, rpc_url: str, keypair: Keypair, commitment: str = 'confirmed',
                 timeout: float = 10, confirm_timeout: float = 60, poll_interval: float = 0.5,
                 session: Optional[requests.Session] = None):
        self.rpc_url = rpc_url
        self.keypair = keypair
        self.commitment = commitment
        self.timeout = timeout
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.http = session or requests.Session()
        self._request_id = 0

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    def _rpc(self, method: str, params: list):
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params
        }
        response = self.http.post(self.rpc_url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if data.get("error"):
            error = data["error"]
            raise SolanaRpcError(f"{method} failed: {error.get('message', error)}")
        return data.get("result")

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10),
           retry=retry_if_exception_type(requests.RequestException), reraise=True)
    def get_balance(self) -> int:
        result = self._rpc("getBalance", [self.address, {"commitment": self.commitment}])
        return int(result["value"])

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10),
           retry=retry_if_exception_type(requests.RequestException), reraise=True)
    def get_latest_blockhash(self) -> Hash:
        result = self._rpc("getLatestBlockhash", [{"commitment": self.commitment}])
        return Hash.from_string(result["value"]["blockhash"])

    def build_transfer(self, to_wallet: str, lamports: int, blockhash: Hash) -> Transaction:
        instruction = transfer(TransferParams(
            from_pubkey=self.keypair.pubkey(),
            to_pubkey=Pubkey.from_string(to_wallet),
            lamports=int(lamports)
        ))
        message = Message.new_with_blockhash([instruction], self.keypair.pubkey(), blockhash)
        return Transaction([self.keypair], message, blockhash)

    def transfer(self, to_wallet: str, lamports: int) -> str:
        if not is_valid_wallet(to_wallet):
            raise TransferError(f"Invalid wallet address: {to_wallet}")

        try:
            blockhash = self.get_latest_blockhash()
            tx = self.build_transfer(to_wallet, lamports, blockhash)
            encoded = base64.b64encode(bytes(tx)).decode('ascii')

            # sendTransaction is not retried: a resend could double pay
            signature = self._rpc("sendTransaction", [
                encoded,
                {"encoding": "base64", "preflightCommitment": self.commitment}
            ])
        except (requests.RequestException, SolanaRpcError, ValueError, KeyError) as e:
            raise TransferError(str(e)) from e

        self.confirm(signature)
        return signature

    def confirm(self, signature: str):
        """Poll until the signature reaches the configured commitment"""
        accepted = CONFIRMED_LEVELS.get(self.commitment, CONFIRMED_LEVELS['confirmed'])
        deadline = time.monotonic() + self.confirm_timeout

        while True:
            try:
                result = self._rpc("getSignatureStatuses", [[signature], {"searchTransactionHistory": False}])
                status = (result or {}).get("value", [None])[0]
            except (requests.RequestException, SolanaRpcError) as e:
                logger.warning(f"Status check for {signature[:16]}... failed: {e}")
                status = None

            if status:
                if status.get("err"):
                    raise TransferError(f"Transaction {signature} failed: {status['err']}")
                if status.get("confirmationStatus") in accepted:
                    return

            if time.monotonic() >= deadline:
                raise TransferError(f"Transaction {signature} not confirmed within {self.confirm_timeout}s")
            time.sleep(self.poll_interval)


def create_payment_gateway(config) -> SolanaClient:
    """Build the reward wallet client. Raises ConfigurationError when unconfigured."""
    if not config.SOLANA_RPC_URL or not config.REWARD_WALLET_PRIVATE_KEY:
        raise ConfigurationError("Server not configured: SOLANA_RPC_URL and REWARD_WALLET_PRIVATE_KEY are required")

    return SolanaClient(
        config.SOLANA_RPC_URL,
        load_keypair(config.REWARD_WALLET_PRIVATE_KEY),
        commitment=config.SOLANA_COMMITMENT,
        timeout=config.RPC_TIMEOUT,
        confirm_timeout=config.SOLANA_CONFIRM_TIMEOUT
    )
